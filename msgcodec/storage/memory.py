"""In-memory compound file tree.

Holds the storages and streams the codecs write, keyed by name, in
insertion order. It stands in for the container a compound file writer
would provide: sector allocation and FAT layout are not modelled.
"""

import logging

logger = logging.getLogger(__name__)


class Storage:
    """A named storage holding streams and child storages.

    Usage:
        root = Storage()
        recip = root.open_storage('__recip_version1.0_#00000000')
        recip.write_stream('__properties_version1.0', data)
        data = root.open_storage(name, create=False).read_stream(...)
    """

    def __init__(self, name='Root Entry'):
        self.name = name
        self._streams = {}
        self._storages = {}

    def __repr__(self):
        return (f'<Storage {self.name!r} streams={len(self._streams)} '
                f'storages={len(self._storages)}>')

    # --- Storages ---

    def open_storage(self, name, create=True):
        """Return the child storage, creating it when allowed.

        Raises:
            KeyError: if the storage does not exist and create is False.
        """
        storage = self._storages.get(name)
        if storage is None:
            if not create:
                raise KeyError(f'No storage {name!r} in {self.name!r}')
            storage = Storage(name)
            self._storages[name] = storage
        return storage

    def has_storage(self, name):
        return name in self._storages

    def list_storages(self):
        return list(self._storages)

    # --- Streams ---

    def write_stream(self, name, data):
        """Create or overwrite a stream."""
        self._streams[name] = bytes(data)
        logger.debug('%s/%s: %d bytes', self.name, name, len(data))

    def read_stream(self, name):
        """Return all bytes of a stream.

        Raises:
            KeyError: if the stream does not exist.
        """
        try:
            return self._streams[name]
        except KeyError:
            raise KeyError(f'No stream {name!r} in {self.name!r}') from None

    def has_stream(self, name):
        return name in self._streams

    def list_streams(self):
        return list(self._streams)

    def delete(self, name):
        """Remove a stream or storage by name, if present."""
        self._streams.pop(name, None)
        self._storages.pop(name, None)

    # --- Tree ---

    def copy_to(self, target):
        """Copy every stream and storage below this one into target."""
        for name in self.list_streams():
            target.write_stream(name, self.read_stream(name))
        for name in self.list_storages():
            self.open_storage(name, create=False).copy_to(target.open_storage(name))

    def walk(self, prefix=''):
        """Yield (path, size) for every stream, depth first."""
        for name, data in self._streams.items():
            yield prefix + name, len(data)
        for name, storage in self._storages.items():
            yield from storage.walk(prefix + name + '/')
