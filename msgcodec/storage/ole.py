"""Read-only storage adapter over an OLE compound file (olefile).

Exposes the same read methods as storage.memory.Storage, so the decode
paths work on real .msg files as well as on in-memory trees.
"""

import olefile


class OleStorage:
    """A storage inside an open olefile.OleFileIO.

    Usage:
        with OleStorage.open('mail.msg') as root:
            message = read_message(root)
    """

    def __init__(self, ole, path=()):
        self.ole = ole
        self.path = tuple(path)

    @classmethod
    def open(cls, filename):
        """Open a .msg file (path, bytes or file-like object)."""
        return cls(olefile.OleFileIO(filename))

    @property
    def name(self):
        return self.path[-1] if self.path else 'Root Entry'

    def close(self):
        self.ole.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def __repr__(self):
        return f'<OleStorage {"/".join(self.path) or "/"}>'

    def _children(self, streams, storages):
        depth = len(self.path) + 1
        names = []
        for entry in self.ole.listdir(streams=streams, storages=storages):
            if len(entry) == depth and tuple(entry[:-1]) == self.path:
                names.append(entry[-1])
        return names

    def _type_of(self, name):
        entry = list(self.path) + [name]
        if not self.ole.exists(entry):
            return None
        return self.ole.get_type(entry)

    def open_storage(self, name, create=False):
        if create:
            raise NotImplementedError('OleStorage is read-only')
        if self._type_of(name) != olefile.STGTY_STORAGE:
            raise KeyError(f'No storage {name!r} in {self.name!r}')
        return OleStorage(self.ole, self.path + (name,))

    def has_storage(self, name):
        return self._type_of(name) == olefile.STGTY_STORAGE

    def list_storages(self):
        return self._children(streams=False, storages=True)

    def read_stream(self, name):
        if self._type_of(name) != olefile.STGTY_STREAM:
            raise KeyError(f'No stream {name!r} in {self.name!r}')
        return self.ole.openstream(list(self.path) + [name]).read()

    def has_stream(self, name):
        return self._type_of(name) == olefile.STGTY_STREAM

    def list_streams(self):
        return self._children(streams=True, storages=False)

    def write_stream(self, name, data):
        raise NotImplementedError('OleStorage is read-only')

    def copy_to(self, target):
        """Copy the subtree into a writable storage (e.g. storage.memory.Storage)."""
        for name in self.list_streams():
            target.write_stream(name, self.read_stream(name))
        for name in self.list_storages():
            self.open_storage(name).copy_to(target.open_storage(name))
