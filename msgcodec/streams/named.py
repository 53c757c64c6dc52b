"""Named property mapping streams.

Named properties get synthetic ids 0x8000 + n in the order they are
added. The ``__nameid_version1.0`` storage records how each synthetic id
maps back to its (property set GUID, LID or name):

    __substg1.0_00020102   GUID stream, 16 bytes per distinct GUID
    __substg1.0_00030102   entry stream, 8 bytes per named property
    __substg1.0_00040102   string stream, length-prefixed UTF-16LE names
    __substg1.0_1000..101E property id to name hash buckets

See [MS-OXMSG] 2.2.3.
"""

import logging
import struct
import uuid
from dataclasses import dataclass
from typing import Optional

from ..crc import compute_crc
from ..errors import FormatViolation
from ..mapi.named import (
    PropertyKind, PS_MAPI, PS_PUBLIC_STRINGS,
    GUID_INDEX_PS_MAPI, GUID_INDEX_PS_PUBLIC_STRINGS, GUID_INDEX_FIRST_STREAM,
    guid_index_for,
)
from ..mapi.properties import (
    PropertyTag, PropertyType, NAMEID_STORAGE, GUID_STREAM, ENTRY_STREAM,
    STRING_STREAM, SUBSTG_PREFIX, NAMED_PROPERTY_BASE,
)
from ..structures.bitfields import IndexAndKindInformation
from ..structures.property_name import PropertyName
from ..utils import pad_to

logger = logging.getLogger(__name__)

ENTRY_SIZE = 8
GUID_SIZE = 16
HASH_BUCKETS = 0x1F
HASH_STREAM_BASE = 0x1000


def hash_stream_name(key, guid_index, kind):
    """Name of the property id to name mapping stream for one entry.

    Args:
        key: The LID, or the CRC-32 of the UTF-16LE name.
        guid_index: GUID index of the property set.
        kind: PropertyKind.LID or PropertyKind.NAME.
    """
    if kind == PropertyKind.LID:
        stream_id = HASH_STREAM_BASE + ((key ^ (guid_index << 1)) % HASH_BUCKETS)
    else:
        stream_id = HASH_STREAM_BASE + ((key ^ ((guid_index << 1) | 1)) % HASH_BUCKETS)
    return f'{SUBSTG_PREFIX}{(stream_id << 16) | 0x0102:08X}'


def name_crc(name):
    return compute_crc(name.encode('utf-16-le'))


@dataclass
class EntryStreamItem:
    """One 8-byte entry: LID or string offset, then IndexAndKindInformation."""
    name_identifier_or_string_offset: int
    index_and_kind: IndexAndKindInformation

    def to_bytes(self):
        return struct.pack('<I I', self.name_identifier_or_string_offset,
                           self.index_and_kind.pack())

    @classmethod
    def from_bytes(cls, data, offset=0):
        first, info = struct.unpack_from('<I I', data, offset)
        return cls(first, IndexAndKindInformation.unpack(info))


def pack_entries(items):
    return b''.join(item.to_bytes() for item in items)


def unpack_entries(data):
    if len(data) % ENTRY_SIZE:
        raise FormatViolation(
            f'Entry stream of {len(data)} bytes is not a multiple of {ENTRY_SIZE}')
    return [EntryStreamItem.from_bytes(data, offset)
            for offset in range(0, len(data), ENTRY_SIZE)]


class GuidStream:
    """Ordered list of distinct property set GUIDs, excluding PS_MAPI and
    PS_PUBLIC_STRINGS which have fixed indexes."""

    def __init__(self, guids=()):
        self.guids = []
        for guid in guids:
            self.add(guid)

    def add(self, guid):
        if guid in (PS_MAPI, PS_PUBLIC_STRINGS) or guid in self.guids:
            return
        self.guids.append(guid)

    def index_of(self, guid):
        return guid_index_for(guid, self.guids)

    def guid_at(self, guid_index):
        if guid_index == GUID_INDEX_PS_MAPI:
            return PS_MAPI
        if guid_index == GUID_INDEX_PS_PUBLIC_STRINGS:
            return PS_PUBLIC_STRINGS
        position = guid_index - GUID_INDEX_FIRST_STREAM
        if not 0 <= position < len(self.guids):
            raise FormatViolation(
                f'GUID index {guid_index} out of range ({len(self.guids)} GUIDs)')
        return self.guids[position]

    def to_bytes(self):
        return b''.join(guid.bytes_le for guid in self.guids)

    @classmethod
    def from_bytes(cls, data):
        if len(data) % GUID_SIZE:
            raise FormatViolation(
                f'GUID stream of {len(data)} bytes is not a multiple of {GUID_SIZE}')
        stream = cls()
        stream.guids = [uuid.UUID(bytes_le=data[i:i + GUID_SIZE])
                        for i in range(0, len(data), GUID_SIZE)]
        return stream


class StringStream:
    """Names of string named properties.

    Each item is a 4-byte length followed by the UTF-16LE name (no
    terminator), padded so the next item starts on a 4-byte boundary.
    """

    def __init__(self):
        self._data = bytearray()

    def add(self, name) -> int:
        """Append a name and return its offset."""
        offset = len(self._data)
        encoded = name.encode('utf-16-le')
        self._data += pad_to(struct.pack('<I', len(encoded)) + encoded, 4)
        return offset

    def to_bytes(self):
        return bytes(self._data)

    @classmethod
    def from_bytes(cls, data):
        stream = cls()
        stream._data = bytearray(data)
        return stream

    def name_at(self, offset) -> str:
        if offset % 4:
            raise FormatViolation(f'String offset {offset:#x} is not 4-byte aligned')
        if offset + 4 > len(self._data):
            raise FormatViolation(f'String offset {offset:#x} past end of string stream')
        length = struct.unpack_from('<I', self._data, offset)[0]
        end = offset + 4 + length
        if end > len(self._data) or length % 2:
            raise FormatViolation(f'Bad string length {length} at offset {offset:#x}')
        return bytes(self._data[offset + 4:end]).decode('utf-16-le', errors='replace')


@dataclass
class NamedProperty:
    """A named property and the synthetic id it was given."""
    property_id: int
    guid: uuid.UUID
    kind: PropertyKind
    lid: Optional[int] = None
    name: Optional[str] = None
    type: PropertyType = PropertyType.PT_UNSPECIFIED

    @property
    def key(self):
        return (self.guid, self.kind, self.lid if self.kind == PropertyKind.LID else self.name)

    @property
    def tag(self):
        return self.to_property_name().to_tag(self.type)

    def to_property_name(self):
        return PropertyName(self.kind, self.guid, lid=self.lid, name=self.name)

    @classmethod
    def from_property_name(cls, property_id, property_name,
                           prop_type=PropertyType.PT_UNSPECIFIED):
        return cls(property_id, property_name.guid, property_name.kind,
                   lid=property_name.lid, name=property_name.name, type=prop_type)


class NamedPropertyResolver:
    """Maps (GUID, LID or name) to synthetic ids in [0x8000, 0x8000 + n).

    Values go to the owning property set (normally the top-level set of
    the message) under the synthetic id.

    Usage:
        named = NamedPropertyResolver(message_properties)
        named.add_property(PidLidPrivate, True)
        named.write_properties(root_storage)
    """

    def __init__(self, property_set):
        self.property_set = property_set
        self._named = []
        self._by_key = {}

    def __len__(self):
        return len(self._named)

    def __iter__(self):
        return iter(self._named)

    def property_names(self):
        """PropertyName of each named property, in property index order."""
        return [named.to_property_name() for named in self._named]

    def get(self, property_id):
        index = property_id - NAMED_PROPERTY_BASE
        if 0 <= index < len(self._named):
            return self._named[index]
        return None

    def property_id_for(self, named_tag):
        named = self._by_key.get(named_tag.key)
        return named.property_id if named else None

    def named_tag_for(self, property_id):
        named = self.get(property_id)
        return named.tag if named else None

    def get_value(self, named_tag, default=None):
        property_id = self.property_id_for(named_tag)
        if property_id is None:
            return default
        return self.property_set.get_value(property_id, default)

    def add_property(self, named_tag, value):
        """Store value under the named property's synthetic id.

        A name that is already mapped keeps its id and its value is
        replaced. A new name is only given an id once its value has been
        accepted by the property set.

        Returns:
            The Property stored, or None if value is None.
        """
        if value is None:
            logger.debug('Skipping %r: no value', named_tag)
            return None

        existing = self._by_key.get(named_tag.key)
        if existing is not None:
            tag = PropertyTag(existing.property_id, named_tag.type)
            prop = self.property_set.add_or_replace_property(tag, value)
            existing.type = named_tag.type
            return prop

        property_id = NAMED_PROPERTY_BASE + len(self._named)
        tag = PropertyTag(property_id, named_tag.type)
        prop = self.property_set.add_or_replace_property(tag, value)

        named = NamedProperty(property_id=property_id, guid=named_tag.guid,
                              kind=named_tag.kind, lid=named_tag.lid,
                              name=named_tag.name, type=named_tag.type)
        self._named.append(named)
        self._by_key[named.key] = named
        return prop

    def write_properties(self, storage):
        """Write the name-id storage under storage."""
        nameid = storage.open_storage(NAMEID_STORAGE)

        guids = GuidStream(named.guid for named in self._named)
        strings = StringStream()
        entries = []
        buckets = {}

        for index, property_name in enumerate(self.property_names()):
            guid_index = guids.index_of(property_name.guid)
            info = IndexAndKindInformation(index, guid_index, int(property_name.kind))
            if property_name.kind == PropertyKind.NAME:
                first = strings.add(property_name.name)
                key = name_crc(property_name.name)
            else:
                first = property_name.lid
                key = property_name.lid
            entries.append(EntryStreamItem(first, info))
            bucket = hash_stream_name(key, guid_index, property_name.kind)
            buckets.setdefault(bucket, []).append(EntryStreamItem(key, info))

        for name, items in buckets.items():
            nameid.write_stream(name, pack_entries(items))
        nameid.write_stream(GUID_STREAM, guids.to_bytes())
        nameid.write_stream(ENTRY_STREAM, pack_entries(entries))
        nameid.write_stream(STRING_STREAM, strings.to_bytes())
        logger.debug('Wrote %d named properties, %d GUIDs',
                     len(entries), len(guids.guids))

    @classmethod
    def read_properties(cls, storage, property_set):
        """Rebuild the mapping from the name-id storage under storage.

        Property types are taken from property_set where the synthetic
        id has a value.

        Raises:
            FormatViolation: on truncated streams, unknown GUID indexes,
                bad string offsets or a property index sequence with gaps.
        """
        resolver = cls(property_set)
        if not storage.has_storage(NAMEID_STORAGE):
            logger.debug('No %s storage', NAMEID_STORAGE)
            return resolver
        nameid = storage.open_storage(NAMEID_STORAGE, create=False)

        def read(name):
            return nameid.read_stream(name) if nameid.has_stream(name) else b''

        guids = GuidStream.from_bytes(read(GUID_STREAM))
        strings = StringStream.from_bytes(read(STRING_STREAM))
        entries = unpack_entries(read(ENTRY_STREAM))

        found = {}
        for item in entries:
            info = item.index_and_kind
            if info.property_index in found:
                raise FormatViolation(
                    f'Duplicate property index {info.property_index}')
            guid = guids.guid_at(info.guid_index)
            property_id = NAMED_PROPERTY_BASE + info.property_index
            prop = property_set.get(property_id)
            ptype = PropertyType(prop.type) if prop else PropertyType.PT_UNSPECIFIED
            if info.kind == PropertyKind.NAME:
                name = strings.name_at(item.name_identifier_or_string_offset)
                property_name = PropertyName(PropertyKind.NAME, guid, name=name)
            else:
                property_name = PropertyName(PropertyKind.LID, guid,
                                             lid=item.name_identifier_or_string_offset)
            found[info.property_index] = NamedProperty.from_property_name(
                property_id, property_name, ptype)

        if sorted(found) != list(range(len(found))):
            raise FormatViolation('Property indexes are not a gapless sequence')
        for index in range(len(found)):
            named = found[index]
            resolver._named.append(named)
            resolver._by_key[named.key] = named
        return resolver
