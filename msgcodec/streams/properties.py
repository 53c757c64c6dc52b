"""Property streams: 16-byte descriptors plus side streams.

Every object in a .msg file (the message, each recipient, each attachment)
has a ``__properties_version1.0`` stream: a header followed by one
16-byte descriptor per property:

    type (2) | id (2) | flags (4) | value or size (8)

Fixed-width values are stored inline, padded with zeros to 8 bytes.
Variable-length values store their size and 4 reserved bytes inline and
the real bytes in a side stream named ``__substg1.0_IIIITTTT``.

See [MS-OXMSG] 2.4.
"""

import logging
import struct
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from ..errors import FormatViolation, InvalidArgument, UnsupportedType
from ..mapi.properties import (
    PropertyTag, PropertyType, DEFAULT_FLAGS, PROP_TYPE_SIZES,
    UNSUPPORTED_TYPES, VARIABLE_TYPES, PROPERTIES_STREAM, PR_MESSAGE_SIZE,
    base_type, is_multi_value, substg_name,
)
from ..utils import (
    datetime_to_filetime, filetime_to_datetime, pack_filetime,
    datetime_to_oadate, oadate_to_datetime,
)

logger = logging.getLogger(__name__)

DEFAULT_CODEPAGE = 'cp1252'
DESCRIPTOR_SIZE = 16

# Inline size of a variable property counts the terminator the side
# stream does not carry
_TERMINATOR_SIZES = {
    PropertyType.PT_UNICODE: 2,
    PropertyType.PT_STRING8: 1,
}

_INT_RANGES = {
    PropertyType.PT_SHORT: ('<h', -0x8000, 0x7FFF),
    PropertyType.PT_LONG: ('<i', -0x80000000, 0x7FFFFFFF),
    PropertyType.PT_ERROR: ('<I', 0, 0xFFFFFFFF),
    PropertyType.PT_I8: ('<q', -0x8000000000000000, 0x7FFFFFFFFFFFFFFF),
}


def _require_int(prop_type, value):
    if not isinstance(value, int):
        raise InvalidArgument(
            f'{prop_type.name} needs an int, got {type(value).__name__}')
    fmt, low, high = _INT_RANGES[prop_type]
    if not low <= value <= high:
        raise InvalidArgument(f'{value} is out of range for {prop_type.name}')
    return struct.pack(fmt, value)


def encode_value(prop_type, value, codepage=DEFAULT_CODEPAGE) -> bytes:
    """Encode a Python value as the bytes stored for a property type.

    Args:
        prop_type: PropertyType of the slot.
        value: Python value; see the table below.
        codepage: Code page for PT_STRING8 strings.

    Value types:
        PT_SHORT, PT_LONG, PT_ERROR, PT_I8: int
        PT_FLOAT, PT_DOUBLE: float or int
        PT_CURRENCY: Decimal, int or float (units, scaled by 10000)
        PT_BOOLEAN: bool
        PT_APPTIME: datetime (naive means UTC), or the automation date as float
        PT_SYSTIME: datetime (naive means UTC), or the FILETIME as int
        PT_UNICODE: str
        PT_STRING8: str or bytes already in the code page
        PT_CLSID: uuid.UUID or 16 bytes (GUID wire order)
        PT_BINARY: bytes-like, or str (UTF-8)

    Returns:
        The value bytes without padding and without string terminators.

    Raises:
        UnsupportedType: for reserved and multi-valued types.
        InvalidArgument: if value does not fit the type.
    """
    prop_type = PropertyType(prop_type)
    if is_multi_value(prop_type):
        raise UnsupportedType(f'{prop_type.name} values can not be encoded')
    if prop_type in UNSUPPORTED_TYPES:
        raise UnsupportedType(f'{prop_type.name} property type is not supported')

    if prop_type in _INT_RANGES:
        return _require_int(prop_type, value)

    if prop_type == PropertyType.PT_BOOLEAN:
        if value not in (True, False):
            raise InvalidArgument(f'PT_BOOLEAN needs a bool, got {value!r}')
        return b'\x01' if value else b'\x00'

    if prop_type in (PropertyType.PT_FLOAT, PropertyType.PT_DOUBLE):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidArgument(f'{prop_type.name} needs a number, got {value!r}')
        fmt = '<f' if prop_type == PropertyType.PT_FLOAT else '<d'
        try:
            return struct.pack(fmt, value)
        except (struct.error, OverflowError) as e:
            raise InvalidArgument(f'{value!r} does not fit {prop_type.name}: {e}') from e

    if prop_type == PropertyType.PT_CURRENCY:
        if isinstance(value, bool) or not isinstance(value, (Decimal, int, float)):
            raise InvalidArgument(f'PT_CURRENCY needs a number, got {value!r}')
        scaled = int((Decimal(str(value)) * 10000).to_integral_value())
        try:
            return struct.pack('<q', scaled)
        except struct.error as e:
            raise InvalidArgument(f'{value!r} does not fit PT_CURRENCY') from e

    if prop_type == PropertyType.PT_APPTIME:
        if isinstance(value, datetime):
            value = datetime_to_oadate(value)
        elif isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidArgument(f'PT_APPTIME needs a datetime, got {value!r}')
        return struct.pack('<d', value)

    if prop_type == PropertyType.PT_SYSTIME:
        if isinstance(value, datetime):
            value = datetime_to_filetime(value)
        elif isinstance(value, bool) or not isinstance(value, int):
            raise InvalidArgument(f'PT_SYSTIME needs a datetime, got {value!r}')
        if not 0 <= value <= 0xFFFFFFFFFFFFFFFF:
            raise InvalidArgument(f'FILETIME out of range: {value}')
        return pack_filetime(value)

    if prop_type == PropertyType.PT_UNICODE:
        if not isinstance(value, str):
            raise InvalidArgument(f'PT_UNICODE needs a str, got {type(value).__name__}')
        return value.encode('utf-16-le', errors='surrogatepass')

    if prop_type == PropertyType.PT_STRING8:
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if not isinstance(value, str):
            raise InvalidArgument(f'PT_STRING8 needs a str, got {type(value).__name__}')
        try:
            return value.encode(codepage)
        except UnicodeEncodeError as e:
            raise InvalidArgument(f'{value!r} can not be encoded in {codepage}') from e

    if prop_type == PropertyType.PT_CLSID:
        if isinstance(value, uuid.UUID):
            return value.bytes_le
        if isinstance(value, (bytes, bytearray)) and len(value) == 16:
            return bytes(value)
        raise InvalidArgument(f'PT_CLSID needs a UUID or 16 bytes, got {value!r}')

    if prop_type == PropertyType.PT_BINARY:
        if isinstance(value, str):
            return value.encode('utf-8')
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        raise InvalidArgument(f'PT_BINARY needs bytes, got {type(value).__name__}')

    raise UnsupportedType(f'{prop_type.name} property type is not supported')


def decode_value(prop_type, data, codepage=DEFAULT_CODEPAGE):
    """Decode stored bytes back to a Python value.

    Multi-valued types decode a single element with the base type.
    Both date types come back as aware UTC datetimes; naive datetimes
    were taken as UTC when encoded.
    """
    prop_type = PropertyType(prop_type)
    if is_multi_value(prop_type):
        prop_type = base_type(prop_type)
    width = PROP_TYPE_SIZES.get(prop_type)
    if width is not None and len(data) < width:
        raise FormatViolation(
            f'{prop_type.name} needs {width} bytes, got {len(data)}')

    try:
        if prop_type in _INT_RANGES:
            fmt = _INT_RANGES[prop_type][0]
            return struct.unpack_from(fmt, data)[0]
        if prop_type == PropertyType.PT_BOOLEAN:
            return data[0] != 0
        if prop_type == PropertyType.PT_FLOAT:
            return struct.unpack_from('<f', data)[0]
        if prop_type == PropertyType.PT_DOUBLE:
            return struct.unpack_from('<d', data)[0]
        if prop_type == PropertyType.PT_CURRENCY:
            return Decimal(struct.unpack_from('<q', data)[0]) / 10000
        if prop_type == PropertyType.PT_APPTIME:
            value = oadate_to_datetime(struct.unpack_from('<d', data)[0])
            return value.replace(tzinfo=timezone.utc)
        if prop_type == PropertyType.PT_SYSTIME:
            return filetime_to_datetime(struct.unpack_from('<Q', data)[0])
        if prop_type == PropertyType.PT_UNICODE:
            return bytes(data).decode('utf-16-le', errors='replace')
        if prop_type == PropertyType.PT_STRING8:
            return bytes(data).decode(codepage, errors='replace')
        if prop_type == PropertyType.PT_CLSID:
            return uuid.UUID(bytes_le=bytes(data[:16]))
        if prop_type == PropertyType.PT_BINARY:
            return bytes(data)
        if prop_type == PropertyType.PT_NULL:
            return None
    except (InvalidArgument, OverflowError) as e:
        raise FormatViolation(f'Bad {prop_type.name} value: {e}') from e
    raise UnsupportedType(f'{prop_type.name} values can not be decoded')


@dataclass
class Property:
    """A single encoded property record."""
    id: int
    type: PropertyType
    flags: int = DEFAULT_FLAGS
    data: bytes = b''
    multi_value_index: Optional[int] = None
    codepage: str = DEFAULT_CODEPAGE

    @property
    def tag(self):
        return PropertyTag(self.id, self.type)

    @property
    def name(self):
        """Side stream name."""
        return substg_name(self.id, self.type)

    @property
    def value(self):
        """Decoded value; PT_STRING8 uses the code page it was stored with."""
        return decode_value(self.type, self.data, self.codepage)

    def __repr__(self):
        index = '' if self.multi_value_index is None else f'[{self.multi_value_index}]'
        return (f'<Property {self.id:#06x}{index} {PropertyType(self.type).name} '
                f'{len(self.data)} bytes>')


class PropertySet:
    """Insertion-ordered set of properties keyed by property id.

    Owned by one message, recipient or attachment. Subclasses only add
    the stream header their object type needs.

    Usage:
        props = PropertySet()
        props.add_property(PR_DISPLAY_NAME_W, 'Peter Pan')
        props.write_properties(storage)
    """

    HEADER_SIZE = 0

    def __init__(self, codepage=DEFAULT_CODEPAGE):
        self.codepage = codepage
        self._properties = {}

    def __len__(self):
        return len(self._properties)

    def __iter__(self):
        return iter(self._properties.values())

    def __contains__(self, key):
        return self._key(key) in self._properties

    def __repr__(self):
        return f'<{type(self).__name__} {len(self)} properties>'

    @staticmethod
    def _key(key):
        if isinstance(key, PropertyTag):
            return key.id
        return key

    @staticmethod
    def _tag(tag):
        if isinstance(tag, PropertyTag):
            return tag
        return PropertyTag.from_tag(tag)

    def get(self, key):
        """Return the Property for a tag or id, or None."""
        return self._properties.get(self._key(key))

    def get_value(self, key, default=None):
        prop = self.get(key)
        if prop is None:
            return default
        return decode_value(prop.type, prop.data, self.codepage)

    def remove(self, key):
        return self._properties.pop(self._key(key), None)

    def _encode(self, tag, value, flags):
        data = encode_value(tag.type, value, self.codepage)
        return Property(tag.id, tag.type, int(flags), data, codepage=self.codepage)

    def add_property(self, tag, value, flags=DEFAULT_FLAGS):
        """Encode value and append it.

        Args:
            tag: PropertyTag, or a 32-bit property tag.
            value: Python value for the tag's type, see encode_value().
            flags: PropertyFlags for the descriptor.

        Returns:
            The new Property, or None when value is None (nothing added).

        Raises:
            InvalidArgument: if the id is already present or value does
                not fit the type.
            UnsupportedType: for types that can not be encoded.
        """
        tag = self._tag(tag)
        if value is None:
            logger.debug('Skipping %r: no value', tag)
            return None
        if tag.id in self._properties:
            raise InvalidArgument(f'Property {tag.id:#06x} already present')
        prop = self._encode(tag, value, flags)
        self._properties[tag.id] = prop
        return prop

    def add_or_replace_property(self, tag, value, flags=DEFAULT_FLAGS):
        """Like add_property, but a record with the same id is replaced.

        The value is encoded before anything is removed, so a failing
        encode leaves the set as it was.
        """
        tag = self._tag(tag)
        if value is None:
            logger.debug('Skipping %r: no value', tag)
            return None
        prop = self._encode(tag, value, flags)
        self._properties.pop(tag.id, None)
        self._properties[tag.id] = prop
        return prop

    def add_raw(self, prop):
        """Append an already encoded Property (read paths)."""
        self._properties.pop(prop.id, None)
        self._properties[prop.id] = prop
        return prop

    # --- Header ---

    def _header(self) -> bytes:
        return b''

    def _parse_header(self, data):
        pass

    # --- Write ---

    def write_properties(self, storage, message_size=None) -> int:
        """Write the descriptor stream and side streams into storage.

        Args:
            storage: Storage to write into.
            message_size: When given, a PR_MESSAGE_SIZE descriptor is
                appended holding message_size + side stream bytes + 8.

        Returns:
            Side stream bytes plus the length of the descriptor stream.
        """
        out = bytearray(self._header())
        side_bytes = 0

        for prop in self._properties.values():
            if is_multi_value(prop.type):
                logger.debug('Not writing multi-valued %r', prop)
                continue
            if message_size is not None and prop.id == PR_MESSAGE_SIZE.id:
                continue

            if prop.type in VARIABLE_TYPES:
                size = len(prop.data) + _TERMINATOR_SIZES.get(prop.type, 0)
                inline = struct.pack('<I 4x', size)
                storage.write_stream(prop.name, prop.data)
                side_bytes += len(prop.data)
            else:
                inline = prop.data.ljust(8, b'\x00')

            out += struct.pack('<H H I', prop.type, prop.id, prop.flags)
            out += inline

        if message_size is not None:
            total = message_size + side_bytes + 8
            out += struct.pack('<H H I', PR_MESSAGE_SIZE.type, PR_MESSAGE_SIZE.id,
                               DEFAULT_FLAGS)
            out += struct.pack('<I 4x', total & 0xFFFFFFFF)

        storage.write_stream(PROPERTIES_STREAM, out)
        return side_bytes + len(out)

    # --- Read ---

    @classmethod
    def read_properties(cls, storage, codepage=DEFAULT_CODEPAGE):
        """Parse the descriptor stream of storage into a new set.

        Raises:
            FormatViolation: if the stream or a side stream is missing or
                malformed.
        """
        try:
            data = storage.read_stream(PROPERTIES_STREAM)
        except KeyError as e:
            raise FormatViolation(f'Missing {PROPERTIES_STREAM}') from e

        if len(data) < cls.HEADER_SIZE:
            raise FormatViolation(
                f'Property stream header needs {cls.HEADER_SIZE} bytes, got {len(data)}')
        body_size = len(data) - cls.HEADER_SIZE
        if body_size % DESCRIPTOR_SIZE:
            raise FormatViolation(
                f'Property stream body of {body_size} bytes is not a '
                f'multiple of {DESCRIPTOR_SIZE}')

        props = cls(codepage=codepage)
        props._parse_header(data[:cls.HEADER_SIZE])

        for offset in range(cls.HEADER_SIZE, len(data), DESCRIPTOR_SIZE):
            raw_type, pid, flags = struct.unpack_from('<H H I', data, offset)
            inline = data[offset + 8:offset + DESCRIPTOR_SIZE]
            try:
                ptype = PropertyType(raw_type)
            except ValueError:
                raise FormatViolation(
                    f'Unknown property type {raw_type:#06x} for id {pid:#06x}') from None

            if is_multi_value(ptype) or ptype in UNSUPPORTED_TYPES:
                logger.debug('Not reading %s property %#06x', ptype.name, pid)
                continue

            if ptype in VARIABLE_TYPES:
                size = struct.unpack_from('<I', inline)[0]
                name = substg_name(pid, ptype)
                try:
                    payload = storage.read_stream(name)
                except KeyError as e:
                    raise FormatViolation(f'Missing side stream {name}') from e
                expected = max(size - _TERMINATOR_SIZES.get(ptype, 0), 0)
                if len(payload) > expected:
                    payload = payload[:expected]
                elif len(payload) < expected:
                    logger.warning('%s: %d bytes, descriptor says %d',
                                   name, len(payload), expected)
                if ptype == PropertyType.PT_CLSID and len(payload) != 16:
                    raise FormatViolation(f'{name}: CLSID needs 16 bytes')
            else:
                payload = inline[:PROP_TYPE_SIZES[ptype]]

            props.add_raw(Property(pid, ptype, flags, bytes(payload), codepage=codepage))

        return props


class TopLevelPropertySet(PropertySet):
    """Properties of the message itself.

    Header (32 bytes): 8 reserved, next recipient id, next attachment
    id, recipient count, attachment count, 8 reserved.
    """

    HEADER_SIZE = 32

    def __init__(self, codepage=DEFAULT_CODEPAGE):
        super().__init__(codepage)
        self.next_recipient_id = 0
        self.next_attachment_id = 0
        self.recipient_count = 0
        self.attachment_count = 0

    def _header(self):
        header = struct.pack('<8x I I I I', self.next_recipient_id,
                             self.next_attachment_id, self.recipient_count,
                             self.attachment_count)
        return header.ljust(self.HEADER_SIZE, b'\x00')

    def _parse_header(self, data):
        (self.next_recipient_id, self.next_attachment_id,
         self.recipient_count, self.attachment_count) = struct.unpack_from('<8x I I I I', data)


class EmbeddedMessagePropertySet(TopLevelPropertySet):
    """Properties of a message embedded in an attachment (24 byte header)."""

    HEADER_SIZE = 24


class RecipientPropertySet(PropertySet):
    """Properties of a recipient storage (8 reserved header bytes)."""

    HEADER_SIZE = 8

    def _header(self):
        return bytes(self.HEADER_SIZE)


class AttachmentPropertySet(RecipientPropertySet):
    """Properties of an attachment storage (8 reserved header bytes)."""
