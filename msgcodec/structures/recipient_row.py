"""RecipientRow and UnsendableRecipients, [MS-OXCDATA] 2.8.3.

A recipient row is a header selected by the address type bits of the
RecipientFlags, optional strings gated by the flag bits, and a list of
property columns:

    column count (2) | reserved (6) | { type (2) | id (2) | value }*

Column values use row widths: PT_BOOLEAN takes 2 bytes, strings and
binaries carry a 2-byte length, multi-valued columns a 2-byte count.
"""

import logging
import struct
from dataclasses import dataclass, field
from typing import List, Optional

from ..errors import FormatViolation, InvalidArgument, UnsupportedType
from ..mapi.properties import (
    PropertyType, PROP_TYPE_SIZES, UNSUPPORTED_TYPES,
    PR_ADDRTYPE_W, PR_EMAIL_ADDRESS_W, PR_SMTP_ADDRESS_W, PR_DISPLAY_NAME_W,
    PR_7BIT_DISPLAY_NAME_W, PR_TRANSMITABLE_DISPLAY_NAME_W, PR_RECIPIENT_TYPE,
    PR_DISPLAY_TYPE, base_type, is_multi_value,
)
from ..streams.properties import Property, decode_value
from ..utils import ByteReader, encode_string8, encode_unicode
from .bitfields import RecipientAddressType, RecipientFlags
from .entry_id import AddressBookEntryId

logger = logging.getLogger(__name__)

# Row widths differ from descriptor widths for PT_BOOLEAN
ROW_TYPE_SIZES = dict(PROP_TYPE_SIZES)
ROW_TYPE_SIZES[PropertyType.PT_BOOLEAN] = 2

_COUNTED_TYPES = (
    PropertyType.PT_STRING8,
    PropertyType.PT_UNICODE,
    PropertyType.PT_BINARY,
)

_STRING_TYPES = (PropertyType.PT_UNICODE, PropertyType.PT_STRING8)


class RecipientDisplayType:
    MESSAGING_USER = 0x00
    DISTRIBUTION_LIST = 0x01
    FORUM = 0x02
    AUTOMATED_AGENT = 0x03
    ADDRESS_BOOK = 0x04
    PRIVATE_DISTRIBUTION_LIST = 0x05
    REMOTE_ADDRESS_BOOK = 0x06


def remove_single_quotes(address):
    """Strip one leading and one trailing single quote."""
    if not address:
        return ''
    if address.startswith("'"):
        address = address[1:]
    if address.endswith("'"):
        address = address[:-1]
    return address


@dataclass
class RecipientRow:
    address_type: RecipientAddressType = RecipientAddressType.NO_TYPE
    address_prefix_used: int = 0
    display_type: int = RecipientDisplayType.MESSAGING_USER
    x500_dn: Optional[str] = None
    entry_id: Optional[AddressBookEntryId] = None
    search_key: bytes = b''
    address_type_string: Optional[str] = None
    email_address: Optional[str] = None
    display_name: Optional[str] = None
    simple_display_name: Optional[str] = None
    transmittable_display_name: Optional[str] = None
    recipient_type: Optional[int] = None
    supports_rtf: bool = True
    properties: List[Property] = field(default_factory=list)

    def column(self, tag):
        """First column with the tag's id, or None."""
        for prop in self.properties:
            if prop.id == tag.id:
                return prop
        return None

    def column_string(self, tag):
        prop = self.column(tag)
        if prop is None or PropertyType(prop.type) not in _STRING_TYPES:
            return None
        return decode_value(prop.type, prop.data).rstrip('\x00')


# --- Columns ---

def _read_column_value(reader, ptype):
    if ptype in _COUNTED_TYPES:
        length = reader.i16()
        if length < 0:
            raise FormatViolation(f'Negative column length {length}')
        return reader.read(length)
    if ptype == PropertyType.PT_BOOLEAN:
        return reader.read(2)[:1]
    return reader.read(ROW_TYPE_SIZES[ptype])


def read_columns(reader, count):
    """Read count tagged property columns."""
    properties = []
    for _ in range(count):
        raw_type = reader.u16()
        pid = reader.u16()
        try:
            ptype = PropertyType(raw_type)
        except ValueError:
            raise FormatViolation(
                f'Unknown column type {raw_type:#06x} for id {pid:#06x}') from None

        if ptype == PropertyType.PT_NULL:
            properties.append(Property(pid, ptype, data=b''))
        elif ptype == PropertyType.PT_OBJECT:
            raise UnsupportedType('The PT_OBJECT type is not supported in recipient rows')
        elif ptype in UNSUPPORTED_TYPES:
            raise UnsupportedType(f'{ptype.name} columns are not supported')
        elif is_multi_value(ptype):
            element_type = base_type(ptype)
            values = reader.i16()
            if values < 0:
                raise FormatViolation(f'Negative value count {values}')
            for index in range(values):
                data = _read_column_value(reader, element_type)
                properties.append(Property(pid, ptype, data=data, multi_value_index=index))
        else:
            properties.append(Property(pid, ptype, data=_read_column_value(reader, ptype)))
    return properties


def _write_column_value(ptype, data):
    if ptype in _COUNTED_TYPES:
        if len(data) > 0x7FFF:
            raise InvalidArgument(f'Column value of {len(data)} bytes is too long')
        return struct.pack('<h', len(data)) + data
    width = ROW_TYPE_SIZES.get(ptype)
    if width is None:
        raise UnsupportedType(f'{PropertyType(ptype).name} columns are not supported')
    return data[:width].ljust(width, b'\x00')


def write_columns(properties):
    """Encode columns; multi-valued elements with the same id are grouped."""
    out = bytearray()
    count = 0
    i = 0
    while i < len(properties):
        prop = properties[i]
        ptype = PropertyType(prop.type)
        out += struct.pack('<H H', ptype, prop.id)
        count += 1
        if ptype == PropertyType.PT_NULL:
            i += 1
        elif is_multi_value(ptype):
            group = [prop]
            i += 1
            while (i < len(properties) and properties[i].id == prop.id
                   and properties[i].type == prop.type):
                group.append(properties[i])
                i += 1
            out += struct.pack('<h', len(group))
            for element in group:
                out += _write_column_value(base_type(ptype), element.data)
        else:
            out += _write_column_value(ptype, prop.data)
            i += 1
    return count, bytes(out)


# --- Rows ---

def _fill_from_columns(row, same_as_display_name):
    if not row.email_address:
        address_type = row.column_string(PR_ADDRTYPE_W)
        smtp = row.column_string(PR_SMTP_ADDRESS_W)
        email = row.column_string(PR_EMAIL_ADDRESS_W)
        if address_type == 'EX' and smtp is not None:
            row.email_address = remove_single_quotes(smtp)
        elif email is not None:
            row.email_address = remove_single_quotes(email)

    if not row.display_name:
        row.display_name = row.column_string(PR_DISPLAY_NAME_W) or row.display_name
    if not row.simple_display_name:
        row.simple_display_name = (row.column_string(PR_7BIT_DISPLAY_NAME_W)
                                   or row.simple_display_name)
    if not row.transmittable_display_name:
        row.transmittable_display_name = (row.column_string(PR_TRANSMITABLE_DISPLAY_NAME_W)
                                          or row.transmittable_display_name)
    if same_as_display_name:
        row.transmittable_display_name = row.display_name

    recipient_type = row.column(PR_RECIPIENT_TYPE)
    if recipient_type is not None and recipient_type.type == PropertyType.PT_LONG:
        row.recipient_type = decode_value(recipient_type.type, recipient_type.data)
    display_type = row.column(PR_DISPLAY_TYPE)
    if display_type is not None and display_type.type == PropertyType.PT_LONG:
        row.display_type = decode_value(display_type.type, display_type.data)


def decode_recipient_row(reader: ByteReader, flags: RecipientFlags) -> RecipientRow:
    """Read one recipient row.

    Args:
        reader: ByteReader positioned at the row.
        flags: RecipientFlags shared by the rows of the block.

    Raises:
        FormatViolation: on truncated data or unknown column types.
        UnsupportedType: on PT_OBJECT and other unsupported columns.
    """
    row = RecipientRow(address_type=flags.address_type, supports_rtf=not flags.no_rtf)
    read_string = reader.unicode_z if flags.strings_in_unicode else reader.ascii_z

    if flags.address_type == RecipientAddressType.X500DN:
        row.address_prefix_used = reader.u8()
        row.display_type = reader.u8()
        row.x500_dn = reader.ascii_z()
    elif flags.address_type in (RecipientAddressType.PERSONAL_DL1,
                                RecipientAddressType.PERSONAL_DL2):
        entry_id_size = reader.u16()
        row.entry_id = AddressBookEntryId.from_bytes(reader.read(entry_id_size))
        search_key_size = reader.u16()
        row.search_key = reader.read(search_key_size)
    elif flags.address_type == RecipientAddressType.NO_TYPE:
        if flags.address_type_included:
            row.address_type_string = reader.ascii_z()

    if flags.email_address_included:
        row.email_address = read_string()
    if flags.display_name_included:
        row.display_name = read_string()
    if flags.simple_display_name_included:
        row.simple_display_name = read_string()
    if flags.transmittable_same_as_display_name:
        row.transmittable_display_name = row.display_name
    elif flags.transmittable_display_name_included:
        row.transmittable_display_name = read_string()

    count = reader.i16()
    if count < 0:
        raise FormatViolation(f'Negative column count {count}')
    reader.read(6)
    row.properties = read_columns(reader, count)

    _fill_from_columns(row, flags.transmittable_same_as_display_name)
    return row


def encode_recipient_row(row: RecipientRow, flags: RecipientFlags) -> bytes:
    """Write one recipient row; the inverse of decode_recipient_row()."""
    if flags.strings_in_unicode:
        def write_string(value):
            return encode_unicode(value or '')
    else:
        def write_string(value):
            return encode_string8(value or '', 'latin-1')

    out = bytearray()
    if flags.address_type == RecipientAddressType.X500DN:
        out += struct.pack('<B B', row.address_prefix_used, row.display_type)
        out += (row.x500_dn or '').encode('ascii') + b'\x00'
    elif flags.address_type in (RecipientAddressType.PERSONAL_DL1,
                                RecipientAddressType.PERSONAL_DL2):
        if row.entry_id is None:
            raise InvalidArgument('Distribution list rows need an entry id')
        entry_id = row.entry_id.to_bytes()
        out += struct.pack('<H', len(entry_id)) + entry_id
        out += struct.pack('<H', len(row.search_key)) + row.search_key
    elif flags.address_type == RecipientAddressType.NO_TYPE:
        if flags.address_type_included:
            out += (row.address_type_string or '').encode('ascii') + b'\x00'

    if flags.email_address_included:
        out += write_string(row.email_address)
    if flags.display_name_included:
        out += write_string(row.display_name)
    if flags.simple_display_name_included:
        out += write_string(row.simple_display_name)
    if (flags.transmittable_display_name_included
            and not flags.transmittable_same_as_display_name):
        out += write_string(row.transmittable_display_name)

    count, columns = write_columns(row.properties)
    out += struct.pack('<h 6x', count)
    out += columns
    return bytes(out)


@dataclass
class UnsendableRecipients:
    """A block of recipient rows sharing one set of RecipientFlags.

    Layout: row count (4), flags (4, RecipientFlags in the low 16 bits),
    then the rows.
    """
    flags: RecipientFlags = field(default_factory=RecipientFlags)
    rows: List[RecipientRow] = field(default_factory=list)

    @classmethod
    def from_bytes(cls, data):
        reader = ByteReader(data)
        row_count = reader.u32()
        flags = RecipientFlags.unpack(reader.u32() & 0xFFFF)
        rows = [decode_recipient_row(reader, flags) for _ in range(row_count)]
        if reader.remaining:
            logger.warning('%d bytes after %d recipient rows', reader.remaining, row_count)
        return cls(flags, rows)

    def to_bytes(self):
        out = bytearray(struct.pack('<I I', len(self.rows), self.flags.pack()))
        for row in self.rows:
            out += encode_recipient_row(row, self.flags)
        return bytes(out)
