"""Entry id structures used by recipients.

See [MS-OXCDATA] 2.2.5.1 (one-off entry id) and 2.2.5.2 (address book
entry id).
"""

import logging
import struct
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Union

from ..errors import FormatViolation, InvalidArgument
from ..utils import ByteReader, encode_unicode
from .bitfields import MessageFormat, OneOffFlags

logger = logging.getLogger(__name__)

ONE_OFF_PROVIDER_UID = bytes([
    0x81, 0x2B, 0x1F, 0xA4, 0xBE, 0xA3, 0x10, 0x19,
    0x9D, 0x6E, 0x00, 0xDD, 0x01, 0x0F, 0x54, 0x02,
])
ADDRESS_BOOK_PROVIDER_UID = bytes([
    0xDC, 0xA7, 0x40, 0xC8, 0xC0, 0x42, 0x10, 0x1A,
    0xB4, 0xB9, 0x08, 0x00, 0x2B, 0x2F, 0xE1, 0x82,
])


class AddressType(Enum):
    """Address type literals written into entry ids and PR_ADDRTYPE_W."""
    UNKNOWN = ''
    EX = 'EX'
    SMTP = 'SMTP'
    FAX = 'FAX'
    MHS = 'MHS'
    PROFS = 'PROFS'
    X400 = 'X400'


class AddressBookEntryIdType(IntEnum):
    LOCAL_MAIL_USER = 0x00000000
    DISTRIBUTION_LIST = 0x00000001
    BULLETIN_BOARD_OR_PUBLIC_FOLDER = 0x00000002
    AUTOMATED_MAILBOX = 0x00000003
    ORGANIZATIONAL_MAILBOX = 0x00000004
    PRIVATE_DISTRIBUTION_LIST = 0x00000005
    REMOTE_MAIL_USER = 0x00000006
    CONTAINER = 0x00000100
    TEMPLATE = 0x00000101
    ONE_OFF_USER = 0x00000102
    SEARCH = 0x00000200


@dataclass
class OneOffEntryId:
    """Entry id of a recipient that is not in any address book.

    Layout: 4 zero flag bytes, the one-off provider UID, 2 zero version
    bytes, a 16-bit flags word written big-endian, then display name,
    address type and email address as null-terminated UTF-16LE.

    Decoding keeps address types and body format codes it does not know
    (address_type as a plain str); encoding only accepts known ones.
    """
    email: str
    display_name: str
    address_type: Union[AddressType, str] = AddressType.SMTP
    flags: OneOffFlags = field(default_factory=OneOffFlags)

    @classmethod
    def create(cls, email, display_name, address_type=AddressType.SMTP,
               message_format=MessageFormat.TEXT_AND_HTML,
               suppress_lookup=False, mime=True):
        return cls(email, display_name, AddressType(address_type),
                   OneOffFlags(message_format=message_format, mime=mime,
                               suppress_lookup=suppress_lookup))

    def to_bytes(self) -> bytes:
        if not self.flags.unicode:
            raise InvalidArgument('One-off entry ids are always written in Unicode')
        try:
            address_type = AddressType(self.address_type)
        except ValueError:
            raise InvalidArgument(f'Unknown address type {self.address_type!r}') from None
        try:
            MessageFormat(self.flags.message_format)
        except ValueError:
            raise InvalidArgument(
                f'Unknown body format code {self.flags.message_format!r}') from None
        out = bytearray(4)
        out += ONE_OFF_PROVIDER_UID
        out += bytes(2)
        out += struct.pack('>H', self.flags.pack())
        out += encode_unicode(self.display_name or '')
        out += encode_unicode(address_type.value)
        out += encode_unicode(self.email or '')
        return bytes(out)

    @classmethod
    def from_bytes(cls, data):
        """Parse a one-off entry id.

        Raises:
            FormatViolation: on a wrong provider UID or truncated data.
        """
        reader = ByteReader(data)
        reader.read(4)
        if reader.read(16) != ONE_OFF_PROVIDER_UID:
            raise FormatViolation('Not a one-off entry id')
        reader.read(2)
        flags = OneOffFlags.unpack(struct.unpack('>H', reader.read(2))[0])
        if flags.unicode:
            read_string = reader.unicode_z
        else:
            read_string = reader.ascii_z
        display_name = read_string()
        address_type = read_string()
        email = read_string()
        try:
            address_type = AddressType(address_type)
        except ValueError:
            logger.debug('Keeping unknown address type %r', address_type)
        return cls(email, display_name, address_type, flags)


@dataclass
class AddressBookEntryId:
    """Entry id of an address book object, identified by its X500 DN."""
    x500_dn: str
    type: AddressBookEntryIdType = AddressBookEntryIdType.LOCAL_MAIL_USER
    flags: int = 0
    version: int = 1

    def to_bytes(self) -> bytes:
        return (struct.pack('<I', self.flags) + ADDRESS_BOOK_PROVIDER_UID
                + struct.pack('<I I', self.version, self.type)
                + self.x500_dn.encode('ascii') + b'\x00')

    @classmethod
    def from_bytes(cls, data):
        reader = ByteReader(data)
        flags = reader.u32()
        if reader.read(16) != ADDRESS_BOOK_PROVIDER_UID:
            raise FormatViolation('Not an address book entry id')
        version = reader.u32()
        raw_type = reader.u32()
        try:
            entry_type = AddressBookEntryIdType(raw_type)
        except ValueError:
            raise FormatViolation(f'Unknown address book entry type {raw_type:#x}') from None
        return cls(reader.ascii_z(), entry_type, flags, version)
