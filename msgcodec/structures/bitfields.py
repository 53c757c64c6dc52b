"""Packed flag words.

Each structure is a plain dataclass with pack()/unpack() over a
fixed-width integer. Bit 0 is the least significant bit of the integer;
how the integer is laid out on the wire (byte order) is up to the caller.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Union

from ..errors import FormatViolation, InvalidArgument


def get_bits(word, shift, width=1):
    """Extract ``width`` bits starting at bit ``shift``."""
    return (word >> shift) & ((1 << width) - 1)


def set_bits(word, shift, width, value):
    """Return word with ``width`` bits at ``shift`` replaced by value."""
    mask = (1 << width) - 1
    if not 0 <= value <= mask:
        raise InvalidArgument(f'{value!r} does not fit in {width} bits')
    return (word & ~(mask << shift)) | (value << shift)


# --- IndexAndKindInformation, [MS-OXMSG] 2.2.3.1.2 ---
#
#   bit 0       Kind (0 = LID, 1 = string name)
#   bits 1-15   GuidIndex
#   bits 16-31  PropertyIndex

@dataclass
class IndexAndKindInformation:
    property_index: int
    guid_index: int
    kind: int

    def pack(self) -> int:
        word = set_bits(0, 0, 1, int(self.kind))
        word = set_bits(word, 1, 15, self.guid_index)
        return set_bits(word, 16, 16, self.property_index)

    @classmethod
    def unpack(cls, word: int):
        return cls(property_index=get_bits(word, 16, 16),
                   guid_index=get_bits(word, 1, 15),
                   kind=get_bits(word, 0, 1))


# --- RecipientFlags, [MS-OXCDATA] 2.8.3.1 ---
#
#   bit 0       R  different transport delivery
#   bit 1       S  transmittable display name same as display name
#   bit 2       T  transmittable display name included
#   bit 3       D  display name included
#   bit 4       E  email address included
#   bits 5-7    address type (RecipientAddressType)
#   bit 8       O  address type string included
#   bits 9-12   reserved
#   bit 13      I  simple display name included
#   bit 14      U  strings are UTF-16LE
#   bit 15      N  recipient does not support RTF

class RecipientAddressType(IntEnum):
    NO_TYPE = 0x0
    X500DN = 0x1
    MS_MAIL = 0x2
    SMTP = 0x3
    FAX = 0x4
    PROFS = 0x5
    PERSONAL_DL1 = 0x6
    PERSONAL_DL2 = 0x7


@dataclass
class RecipientFlags:
    different_transport_delivery: bool = False
    transmittable_same_as_display_name: bool = False
    transmittable_display_name_included: bool = False
    display_name_included: bool = False
    email_address_included: bool = False
    address_type: RecipientAddressType = RecipientAddressType.NO_TYPE
    address_type_included: bool = False
    simple_display_name_included: bool = False
    strings_in_unicode: bool = True
    no_rtf: bool = False

    def pack(self) -> int:
        word = 0
        word = set_bits(word, 0, 1, int(self.different_transport_delivery))
        word = set_bits(word, 1, 1, int(self.transmittable_same_as_display_name))
        word = set_bits(word, 2, 1, int(self.transmittable_display_name_included))
        word = set_bits(word, 3, 1, int(self.display_name_included))
        word = set_bits(word, 4, 1, int(self.email_address_included))
        word = set_bits(word, 5, 3, int(self.address_type))
        word = set_bits(word, 8, 1, int(self.address_type_included))
        word = set_bits(word, 13, 1, int(self.simple_display_name_included))
        word = set_bits(word, 14, 1, int(self.strings_in_unicode))
        return set_bits(word, 15, 1, int(self.no_rtf))

    @classmethod
    def unpack(cls, word: int):
        if not 0 <= word <= 0xFFFF:
            raise FormatViolation(f'Recipient flags out of range: {word:#x}')
        return cls(
            different_transport_delivery=bool(get_bits(word, 0)),
            transmittable_same_as_display_name=bool(get_bits(word, 1)),
            transmittable_display_name_included=bool(get_bits(word, 2)),
            display_name_included=bool(get_bits(word, 3)),
            email_address_included=bool(get_bits(word, 4)),
            address_type=RecipientAddressType(get_bits(word, 5, 3)),
            address_type_included=bool(get_bits(word, 8)),
            simple_display_name_included=bool(get_bits(word, 13)),
            strings_in_unicode=bool(get_bits(word, 14)),
            no_rtf=bool(get_bits(word, 15)),
        )


# --- One-off entry id flags, [MS-OXCDATA] 2.2.5.1 ---
#
#   bit 0       pad
#   bits 1-2    Macintosh encoding
#   bits 3-6    body format code (MessageFormat)
#   bit 7       strings are UTF-16LE, always set on write
#   bit 8       MIME rather than TNEF
#   bits 9-10   reserved
#   bit 11      suppress address book lookup
#   bits 12-15  reserved

class MessageFormat(IntEnum):
    TEXT_ONLY = 0b1100
    HTML_ONLY = 0b1110
    TEXT_AND_HTML = 0b1101


@dataclass
class OneOffFlags:
    message_format: Union[MessageFormat, int] = MessageFormat.TEXT_AND_HTML
    unicode: bool = True
    mime: bool = True
    suppress_lookup: bool = False
    mac_encoding: int = 0

    def pack(self) -> int:
        word = set_bits(0, 1, 2, self.mac_encoding)
        word = set_bits(word, 3, 4, int(self.message_format))
        word = set_bits(word, 7, 1, int(self.unicode))
        word = set_bits(word, 8, 1, int(self.mime))
        return set_bits(word, 11, 1, int(self.suppress_lookup))

    @classmethod
    def unpack(cls, word: int):
        # Outlook writes codes this layout has no name for; keep them as read
        code = get_bits(word, 3, 4)
        try:
            message_format = MessageFormat(code)
        except ValueError:
            message_format = code
        return cls(message_format=message_format,
                   unicode=bool(get_bits(word, 7)),
                   mime=bool(get_bits(word, 8)),
                   suppress_lookup=bool(get_bits(word, 11)),
                   mac_encoding=get_bits(word, 1, 2))
