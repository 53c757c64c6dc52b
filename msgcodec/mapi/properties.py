"""MAPI property tags, types, and constants for .msg files.

See [MS-OXCDATA] 2.11.1 for the property types and [MS-OXMSG] 2.4 for
the stream names used inside the compound file.
"""

from dataclasses import dataclass, field
from enum import IntEnum, IntFlag


class PropertyType(IntEnum):
    """Property types (low 2 bytes of a property tag)."""
    PT_UNSPECIFIED = 0x0000
    PT_NULL = 0x0001
    PT_SHORT = 0x0002  # 16-bit integer
    PT_LONG = 0x0003  # 32-bit integer
    PT_FLOAT = 0x0004  # 4-byte float
    PT_DOUBLE = 0x0005  # 8-byte float
    PT_CURRENCY = 0x0006  # 64-bit integer scaled by 10000
    PT_APPTIME = 0x0007  # OLE automation date (double)
    PT_ERROR = 0x000A  # 32-bit error code
    PT_BOOLEAN = 0x000B
    PT_OBJECT = 0x000D  # embedded object, a sub-storage
    PT_I8 = 0x0014  # 64-bit integer
    PT_STRING8 = 0x001E  # 8-bit string in a code page
    PT_UNICODE = 0x001F  # UTF-16LE string
    PT_SYSTIME = 0x0040  # FILETIME (8 bytes)
    PT_CLSID = 0x0048  # 16-byte GUID
    PT_SVREID = 0x00FB
    PT_SRESTRICT = 0x00FD
    PT_ACTIONS = 0x00FE
    PT_BINARY = 0x0102  # Binary blob
    PT_MV_SHORT = 0x1002
    PT_MV_LONG = 0x1003
    PT_MV_FLOAT = 0x1004
    PT_MV_DOUBLE = 0x1005
    PT_MV_CURRENCY = 0x1006
    PT_MV_APPTIME = 0x1007
    PT_MV_I8 = 0x1014
    PT_MV_STRING8 = 0x101E
    PT_MV_UNICODE = 0x101F
    PT_MV_SYSTIME = 0x1040
    PT_MV_CLSID = 0x1048
    PT_MV_BINARY = 0x1102


MV_FLAG = 0x1000

# Data lengths of the fixed-size types as stored in a property descriptor.
# Recipient rows store PT_BOOLEAN in 2 bytes, see structures/recipient_row.py
PROP_TYPE_SIZES = {
    PropertyType.PT_SHORT: 2,
    PropertyType.PT_LONG: 4,
    PropertyType.PT_FLOAT: 4,
    PropertyType.PT_ERROR: 4,
    PropertyType.PT_BOOLEAN: 1,
    PropertyType.PT_DOUBLE: 8,
    PropertyType.PT_CURRENCY: 8,
    PropertyType.PT_APPTIME: 8,
    PropertyType.PT_I8: 8,
    PropertyType.PT_SYSTIME: 8,
    PropertyType.PT_CLSID: 16,
}

# Variable-length types, payload lives in a side stream
VARIABLE_TYPES = (
    PropertyType.PT_STRING8,
    PropertyType.PT_UNICODE,
    PropertyType.PT_BINARY,
    PropertyType.PT_CLSID,
)

# Recognised, but nothing in this package encodes them
UNSUPPORTED_TYPES = (
    PropertyType.PT_UNSPECIFIED,
    PropertyType.PT_NULL,
    PropertyType.PT_OBJECT,
    PropertyType.PT_SVREID,
    PropertyType.PT_SRESTRICT,
    PropertyType.PT_ACTIONS,
)


def is_multi_value(prop_type):
    return bool(prop_type & MV_FLAG)


def base_type(prop_type):
    return PropertyType(prop_type & ~MV_FLAG)


def is_fixed_type(prop_type):
    """Fixed types fit in the 8 inline bytes of a descriptor."""
    return PROP_TYPE_SIZES.get(prop_type, 0xFFFF) <= 8


def fixed_size(prop_type):
    return PROP_TYPE_SIZES.get(prop_type, 0)


def is_variable_type(prop_type):
    return prop_type in VARIABLE_TYPES


def prop_tag(prop_id, prop_type):
    return (prop_id << 16) | prop_type


def prop_id(tag):
    return (tag >> 16) & 0xFFFF


def prop_type(tag):
    return tag & 0xFFFF


def substg_name(prop_id, prop_type):
    """Side stream name for a property, e.g. __substg1.0_3001001F."""
    return f'{SUBSTG_PREFIX}{prop_id:04X}{prop_type:04X}'


class PropertyFlags(IntFlag):
    """Descriptor flags, see [MS-OXMSG] 2.4.2.1."""
    PROPATTR_MANDATORY = 0x00000001
    PROPATTR_READABLE = 0x00000002
    PROPATTR_WRITABLE = 0x00000004


DEFAULT_FLAGS = PropertyFlags.PROPATTR_READABLE | PropertyFlags.PROPATTR_WRITABLE


@dataclass(frozen=True)
class PropertyTag:
    """An immutable (id, type) pair identifying a property slot."""
    id: int
    type: PropertyType
    name: str = field(default='', compare=False)

    def __post_init__(self):
        if not 0 <= self.id <= 0xFFFF:
            raise ValueError(f'Property id out of range: {self.id:#x}')
        object.__setattr__(self, 'type', PropertyType(self.type))

    @classmethod
    def from_tag(cls, tag, name=''):
        return cls(prop_id(tag), PropertyType(prop_type(tag)), name)

    @property
    def tag(self):
        return prop_tag(self.id, self.type)

    @property
    def stream_name(self):
        return substg_name(self.id, self.type)

    def __repr__(self):
        label = self.name or f'{self.id:#06x}'
        return f'<PropertyTag {label} {self.type.name}>'


# --- Stream and storage names ([MS-OXMSG] 2.2) ---
SUBSTG_PREFIX = '__substg1.0_'
PROPERTIES_STREAM = '__properties_version1.0'
RECIP_STORAGE_PREFIX = '__recip_version1.0_#'
ATTACH_STORAGE_PREFIX = '__attach_version1.0_#'
NAMEID_STORAGE = '__nameid_version1.0'
GUID_STREAM = SUBSTG_PREFIX + '00020102'
ENTRY_STREAM = SUBSTG_PREFIX + '00030102'
STRING_STREAM = SUBSTG_PREFIX + '00040102'


def _tag(prop_id, prop_type, name):
    return PropertyTag(prop_id, prop_type, name)


_T = PropertyType

# --- Message Properties ---
PR_MESSAGE_CLASS_W = _tag(0x001A, _T.PT_UNICODE, 'PR_MESSAGE_CLASS_W')
PR_SUBJECT_W = _tag(0x0037, _T.PT_UNICODE, 'PR_SUBJECT_W')
PR_SUBJECT_PREFIX_W = _tag(0x003D, _T.PT_UNICODE, 'PR_SUBJECT_PREFIX_W')
PR_NORMALIZED_SUBJECT_W = _tag(0x0E1D, _T.PT_UNICODE, 'PR_NORMALIZED_SUBJECT_W')
PR_BODY_W = _tag(0x1000, _T.PT_UNICODE, 'PR_BODY_W')
PR_RTF_COMPRESSED = _tag(0x1009, _T.PT_BINARY, 'PR_RTF_COMPRESSED')
PR_RTF_IN_SYNC = _tag(0x0E1F, _T.PT_BOOLEAN, 'PR_RTF_IN_SYNC')
PR_HTML = _tag(0x1013, _T.PT_BINARY, 'PR_HTML')
PR_INTERNET_MESSAGE_ID_W = _tag(0x1035, _T.PT_UNICODE, 'PR_INTERNET_MESSAGE_ID_W')
PR_MESSAGE_FLAGS = _tag(0x0E07, _T.PT_LONG, 'PR_MESSAGE_FLAGS')
PR_MESSAGE_SIZE = _tag(0x0E08, _T.PT_LONG, 'PR_MESSAGE_SIZE')
PR_IMPORTANCE = _tag(0x0017, _T.PT_LONG, 'PR_IMPORTANCE')
PR_PRIORITY = _tag(0x0026, _T.PT_LONG, 'PR_PRIORITY')
PR_SENSITIVITY = _tag(0x0036, _T.PT_LONG, 'PR_SENSITIVITY')
PR_HASATTACH = _tag(0x0E1B, _T.PT_BOOLEAN, 'PR_HASATTACH')
PR_MESSAGE_DELIVERY_TIME = _tag(0x0E06, _T.PT_SYSTIME, 'PR_MESSAGE_DELIVERY_TIME')
PR_CLIENT_SUBMIT_TIME = _tag(0x0039, _T.PT_SYSTIME, 'PR_CLIENT_SUBMIT_TIME')
PR_CREATION_TIME = _tag(0x3007, _T.PT_SYSTIME, 'PR_CREATION_TIME')
PR_LAST_MODIFICATION_TIME = _tag(0x3008, _T.PT_SYSTIME, 'PR_LAST_MODIFICATION_TIME')
PR_INTERNET_CPID = _tag(0x3FDE, _T.PT_LONG, 'PR_INTERNET_CPID')  # 65001 = UTF-8
PR_MESSAGE_CODEPAGE = _tag(0x3FFD, _T.PT_LONG, 'PR_MESSAGE_CODEPAGE')
PR_STORE_SUPPORT_MASK = _tag(0x340D, _T.PT_LONG, 'PR_STORE_SUPPORT_MASK')
PR_DISPLAY_TO_W = _tag(0x0E04, _T.PT_UNICODE, 'PR_DISPLAY_TO_W')
PR_DISPLAY_CC_W = _tag(0x0E03, _T.PT_UNICODE, 'PR_DISPLAY_CC_W')
PR_DISPLAY_BCC_W = _tag(0x0E02, _T.PT_UNICODE, 'PR_DISPLAY_BCC_W')

# --- Sender Properties ---
PR_SENDER_NAME_W = _tag(0x0C1A, _T.PT_UNICODE, 'PR_SENDER_NAME_W')
PR_SENDER_EMAIL_ADDRESS_W = _tag(0x0C1F, _T.PT_UNICODE, 'PR_SENDER_EMAIL_ADDRESS_W')
PR_SENDER_ADDRTYPE_W = _tag(0x0C1E, _T.PT_UNICODE, 'PR_SENDER_ADDRTYPE_W')
PR_SENT_REPRESENTING_NAME_W = _tag(0x0042, _T.PT_UNICODE, 'PR_SENT_REPRESENTING_NAME_W')
PR_SENT_REPRESENTING_EMAIL_ADDRESS_W = _tag(
    0x0065, _T.PT_UNICODE, 'PR_SENT_REPRESENTING_EMAIL_ADDRESS_W')
PR_SENT_REPRESENTING_ADDRTYPE_W = _tag(0x0064, _T.PT_UNICODE, 'PR_SENT_REPRESENTING_ADDRTYPE_W')

# --- Recipient Properties ---
PR_ROWID = _tag(0x3000, _T.PT_LONG, 'PR_ROWID')
PR_DISPLAY_NAME_W = _tag(0x3001, _T.PT_UNICODE, 'PR_DISPLAY_NAME_W')
PR_ADDRTYPE_W = _tag(0x3002, _T.PT_UNICODE, 'PR_ADDRTYPE_W')
PR_EMAIL_ADDRESS_W = _tag(0x3003, _T.PT_UNICODE, 'PR_EMAIL_ADDRESS_W')
PR_SEARCH_KEY = _tag(0x300B, _T.PT_BINARY, 'PR_SEARCH_KEY')
PR_RECIPIENT_TYPE = _tag(0x0C15, _T.PT_LONG, 'PR_RECIPIENT_TYPE')
PR_RESPONSIBILITY = _tag(0x0E0F, _T.PT_BOOLEAN, 'PR_RESPONSIBILITY')
PR_DISPLAY_TYPE = _tag(0x3900, _T.PT_LONG, 'PR_DISPLAY_TYPE')
PR_SMTP_ADDRESS_W = _tag(0x39FE, _T.PT_UNICODE, 'PR_SMTP_ADDRESS_W')
PR_7BIT_DISPLAY_NAME_W = _tag(0x39FF, _T.PT_UNICODE, 'PR_7BIT_DISPLAY_NAME_W')
PR_TRANSMITABLE_DISPLAY_NAME_W = _tag(0x3A20, _T.PT_UNICODE, 'PR_TRANSMITABLE_DISPLAY_NAME_W')
PR_SEND_RICH_INFO = _tag(0x3A40, _T.PT_BOOLEAN, 'PR_SEND_RICH_INFO')
PR_OBJECT_TYPE = _tag(0x0FFE, _T.PT_LONG, 'PR_OBJECT_TYPE')

# Recipient types
MAPI_ORIG = 0
MAPI_TO = 1
MAPI_CC = 2
MAPI_BCC = 3

# Object and display types
MAPI_MAILUSER = 6
MAPI_ATTACH = 7
DT_MAILUSER = 0

# --- Attachment Properties ---
PR_ATTACH_NUM = _tag(0x0E21, _T.PT_LONG, 'PR_ATTACH_NUM')
PR_ATTACH_METHOD = _tag(0x3705, _T.PT_LONG, 'PR_ATTACH_METHOD')
PR_ATTACH_EXTENSION_W = _tag(0x3703, _T.PT_UNICODE, 'PR_ATTACH_EXTENSION_W')
PR_ATTACH_FILENAME_W = _tag(0x3704, _T.PT_UNICODE, 'PR_ATTACH_FILENAME_W')
PR_ATTACH_LONG_FILENAME_W = _tag(0x3707, _T.PT_UNICODE, 'PR_ATTACH_LONG_FILENAME_W')
PR_ATTACH_SIZE = _tag(0x0E20, _T.PT_LONG, 'PR_ATTACH_SIZE')
PR_ATTACH_DATA_BIN = _tag(0x3701, _T.PT_BINARY, 'PR_ATTACH_DATA_BIN')
PR_ATTACH_MIME_TAG_W = _tag(0x370E, _T.PT_UNICODE, 'PR_ATTACH_MIME_TAG_W')
PR_ATTACH_CONTENT_ID_W = _tag(0x3712, _T.PT_UNICODE, 'PR_ATTACH_CONTENT_ID_W')
PR_RENDERING_POSITION = _tag(0x370B, _T.PT_LONG, 'PR_RENDERING_POSITION')
PR_ATTACHMENT_HIDDEN = _tag(0x7FFE, _T.PT_BOOLEAN, 'PR_ATTACHMENT_HIDDEN')

# Attachment methods
ATTACH_BY_VALUE = 1

# --- Common Entry ID Properties ---
PR_ENTRYID = _tag(0x0FFF, _T.PT_BINARY, 'PR_ENTRYID')
PR_RECORD_KEY = _tag(0x0FF9, _T.PT_BINARY, 'PR_RECORD_KEY')

# --- Message Flags ---
MSGFLAG_READ = 0x0001
MSGFLAG_UNMODIFIED = 0x0002
MSGFLAG_UNSENT = 0x0008
MSGFLAG_HASATTACH = 0x0010

# --- Store Support Mask ---
STORE_UNICODE_OK = 0x00040000

# First id handed out to named properties
NAMED_PROPERTY_BASE = 0x8000
