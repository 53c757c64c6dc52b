"""Named property sets and tags.

A named property is addressed by a property set GUID plus either a
numeric long id (LID) or a string name, instead of a fixed property id.
See [MS-OXPROPS] 1.3.2 and [MS-OXMSG] 2.2.3.
"""

import uuid
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from .properties import PropertyType

# Well-known property sets. PS_MAPI and PS_PUBLIC_STRINGS have the fixed
# GUID indexes 1 and 2 and are never written to the GUID stream.
PS_MAPI = uuid.UUID('00020328-0000-0000-C000-000000000046')
PS_PUBLIC_STRINGS = uuid.UUID('00020329-0000-0000-C000-000000000046')
PS_INTERNET_HEADERS = uuid.UUID('00020386-0000-0000-C000-000000000046')
PSETID_COMMON = uuid.UUID('00062008-0000-0000-C000-000000000046')
PSETID_ADDRESS = uuid.UUID('00062004-0000-0000-C000-000000000046')
PSETID_APPOINTMENT = uuid.UUID('00062002-0000-0000-C000-000000000046')
PSETID_TASK = uuid.UUID('00062003-0000-0000-C000-000000000046')
PSETID_MEETING = uuid.UUID('6ED8DA90-450B-101B-98DA-00AA003F1305')

GUID_INDEX_PS_MAPI = 1
GUID_INDEX_PS_PUBLIC_STRINGS = 2
GUID_INDEX_FIRST_STREAM = 3


class PropertyKind(IntEnum):
    LID = 0x00
    NAME = 0x01
    NOT_ASSOCIATED = 0xFF


@dataclass(frozen=True)
class NamedPropertyTag:
    """A named property slot: property set GUID, LID or name, and type.

    Exactly one of ``lid`` and ``name`` is set.
    """
    guid: uuid.UUID
    type: PropertyType
    lid: Optional[int] = None
    name: Optional[str] = None

    def __post_init__(self):
        if (self.lid is None) == (self.name is None):
            raise ValueError('NamedPropertyTag needs exactly one of lid or name')
        if self.lid is not None and not 0 <= self.lid <= 0xFFFFFFFF:
            raise ValueError(f'LID out of range: {self.lid:#x}')
        object.__setattr__(self, 'type', PropertyType(self.type))

    @property
    def kind(self):
        return PropertyKind.LID if self.lid is not None else PropertyKind.NAME

    @property
    def key(self):
        """Identity of the name, independent of the value type."""
        return (self.guid, self.kind, self.lid if self.lid is not None else self.name)


def guid_index_for(guid, stream_guids):
    """GUID index of a property set: 1, 2 or 3 + position in the GUID stream."""
    if guid == PS_MAPI:
        return GUID_INDEX_PS_MAPI
    if guid == PS_PUBLIC_STRINGS:
        return GUID_INDEX_PS_PUBLIC_STRINGS
    return GUID_INDEX_FIRST_STREAM + stream_guids.index(guid)


# --- A few common named properties ---
PidLidPrivate = NamedPropertyTag(PSETID_COMMON, PropertyType.PT_BOOLEAN, lid=0x8506)
PidLidSmartNoAttach = NamedPropertyTag(PSETID_COMMON, PropertyType.PT_BOOLEAN, lid=0x8514)
PidLidInternetAccountName = NamedPropertyTag(PSETID_COMMON, PropertyType.PT_UNICODE, lid=0x8580)
PidLidAutoStartCheck = NamedPropertyTag(PSETID_APPOINTMENT, PropertyType.PT_BOOLEAN, lid=0x8244)
PidLidEmail1EmailAddress = NamedPropertyTag(PSETID_ADDRESS, PropertyType.PT_UNICODE, lid=0x8083)
PidNameKeywords = NamedPropertyTag(PS_PUBLIC_STRINGS, PropertyType.PT_MV_UNICODE, name='Keywords')
PidNameContentClass = NamedPropertyTag(
    PS_INTERNET_HEADERS, PropertyType.PT_UNICODE, name='content-class')
