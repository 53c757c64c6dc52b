"""PropertyName structure, [MS-OXCDATA] 2.6.1.

    Kind (1) | GUID (16) | LID (4)                 Kind 0x00
                         | NameSize (1) | Name      Kind 0x01
                                                    Kind 0xFF, no name
"""

import struct
import uuid
from dataclasses import dataclass
from typing import Optional

from ..errors import FormatViolation, InvalidArgument
from ..mapi.named import NamedPropertyTag, PropertyKind
from ..mapi.properties import PropertyType
from ..utils import ByteReader


@dataclass
class PropertyName:
    kind: PropertyKind
    guid: uuid.UUID
    lid: Optional[int] = None
    name: Optional[str] = None

    @classmethod
    def from_tag(cls, named_tag):
        return cls(named_tag.kind, named_tag.guid, named_tag.lid, named_tag.name)

    def to_tag(self, prop_type=PropertyType.PT_UNSPECIFIED):
        if self.kind == PropertyKind.NOT_ASSOCIATED:
            raise InvalidArgument('A not-associated name has no tag')
        return NamedPropertyTag(self.guid, prop_type, lid=self.lid, name=self.name)

    def to_bytes(self) -> bytes:
        out = struct.pack('<B', self.kind) + self.guid.bytes_le
        if self.kind == PropertyKind.LID:
            out += struct.pack('<I', self.lid)
        elif self.kind == PropertyKind.NAME:
            encoded = self.name.encode('utf-16-le') + b'\x00\x00'
            if len(encoded) > 0xFF:
                raise InvalidArgument(f'Name too long for PropertyName: {self.name!r}')
            out += struct.pack('<B', len(encoded)) + encoded
        return out

    @classmethod
    def read(cls, reader: ByteReader):
        """Read one PropertyName from reader.

        Raises:
            FormatViolation: on an unknown kind or truncated data.
        """
        raw_kind = reader.u8()
        try:
            kind = PropertyKind(raw_kind)
        except ValueError:
            raise FormatViolation(f'Unknown property name kind {raw_kind:#04x}') from None
        guid = uuid.UUID(bytes_le=reader.read(16))
        if kind == PropertyKind.LID:
            return cls(kind, guid, lid=reader.u32())
        if kind == PropertyKind.NAME:
            size = reader.u8()
            raw = reader.read(size)
            name = raw.decode('utf-16-le', errors='replace').rstrip('\x00')
            return cls(kind, guid, name=name)
        return cls(kind, guid)

    @classmethod
    def from_bytes(cls, data):
        return cls.read(ByteReader(data))
