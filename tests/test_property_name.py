import struct

import pytest

from msgcodec.errors import FormatViolation, InvalidArgument
from msgcodec.mapi.named import (
    PS_INTERNET_HEADERS, PSETID_COMMON, PidLidPrivate, PidNameContentClass, PropertyKind,
)
from msgcodec.structures.property_name import PropertyName
from msgcodec.utils import ByteReader


def test_lid_layout():
    name = PropertyName.from_tag(PidLidPrivate)
    data = name.to_bytes()
    assert data == b'\x00' + PSETID_COMMON.bytes_le + struct.pack('<I', 0x8506)
    assert PropertyName.from_bytes(data) == name


def test_string_layout():
    name = PropertyName.from_tag(PidNameContentClass)
    data = name.to_bytes()
    encoded = 'content-class'.encode('utf-16-le') + b'\x00\x00'
    assert data == b'\x01' + PS_INTERNET_HEADERS.bytes_le + bytes([len(encoded)]) + encoded
    assert PropertyName.from_bytes(data) == name


def test_to_tag():
    name = PropertyName.from_bytes(PropertyName.from_tag(PidLidPrivate).to_bytes())
    assert name.to_tag(PidLidPrivate.type) == PidLidPrivate


def test_not_associated():
    data = b'\xff' + PSETID_COMMON.bytes_le
    name = PropertyName.from_bytes(data)
    assert name.kind == PropertyKind.NOT_ASSOCIATED
    assert name.to_bytes() == data
    with pytest.raises(InvalidArgument):
        name.to_tag()


def test_sequence_of_names():
    data = (PropertyName.from_tag(PidLidPrivate).to_bytes()
            + PropertyName.from_tag(PidNameContentClass).to_bytes())
    reader = ByteReader(data)
    names = [PropertyName.read(reader), PropertyName.read(reader)]
    assert [n.kind for n in names] == [PropertyKind.LID, PropertyKind.NAME]
    assert reader.remaining == 0


def test_name_too_long():
    with pytest.raises(InvalidArgument):
        PropertyName(PropertyKind.NAME, PSETID_COMMON, name='x' * 200).to_bytes()


@pytest.mark.parametrize('data', [
    b'\x02' + bytes(16),
    b'\x00' + bytes(10),
    b'\x01' + bytes(16) + b'\x08abc',
])
def test_malformed(data):
    with pytest.raises(FormatViolation):
        PropertyName.from_bytes(data)
