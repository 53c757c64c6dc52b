import struct

import pytest

from msgcodec.errors import FormatViolation, InvalidArgument
from msgcodec.structures.bitfields import MessageFormat, OneOffFlags
from msgcodec.structures.entry_id import (
    ADDRESS_BOOK_PROVIDER_UID, ONE_OFF_PROVIDER_UID, AddressBookEntryId,
    AddressBookEntryIdType, AddressType, OneOffEntryId,
)


def test_one_off_layout():
    entry_id = OneOffEntryId.create('peter@example.com', 'Peter Pan').to_bytes()

    assert entry_id[:4] == bytes(4)
    assert entry_id[4:20] == ONE_OFF_PROVIDER_UID
    assert entry_id[20:22] == bytes(2)
    # Big-endian flags word: unicode, MIME, text and HTML
    assert entry_id[22:24] == b'\x01\xe8'
    assert entry_id[24:] == ('Peter Pan\x00SMTP\x00peter@example.com\x00').encode('utf-16-le')


@pytest.mark.parametrize('message_format', list(MessageFormat))
def test_one_off_round_trip(message_format):
    original = OneOffEntryId.create('wendy@example.com', 'Wendy Darling', AddressType.SMTP,
                                    message_format, suppress_lookup=True)
    back = OneOffEntryId.from_bytes(original.to_bytes())
    assert back == original


def test_one_off_tnef_flag():
    entry_id = OneOffEntryId.create('a@b.c', 'A', mime=False).to_bytes()
    assert struct.unpack('>H', entry_id[22:24])[0] & 0x0100 == 0


def test_one_off_address_type_string():
    back = OneOffEntryId.from_bytes(OneOffEntryId.create('x', 'X', 'EX').to_bytes())
    assert back.address_type == AddressType.EX


def test_one_off_requires_unicode():
    entry = OneOffEntryId('a@b.c', 'A', flags=OneOffFlags(unicode=False))
    with pytest.raises(InvalidArgument):
        entry.to_bytes()


def test_one_off_ansi_strings():
    flags = OneOffFlags(unicode=False)
    data = (bytes(4) + ONE_OFF_PROVIDER_UID + bytes(2) + struct.pack('>H', flags.pack())
            + b'Hook\x00SMTP\x00hook@example.com\x00')
    entry = OneOffEntryId.from_bytes(data)
    assert (entry.display_name, entry.email) == ('Hook', 'hook@example.com')


@pytest.mark.parametrize('data', [
    bytes(4) + bytes(16),
    bytes(4) + ONE_OFF_PROVIDER_UID + bytes(2),
    bytes(4) + ONE_OFF_PROVIDER_UID + bytes(2) + b'\x01\xe8' + 'Unterminated'.encode('utf-16-le'),
])
def test_one_off_malformed(data):
    with pytest.raises(FormatViolation):
        OneOffEntryId.from_bytes(data)


def test_one_off_unknown_address_type():
    data = (bytes(4) + ONE_OFF_PROVIDER_UID + bytes(2) + b'\x01\xe8'
            + 'A\x00BOGUS\x00a@b.c\x00'.encode('utf-16-le'))
    entry = OneOffEntryId.from_bytes(data)
    assert entry.address_type == 'BOGUS'
    with pytest.raises(InvalidArgument):
        entry.to_bytes()


@pytest.mark.parametrize('flag_bytes', [b'\x01\x90', b'\x01\x80'])
def test_one_off_written_by_outlook(flag_bytes):
    data = (bytes(4) + ONE_OFF_PROVIDER_UID + bytes(2) + flag_bytes
            + 'Wendy Darling\x00SMTP\x00wendy@example.com\x00'.encode('utf-16-le'))
    entry = OneOffEntryId.from_bytes(data)
    assert (entry.display_name, entry.email) == ('Wendy Darling', 'wendy@example.com')
    assert entry.address_type == AddressType.SMTP
    assert entry.flags.mime is True
    with pytest.raises(InvalidArgument):
        entry.to_bytes()


class TestAddressBookEntryId:
    def test_layout(self):
        entry = AddressBookEntryId('/o=Neverland/cn=Peter',
                                   AddressBookEntryIdType.DISTRIBUTION_LIST)
        data = entry.to_bytes()
        assert data[:4] == bytes(4)
        assert data[4:20] == ADDRESS_BOOK_PROVIDER_UID
        assert data[20:28] == struct.pack('<I I', 1, 1)
        assert data[28:] == b'/o=Neverland/cn=Peter\x00'
        assert AddressBookEntryId.from_bytes(data) == entry

    def test_wrong_provider(self):
        data = bytes(4) + ONE_OFF_PROVIDER_UID + struct.pack('<I I', 1, 0) + b'x\x00'
        with pytest.raises(FormatViolation):
            AddressBookEntryId.from_bytes(data)

    def test_unknown_type(self):
        data = bytes(4) + ADDRESS_BOOK_PROVIDER_UID + struct.pack('<I I', 1, 0x42) + b'x\x00'
        with pytest.raises(FormatViolation):
            AddressBookEntryId.from_bytes(data)
