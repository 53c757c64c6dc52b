import struct
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from msgcodec.errors import FormatViolation, InvalidArgument, UnsupportedType
from msgcodec.mapi.properties import (
    PROPERTIES_STREAM, PR_DISPLAY_NAME_W, PR_MESSAGE_SIZE, PR_SUBJECT_W,
    PropertyFlags, PropertyTag, PropertyType,
)
from msgcodec.storage.memory import Storage
from msgcodec.streams.properties import (
    DESCRIPTOR_SIZE, EmbeddedMessagePropertySet, Property, PropertySet,
    RecipientPropertySet, TopLevelPropertySet, decode_value, encode_value,
)

T = PropertyType

VALUES = [
    (T.PT_SHORT, -2),
    (T.PT_LONG, 123456),
    (T.PT_FLOAT, 1.5),
    (T.PT_DOUBLE, 3.141592653589793),
    (T.PT_CURRENCY, Decimal('12.3456')),
    (T.PT_APPTIME, datetime(2000, 1, 1, 12, tzinfo=timezone.utc)),
    (T.PT_ERROR, 0x80004005),
    (T.PT_BOOLEAN, True),
    (T.PT_I8, -(2 ** 40)),
    (T.PT_STRING8, 'café'),
    (T.PT_UNICODE, 'Peter Pan ✓'),
    (T.PT_SYSTIME, datetime(2023, 7, 4, 9, 15, 1, 123456, tzinfo=timezone.utc)),
    (T.PT_CLSID, uuid.UUID('00062008-0000-0000-c000-000000000046')),
    (T.PT_BINARY, b'\x00\x01\x02binary'),
]


def descriptors(stream, header_size=0):
    body = stream[header_size:]
    return [body[i:i + DESCRIPTOR_SIZE] for i in range(0, len(body), DESCRIPTOR_SIZE)]


@pytest.mark.parametrize('prop_type, value', VALUES, ids=lambda v: getattr(v, 'name', None))
def test_write_read_round_trip(prop_type, value):
    props = PropertySet()
    props.add_property(PropertyTag(0x6000, prop_type), value)

    storage = Storage()
    props.write_properties(storage)
    result = PropertySet.read_properties(storage)

    assert len(result) == 1
    assert result.get_value(0x6000) == value


@pytest.mark.parametrize('prop_type', [T.PT_APPTIME, T.PT_SYSTIME], ids=lambda t: t.name)
@pytest.mark.parametrize('value', [
    datetime(2023, 7, 4, 9, 15),
    datetime(2023, 7, 4, 9, 15, tzinfo=timezone.utc),
    datetime(2023, 7, 4, 11, 15, tzinfo=timezone(timedelta(hours=2))),
], ids=['naive', 'utc', 'utc+2'])
def test_dates_read_back_as_utc(prop_type, value):
    props = PropertySet()
    props.add_property(PropertyTag(0x6000, prop_type), value)
    storage = Storage()
    props.write_properties(storage)

    result = PropertySet.read_properties(storage).get_value(0x6000)
    assert result.tzinfo is timezone.utc
    assert result == datetime(2023, 7, 4, 9, 15, tzinfo=timezone.utc)


def test_property_value_uses_the_set_codepage():
    props = PropertySet(codepage='cp1251')
    prop = props.add_property(PropertyTag(0x6000, T.PT_STRING8), 'Питер')
    assert prop.value == 'Питер'

    storage = Storage()
    props.write_properties(storage)
    result = PropertySet.read_properties(storage, codepage='cp1251')
    assert result.get(0x6000).value == result.get_value(0x6000) == 'Питер'


def test_all_types_in_one_set():
    props = TopLevelPropertySet()
    for i, (prop_type, value) in enumerate(VALUES):
        props.add_property(PropertyTag(0x6000 + i, prop_type), value)
    storage = Storage()
    props.write_properties(storage)

    result = TopLevelPropertySet.read_properties(storage)
    assert [p.id for p in result] == [0x6000 + i for i in range(len(VALUES))]
    for i, (_, value) in enumerate(VALUES):
        assert result.get_value(0x6000 + i) == value


def test_peter_pan():
    props = PropertySet()
    props.add_property(PropertyTag(0x3001, T.PT_UNICODE), 'Peter Pan')
    storage = Storage()
    props.write_properties(storage)

    encoded = 'Peter Pan'.encode('utf-16-le')
    assert storage.read_stream('__substg1.0_3001001F') == encoded

    (descriptor,) = descriptors(storage.read_stream(PROPERTIES_STREAM))
    ptype, pid, flags, size = struct.unpack('<H H I I 4x', descriptor)
    assert (ptype, pid) == (0x001F, 0x3001)
    assert flags == PropertyFlags.PROPATTR_READABLE | PropertyFlags.PROPATTR_WRITABLE
    assert size == len(encoded) + 2


def test_string8_size_counts_terminator():
    props = PropertySet()
    props.add_property(PropertyTag(0x0037, T.PT_STRING8), 'Hello')
    storage = Storage()
    props.write_properties(storage)

    assert storage.read_stream('__substg1.0_0037001E') == b'Hello'
    (descriptor,) = descriptors(storage.read_stream(PROPERTIES_STREAM))
    assert struct.unpack_from('<I', descriptor, 8)[0] == 6


def test_binary_and_clsid_go_to_side_streams():
    guid = uuid.uuid4()
    props = PropertySet()
    props.add_property(PropertyTag(0x0FFF, T.PT_BINARY), b'abc')
    props.add_property(PropertyTag(0x6001, T.PT_CLSID), guid)
    storage = Storage()
    props.write_properties(storage)

    assert storage.read_stream('__substg1.0_0FFF0102') == b'abc'
    assert storage.read_stream('__substg1.0_60010048') == guid.bytes_le
    sizes = [struct.unpack_from('<I', d, 8)[0]
             for d in descriptors(storage.read_stream(PROPERTIES_STREAM))]
    assert sizes == [3, 16]


@pytest.mark.parametrize('prop_type, value, inline', [
    (T.PT_SHORT, 0x1234, b'\x34\x12' + bytes(6)),
    (T.PT_BOOLEAN, True, b'\x01' + bytes(7)),
    (T.PT_BOOLEAN, False, bytes(8)),
    (T.PT_LONG, -1, b'\xff' * 4 + bytes(4)),
    (T.PT_I8, 1, b'\x01' + bytes(7)),
])
def test_fixed_width_padding(prop_type, value, inline):
    props = PropertySet()
    props.add_property(PropertyTag(0x6000, prop_type), value)
    storage = Storage()
    props.write_properties(storage)

    (descriptor,) = descriptors(storage.read_stream(PROPERTIES_STREAM))
    assert descriptor[8:] == inline


class TestMessageSize:
    def test_appended_descriptor(self):
        props = TopLevelPropertySet()
        props.add_property(PR_SUBJECT_W, 'abc')
        storage = Storage()
        written = props.write_properties(storage, message_size=100)

        stream = storage.read_stream(PROPERTIES_STREAM)
        last = descriptors(stream, TopLevelPropertySet.HEADER_SIZE)[-1]
        ptype, pid, _, value = struct.unpack('<H H I I 4x', last)
        assert (ptype, pid) == (T.PT_LONG, PR_MESSAGE_SIZE.id)
        assert value == 100 + 6 + 8
        assert written == 6 + len(stream)
        assert len(stream) == 32 + 2 * DESCRIPTOR_SIZE

    def test_replaces_existing_value(self):
        props = TopLevelPropertySet()
        props.add_property(PR_MESSAGE_SIZE, 1)
        storage = Storage()
        props.write_properties(storage, message_size=0)

        result = TopLevelPropertySet.read_properties(storage)
        assert len(result) == 1
        assert result.get_value(PR_MESSAGE_SIZE) == 8

    def test_not_written_without_hint(self):
        props = PropertySet()
        props.add_property(PR_SUBJECT_W, 'abc')
        storage = Storage()
        assert props.write_properties(storage) == 6 + DESCRIPTOR_SIZE
        assert PR_MESSAGE_SIZE not in PropertySet.read_properties(storage)


class TestHeaders:
    def test_top_level_counts(self):
        props = TopLevelPropertySet()
        props.next_recipient_id = 2
        props.next_attachment_id = 1
        props.recipient_count = 2
        props.attachment_count = 1
        storage = Storage()
        props.write_properties(storage)

        stream = storage.read_stream(PROPERTIES_STREAM)
        assert stream == bytes(8) + struct.pack('<I I I I', 2, 1, 2, 1) + bytes(8)
        result = TopLevelPropertySet.read_properties(storage)
        assert (result.next_recipient_id, result.attachment_count) == (2, 1)

    @pytest.mark.parametrize('cls, size', [
        (PropertySet, 0),
        (TopLevelPropertySet, 32),
        (EmbeddedMessagePropertySet, 24),
        (RecipientPropertySet, 8),
    ])
    def test_header_sizes(self, cls, size):
        storage = Storage()
        cls().write_properties(storage)
        assert len(storage.read_stream(PROPERTIES_STREAM)) == size


class TestAddProperty:
    def test_none_is_skipped(self):
        props = PropertySet()
        assert props.add_property(PR_SUBJECT_W, None) is None
        assert len(props) == 0

    def test_duplicate_id(self):
        props = PropertySet()
        props.add_property(PR_SUBJECT_W, 'one')
        with pytest.raises(InvalidArgument):
            props.add_property(PR_SUBJECT_W, 'two')
        assert props.get_value(PR_SUBJECT_W) == 'one'

    def test_add_or_replace_moves_to_end(self):
        props = PropertySet()
        props.add_property(PR_SUBJECT_W, 'one')
        props.add_property(PR_DISPLAY_NAME_W, 'name')
        props.add_or_replace_property(PR_SUBJECT_W, 'two')
        assert [p.id for p in props] == [PR_DISPLAY_NAME_W.id, PR_SUBJECT_W.id]
        assert props.get_value(PR_SUBJECT_W) == 'two'

    def test_failed_replace_keeps_old_value(self):
        props = PropertySet()
        props.add_property(PropertyTag(0x6000, T.PT_SHORT), 1)
        with pytest.raises(InvalidArgument):
            props.add_or_replace_property(PropertyTag(0x6000, T.PT_SHORT), 0x10000)
        assert props.get_value(0x6000) == 1

    def test_accepts_raw_tag(self):
        props = PropertySet()
        props.add_property(0x0037001F, 'subject')
        assert props.get(PR_SUBJECT_W).type == T.PT_UNICODE

    @pytest.mark.parametrize('prop_type, value', [
        (T.PT_SHORT, 40000),
        (T.PT_LONG, 'seven'),
        (T.PT_ERROR, -1),
        (T.PT_BOOLEAN, 2),
        (T.PT_UNICODE, b'bytes'),
        (T.PT_STRING8, '✓'),
        (T.PT_CLSID, b'short'),
        (T.PT_SYSTIME, 'today'),
        (T.PT_DOUBLE, 'pi'),
    ])
    def test_invalid_values(self, prop_type, value):
        props = PropertySet()
        props.add_property(PR_SUBJECT_W, 'kept')
        with pytest.raises(InvalidArgument):
            props.add_property(PropertyTag(0x6000, prop_type), value)
        assert len(props) == 1

    @pytest.mark.parametrize('prop_type', [
        T.PT_MV_UNICODE, T.PT_MV_LONG, T.PT_ACTIONS, T.PT_SRESTRICT,
        T.PT_SVREID, T.PT_OBJECT, T.PT_UNSPECIFIED,
    ])
    def test_unsupported_types(self, prop_type):
        props = PropertySet()
        with pytest.raises(UnsupportedType):
            props.add_property(PropertyTag(0x6000, prop_type), b'x')


def test_multi_value_records_are_not_written():
    props = PropertySet()
    props.add_raw(Property(0x6100, T.PT_MV_LONG, data=b'\x01\x00\x00\x00',
                           multi_value_index=0))
    props.add_property(PR_SUBJECT_W, 'kept')
    storage = Storage()
    props.write_properties(storage)

    result = PropertySet.read_properties(storage)
    assert [p.id for p in result] == [PR_SUBJECT_W.id]


class TestReadErrors:
    def test_missing_stream(self):
        with pytest.raises(FormatViolation):
            PropertySet.read_properties(Storage())

    def test_partial_descriptor(self):
        storage = Storage()
        storage.write_stream(PROPERTIES_STREAM, bytes(20))
        with pytest.raises(FormatViolation):
            PropertySet.read_properties(storage)

    def test_short_header(self):
        storage = Storage()
        storage.write_stream(PROPERTIES_STREAM, bytes(10))
        with pytest.raises(FormatViolation):
            TopLevelPropertySet.read_properties(storage)

    def test_missing_side_stream(self):
        storage = Storage()
        storage.write_stream(PROPERTIES_STREAM,
                             struct.pack('<H H I I 4x', T.PT_UNICODE, 0x0037, 6, 8))
        with pytest.raises(FormatViolation):
            PropertySet.read_properties(storage)

    def test_unknown_type(self):
        storage = Storage()
        storage.write_stream(PROPERTIES_STREAM, struct.pack('<H H I 8x', 0x0099, 0x6000, 6))
        with pytest.raises(FormatViolation):
            PropertySet.read_properties(storage)


def test_encode_decode_helpers():
    assert encode_value(T.PT_UNICODE, 'ab') == b'a\x00b\x00'
    assert encode_value(T.PT_BINARY, 'é') == 'é'.encode('utf-8')
    assert encode_value(T.PT_CURRENCY, 1) == struct.pack('<q', 10000)
    assert decode_value(T.PT_MV_LONG, b'\x05\x00\x00\x00') == 5
    with pytest.raises(FormatViolation):
        decode_value(T.PT_LONG, b'\x01')
