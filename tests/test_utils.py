from datetime import datetime, timedelta, timezone

import pytest

from msgcodec.errors import FormatViolation, InvalidArgument
from msgcodec.utils import (
    ByteReader, align, datetime_to_filetime, datetime_to_oadate,
    encode_string8, encode_unicode, filetime_to_datetime, oadate_to_datetime,
    pack_filetime, pad_to,
)


class TestFiletime:
    def test_unix_epoch(self):
        dt = datetime(1970, 1, 1, tzinfo=timezone.utc)
        assert datetime_to_filetime(dt) == 116444736000000000

    def test_naive_is_utc(self):
        naive = datetime(2024, 3, 1, 12, 30)
        aware = naive.replace(tzinfo=timezone.utc)
        assert datetime_to_filetime(naive) == datetime_to_filetime(aware)

    def test_offset_is_normalised(self):
        plus_two = datetime(2024, 3, 1, 14, 30, tzinfo=timezone(timedelta(hours=2)))
        utc = datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)
        assert datetime_to_filetime(plus_two) == datetime_to_filetime(utc)

    def test_microseconds_survive(self):
        dt = datetime(2023, 7, 4, 9, 15, 1, 123456, tzinfo=timezone.utc)
        assert filetime_to_datetime(datetime_to_filetime(dt)) == dt

    def test_pack(self):
        assert pack_filetime(1) == b'\x01' + bytes(7)


class TestOADate:
    @pytest.mark.parametrize('dt, value', [
        (datetime(1899, 12, 30), 0.0),
        (datetime(1900, 1, 1), 2.0),
        (datetime(2000, 1, 1), 36526.0),
        (datetime(2000, 1, 1, 12), 36526.5),
        (datetime(1899, 12, 29, 6), -1.25),
    ])
    def test_known_values(self, dt, value):
        assert datetime_to_oadate(dt) == value
        assert oadate_to_datetime(value) == dt

    def test_aware_converted_to_utc(self):
        dt = datetime(2000, 1, 1, 14, tzinfo=timezone(timedelta(hours=2)))
        assert datetime_to_oadate(dt) == 36526.5

    @pytest.mark.parametrize('value', [2958466.0, -657435.0, 1e10])
    def test_out_of_range(self, value):
        with pytest.raises(InvalidArgument):
            oadate_to_datetime(value)


def test_encode_strings():
    assert encode_unicode('ab') == b'a\x00b\x00\x00\x00'
    assert encode_unicode('ab', terminate=False) == b'a\x00b\x00'
    assert encode_string8('café') == b'caf\xe9\x00'


def test_align_and_pad():
    assert align(0, 4) == 0
    assert align(5, 4) == 8
    assert align(8, 4) == 8
    assert pad_to(b'abc', 4) == b'abc\x00'
    assert pad_to(b'abcd', 4) == b'abcd'


class TestByteReader:
    def test_sequential_reads(self):
        data = (b'\x01\x02\x00\xff\xff\x04\x00\x00\x00' + b'hi\x00'
                + 'yo'.encode('utf-16-le') + b'\x00\x00')
        reader = ByteReader(data)
        assert reader.u8() == 1
        assert reader.u16() == 2
        assert reader.i16() == -1
        assert reader.u32() == 4
        assert reader.ascii_z() == 'hi'
        assert reader.unicode_z() == 'yo'
        assert reader.remaining == 0

    def test_short_read(self):
        reader = ByteReader(b'\x01\x02')
        with pytest.raises(FormatViolation):
            reader.u32()

    def test_unterminated_strings(self):
        with pytest.raises(FormatViolation):
            ByteReader(b'abc').ascii_z()
        with pytest.raises(FormatViolation):
            ByteReader('abc'.encode('utf-16-le')).unicode_z()
