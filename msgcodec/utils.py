"""Utility functions shared by the property, structure and RTF codecs."""

import struct
from datetime import datetime, timedelta, timezone

from .errors import FormatViolation, InvalidArgument

# Windows FILETIME epoch: January 1, 1601
_FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)
_TICKS_PER_SECOND = 10_000_000  # 100-nanosecond intervals

# OLE automation dates count days from December 30, 1899
_OADATE_EPOCH = datetime(1899, 12, 30)
_MILLIS_PER_DAY = 86_400_000
_OADATE_MIN = -657435.0
_OADATE_MAX = 2958466.0


def datetime_to_filetime(dt: datetime) -> int:
    """Convert a Python datetime to a Windows FILETIME (64-bit integer).

    FILETIME = number of 100-nanosecond intervals since January 1, 1601 UTC.
    Naive datetimes are taken as UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = dt - _FILETIME_EPOCH
    # Integer arithmetic, total_seconds() loses the last digits
    return ((delta.days * 86400 + delta.seconds) * _TICKS_PER_SECOND
            + delta.microseconds * 10)


def filetime_to_datetime(ft: int) -> datetime:
    """Convert a FILETIME back to an aware UTC datetime.

    Sub-microsecond ticks are truncated.
    """
    return _FILETIME_EPOCH + timedelta(microseconds=ft // 10)


def pack_filetime(ft: int) -> bytes:
    """Pack a FILETIME as 8 bytes little-endian."""
    return struct.pack('<Q', ft)


def _trunc_mod(value, modulus):
    # Remainder with the sign of the dividend
    if value < 0:
        return -((-value) % modulus)
    return value % modulus


def datetime_to_oadate(dt: datetime) -> float:
    """Convert a datetime to an OLE automation date (PT_APPTIME).

    Aware datetimes are converted to UTC first; the result is accurate
    to the millisecond.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    if dt.date() == datetime.min.date():
        # Time-only values are anchored on the automation epoch
        dt = _OADATE_EPOCH + (dt - datetime.min)
    delta = dt - _OADATE_EPOCH
    micros = (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds
    millis = micros // 1000 if micros >= 0 else -((-micros) // 1000)
    if millis < 0:
        # Negative dates keep the time of day as a positive fraction
        frac = _trunc_mod(millis, _MILLIS_PER_DAY)
        if frac != 0:
            millis -= (_MILLIS_PER_DAY + frac) * 2
    return millis / _MILLIS_PER_DAY


def oadate_to_datetime(value: float) -> datetime:
    """Convert an OLE automation date to a naive datetime.

    Raises:
        InvalidArgument: if the value is outside the representable range.
    """
    if not _OADATE_MIN < value < _OADATE_MAX:
        raise InvalidArgument(f'OLE automation date out of range: {value!r}')
    millis = int(value * _MILLIS_PER_DAY + (0.5 if value >= 0 else -0.5))
    if millis < 0:
        millis -= _trunc_mod(millis, _MILLIS_PER_DAY) * 2
    return _OADATE_EPOCH + timedelta(milliseconds=millis)


def encode_unicode(s: str, terminate: bool = True) -> bytes:
    """Encode a string as UTF-16LE, null terminated unless told otherwise."""
    data = s.encode('utf-16-le')
    if terminate:
        data += b'\x00\x00'
    return data


def encode_string8(s: str, codepage: str = 'cp1252',
                   terminate: bool = True) -> bytes:
    """Encode a string in an 8-bit code page (for PT_STRING8)."""
    data = s.encode(codepage)
    if terminate:
        data += b'\x00'
    return data


def align(value: int, boundary: int) -> int:
    """Round up value to the next multiple of boundary."""
    remainder = value % boundary
    if remainder == 0:
        return value
    return value + (boundary - remainder)


def pad_to(data: bytes, boundary: int, fill: int = 0x00) -> bytes:
    """Pad data to the next multiple of boundary bytes."""
    padded_len = align(len(data), boundary)
    return data + bytes([fill]) * (padded_len - len(data))


class ByteReader:
    """Sequential little-endian reader over a bytes buffer.

    Every short read raises FormatViolation, so callers never see
    struct.error or IndexError from truncated input.

    Usage:
        reader = ByteReader(data)
        count = reader.u32()
        name = reader.unicode_z()
    """

    def __init__(self, data: bytes, offset: int = 0):
        self.data = bytes(data)
        self.offset = offset

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def read(self, size: int) -> bytes:
        if size < 0 or self.offset + size > len(self.data):
            raise FormatViolation(
                f'Truncated data: need {size} bytes at offset {self.offset}, '
                f'have {self.remaining}')
        chunk = self.data[self.offset:self.offset + size]
        self.offset += size
        return chunk

    def unpack(self, fmt: str):
        return struct.unpack(fmt, self.read(struct.calcsize(fmt)))

    def u8(self) -> int:
        return self.read(1)[0]

    def u16(self) -> int:
        return self.unpack('<H')[0]

    def i16(self) -> int:
        return self.unpack('<h')[0]

    def u32(self) -> int:
        return self.unpack('<I')[0]

    def ascii_z(self) -> str:
        """Read a null-terminated 8-bit string."""
        end = self.data.find(b'\x00', self.offset)
        if end < 0:
            raise FormatViolation(f'Unterminated string at offset {self.offset}')
        raw = self.data[self.offset:end]
        self.offset = end + 1
        return raw.decode('latin-1')

    def unicode_z(self) -> str:
        """Read a null-terminated UTF-16LE string."""
        pos = self.offset
        while True:
            if pos + 2 > len(self.data):
                raise FormatViolation(
                    f'Unterminated UTF-16 string at offset {self.offset}')
            if self.data[pos] == 0 and self.data[pos + 1] == 0:
                break
            pos += 2
        raw = self.data[self.offset:pos]
        self.offset = pos + 2
        return raw.decode('utf-16-le', errors='replace')
