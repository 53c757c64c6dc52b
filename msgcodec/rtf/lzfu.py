"""Compressed RTF (LZFu) codec.

LZ77 variant with a 4096-byte ring dictionary pre-loaded with common RTF
boilerplate. Output is a 16-byte header followed by runs of a control
byte and up to 8 tokens:

    control bit 0 -> 1-byte literal
    control bit 1 -> 2-byte big-endian reference: offset (12) | length - 2 (4)

Control bits are consumed from the least significant bit up. A reference
whose offset equals the current write offset ends the data.

Header (little-endian):
    compressed size (4)  = payload size + 12
    raw size (4)
    compression type (4) = b'LZFu' or b'MELA' (stored, not compressed)
    CRC (4)              = CRC-32 of the payload, 0 for MELA

See [MS-OXRTFCP] 2.1.3.
"""

import logging
import struct
from dataclasses import dataclass

from ..crc import compute_crc
from ..errors import FormatViolation

logger = logging.getLogger(__name__)

INIT_DICT = (
    b'{\\rtf1\\ansi\\mac\\deff0\\deftab720{\\fonttbl;}'
    b'{\\f0\\fnil \\froman \\fswiss \\fmodern \\fscript '
    b'\\fdecor MS Sans SerifSymbolArialTimes New RomanCourier'
    b'{\\colortbl\\red0\\green0\\blue0'
    b'\r\n'
    b'\\par \\pard\\plain\\f0\\fs20\\b\\i\\u\\tab\\tx'
)
INIT_DICT_SIZE = len(INIT_DICT)  # 207
MAX_DICT_SIZE = 4096
MIN_MATCH_LENGTH = 2
MAX_MATCH_LENGTH = 17

HEADER_SIZE = 16
COMPRESSED = b'LZFu'
UNCOMPRESSED = b'MELA'


@dataclass
class CompressionPositions:
    """Compressor cursor for one match search."""
    dictionary_offset: int = 0
    longest_match_length: int = 0
    write_offset: int = INIT_DICT_SIZE


def _new_dictionary():
    dictionary = bytearray(MAX_DICT_SIZE)
    dictionary[:INIT_DICT_SIZE] = INIT_DICT
    return dictionary


def find_longest_match(dictionary, data, pos, write_offset, full=False):
    """Find the longest dictionary match for data[pos:].

    Candidates are tried in dictionary order and the first one of the
    longest length wins. A match may run into the bytes it is about to
    write, the decompressor copies byte by byte.

    Args:
        dictionary: 4096-byte ring dictionary.
        data: Input bytes.
        pos: Position in data to match.
        write_offset: Next dictionary position to be written.
        full: True once the dictionary has wrapped; before that only
            positions below write_offset hold data.

    Returns:
        CompressionPositions with the best offset and length (0 if none).
    """
    result = CompressionPositions(write_offset=write_offset)
    max_length = min(MAX_MATCH_LENGTH, len(data) - pos)
    if max_length < MIN_MATCH_LENGTH:
        return result

    first = data[pos]
    limit = MAX_DICT_SIZE if full else write_offset
    start = dictionary.find(first, 0, limit)
    while start >= 0:
        if start != write_offset:
            length = 0
            while length < max_length:
                src = (start + length) % MAX_DICT_SIZE
                rel = (src - write_offset) % MAX_DICT_SIZE
                if rel < length:
                    byte = data[pos + rel]
                elif full or src < write_offset:
                    byte = dictionary[src]
                else:
                    break
                if byte != data[pos + length]:
                    break
                length += 1
            if length > result.longest_match_length:
                result.dictionary_offset = start
                result.longest_match_length = length
                if length == max_length:
                    break
        start = dictionary.find(first, start + 1, limit)

    if result.longest_match_length < MIN_MATCH_LENGTH:
        result.longest_match_length = 0
    return result


def compress(data: bytes) -> bytes:
    """Compress bytes (normally RTF) to the LZFu format.

    Returns:
        Header plus compressed payload, ready for PR_RTF_COMPRESSED.
    """
    data = bytes(data)
    dictionary = _new_dictionary()
    write_offset = INIT_DICT_SIZE
    total_written = INIT_DICT_SIZE

    out = bytearray()
    run = bytearray()
    control = 0
    control_bit = 0
    pos = 0

    def flush():
        out.append(control)
        out.extend(run)

    while pos < len(data):
        match = find_longest_match(dictionary, data, pos, write_offset,
                                   full=total_written >= MAX_DICT_SIZE)
        if match.longest_match_length:
            length = match.longest_match_length
            token = (match.dictionary_offset << 4) | (length - MIN_MATCH_LENGTH)
            run += struct.pack('>H', token)
            control |= 1 << control_bit
        else:
            length = 1
            run.append(data[pos])

        for byte in data[pos:pos + length]:
            dictionary[write_offset] = byte
            write_offset = (write_offset + 1) % MAX_DICT_SIZE
        total_written += length
        pos += length

        control_bit += 1
        if control_bit == 8:
            flush()
            run = bytearray()
            control = 0
            control_bit = 0

    # End marker: a reference to the write offset itself
    run += struct.pack('>H', write_offset << 4)
    control |= 1 << control_bit
    flush()

    header = struct.pack('<I I 4s I', len(out) + 12, len(data), COMPRESSED,
                         compute_crc(out))
    logger.debug('Compressed %d bytes to %d', len(data), len(out) + HEADER_SIZE)
    return header + bytes(out)


def wrap_uncompressed(data: bytes) -> bytes:
    """Store bytes in the uncompressed (MELA) form."""
    data = bytes(data)
    return struct.pack('<I I 4s I', len(data) + 12, len(data), UNCOMPRESSED, 0) + data


def decompress(data: bytes) -> bytes:
    """Decompress LZFu or MELA data back to the raw bytes.

    Raises:
        FormatViolation: on a short header, unknown compression type,
            CRC mismatch, truncated payload or raw size mismatch.
    """
    if len(data) < HEADER_SIZE:
        raise FormatViolation(f'Compressed RTF header needs {HEADER_SIZE} bytes, got {len(data)}')
    comp_size, raw_size, comp_type, crc = struct.unpack_from('<I I 4s I', data)
    payload_size = comp_size - 12
    if payload_size < 0 or HEADER_SIZE + payload_size > len(data):
        raise FormatViolation(
            f'Compressed size {comp_size} does not match {len(data)} bytes of data')
    payload = bytes(data[HEADER_SIZE:HEADER_SIZE + payload_size])

    if comp_type == UNCOMPRESSED:
        if raw_size > len(payload):
            raise FormatViolation(f'Raw size {raw_size} exceeds stored data')
        return payload[:raw_size]
    if comp_type != COMPRESSED:
        raise FormatViolation(f'Unknown compression type {comp_type!r}')
    if compute_crc(payload) != crc:
        raise FormatViolation('Compressed RTF CRC mismatch')

    dictionary = _new_dictionary()
    write_offset = INIT_DICT_SIZE
    out = bytearray()
    pos = 0

    while pos < len(payload):
        control = payload[pos]
        pos += 1
        for bit in range(8):
            if control & (1 << bit):
                if pos + 2 > len(payload):
                    raise FormatViolation('Truncated dictionary reference')
                token = (payload[pos] << 8) | payload[pos + 1]
                pos += 2
                offset = token >> 4
                length = (token & 0x0F) + MIN_MATCH_LENGTH
                if offset == write_offset:
                    if len(out) != raw_size:
                        raise FormatViolation(
                            f'Decompressed {len(out)} bytes, header says {raw_size}')
                    return bytes(out)
                for i in range(length):
                    byte = dictionary[(offset + i) % MAX_DICT_SIZE]
                    out.append(byte)
                    dictionary[write_offset] = byte
                    write_offset = (write_offset + 1) % MAX_DICT_SIZE
            else:
                if pos >= len(payload):
                    raise FormatViolation('Truncated literal')
                byte = payload[pos]
                pos += 1
                out.append(byte)
                dictionary[write_offset] = byte
                write_offset = (write_offset + 1) % MAX_DICT_SIZE

    raise FormatViolation('Compressed RTF has no end marker')
