"""Shared fixtures.

build_compound_file lays a memory Storage out as a version 3 compound
file ([MS-CFB]): 512-byte sectors, streams under 4096 bytes in the mini
stream, every sibling list chained through the right-sibling links.
"""

import struct
from dataclasses import dataclass, field

import pytest

SECTOR_SIZE = 512
MINI_SECTOR_SIZE = 64
MINI_STREAM_CUTOFF = 4096
DIR_ENTRY_SIZE = 128
HEADER_DIFAT_ENTRIES = 109

FREESECT = 0xFFFFFFFF
ENDOFCHAIN = 0xFFFFFFFE
FATSECT = 0xFFFFFFFD
NOSTREAM = 0xFFFFFFFF

STGTY_STORAGE = 1
STGTY_STREAM = 2
STGTY_ROOT = 5

SIGNATURE = b'\xD0\xCF\x11\xE0\xA1\xB1\x1A\xE1'
HEADER_FORMAT = '<8s 16x H H H H H 6x I I I I I I I I I 109I'
DIR_ENTRY_FORMAT = '<64s H B B I I I 16x I 8x 8x I I I'


@dataclass
class DirEntry:
    name: str
    entry_type: int
    data: bytes = b''
    children: list = field(default_factory=list)
    right: int = NOSTREAM
    start: int = ENDOFCHAIN
    size: int = 0

    def pack(self):
        child = self.children[0] if self.children else NOSTREAM
        encoded = self.name.encode('utf-16-le')
        name_length = len(encoded) + 2 if encoded else 0
        return struct.pack(DIR_ENTRY_FORMAT, encoded, name_length, self.entry_type, 1,
                           NOSTREAM, self.right, child, 0, self.start, self.size, 0)


def _collect(storage, entry, entries):
    for name in storage.list_streams():
        entry.children.append(len(entries))
        entries.append(DirEntry(name, STGTY_STREAM, storage.read_stream(name)))
    for name in storage.list_storages():
        child = DirEntry(name, STGTY_STORAGE, start=0)
        entry.children.append(len(entries))
        entries.append(child)
        _collect(storage.open_storage(name, create=False), child, entries)


def _pad(data, size):
    return data + b'\x00' * (-len(data) % size)


class _Sectors:
    """Regular sectors and the FAT chains that link them."""

    def __init__(self):
        self.sectors = []
        self.fat = []

    def allocate(self, data):
        count = -(-len(data) // SECTOR_SIZE)
        if not count:
            return ENDOFCHAIN
        start = len(self.sectors)
        data = _pad(data, SECTOR_SIZE)
        for i in range(count):
            self.sectors.append(data[i * SECTOR_SIZE:(i + 1) * SECTOR_SIZE])
            self.fat.append(start + i + 1 if i < count - 1 else ENDOFCHAIN)
        return start


def build_compound_file(storage):
    """Serialize a memory Storage tree to compound file bytes."""
    root = DirEntry('Root Entry', STGTY_ROOT)
    entries = [root]
    _collect(storage, root, entries)
    for entry in entries:
        for left, right in zip(entry.children, entry.children[1:]):
            entries[left].right = right

    sectors = _Sectors()
    mini_stream = bytearray()
    minifat = []
    for entry in entries:
        if entry.entry_type != STGTY_STREAM:
            continue
        entry.size = len(entry.data)
        if entry.size >= MINI_STREAM_CUTOFF:
            entry.start = sectors.allocate(entry.data)
        elif entry.size:
            count = -(-entry.size // MINI_SECTOR_SIZE)
            entry.start = len(minifat)
            minifat.extend(entry.start + i + 1 if i < count - 1 else ENDOFCHAIN
                           for i in range(count))
            mini_stream += _pad(entry.data, MINI_SECTOR_SIZE)

    root.start = sectors.allocate(bytes(mini_stream))
    root.size = len(mini_stream)
    minifat_bytes = _pad(struct.pack(f'<{len(minifat)}I', *minifat), SECTOR_SIZE)
    minifat_start = sectors.allocate(minifat_bytes)

    padding = -len(entries) % (SECTOR_SIZE // DIR_ENTRY_SIZE)
    directory = b''.join(entry.pack() for entry in entries)
    directory += DirEntry('', 0).pack() * padding
    dir_start = sectors.allocate(directory)

    fat_count = 1
    while fat_count * (SECTOR_SIZE // 4) < len(sectors.fat) + fat_count:
        fat_count += 1
    assert fat_count <= HEADER_DIFAT_ENTRIES, 'tree too large without DIFAT sectors'
    fat_start = len(sectors.fat)
    fat = sectors.fat + [FATSECT] * fat_count
    fat += [FREESECT] * (fat_count * (SECTOR_SIZE // 4) - len(fat))
    fat_bytes = struct.pack(f'<{len(fat)}I', *fat)
    for i in range(fat_count):
        sectors.sectors.append(fat_bytes[i * SECTOR_SIZE:(i + 1) * SECTOR_SIZE])

    difat = list(range(fat_start, fat_start + fat_count))
    difat += [FREESECT] * (HEADER_DIFAT_ENTRIES - fat_count)
    header = struct.pack(HEADER_FORMAT, SIGNATURE, 0x3E, 3, 0xFFFE, 9, 6,
                         0, fat_count, dir_start, 0, MINI_STREAM_CUTOFF,
                         minifat_start, len(minifat_bytes) // SECTOR_SIZE,
                         ENDOFCHAIN, 0, *difat)
    return header + b''.join(sectors.sectors)


@pytest.fixture
def compound_file(tmp_path):
    """Write a memory Storage to a .msg file on disk and return its path."""

    def write(storage, name='sample.msg'):
        path = tmp_path / name
        path.write_bytes(build_compound_file(storage))
        return str(path)

    return write
