"""CRC-32 used by compressed RTF.

Implements the CRC algorithm specified in [MS-OXRTFCP] 2.1.3.2. It is the
same table-driven CRC that [MS-PST] 5.3 uses for PST block and page
trailers.
Polynomial 0xEDB88320 (reflected), seeded with 0 and without the final
inversion, so it is *not* binascii.crc32.
"""

# CRC-32 lookup table (256 entries, polynomial 0xEDB88320)
_CRC_TABLE = None


def _build_crc_table():
    global _CRC_TABLE
    if _CRC_TABLE is not None:
        return
    table = []
    for i in range(256):
        crc = i
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ 0xEDB88320
            else:
                crc >>= 1
        table.append(crc & 0xFFFFFFFF)
    _CRC_TABLE = table


def compute_crc(data: bytes, crc: int = 0) -> int:
    """Compute the compressed RTF CRC-32.

    Args:
        data: Bytes to compute CRC over.
        crc: Running value, for feeding data in pieces.

    Returns:
        32-bit CRC value.
    """
    _build_crc_table()
    for b in data:
        crc = (_CRC_TABLE[(crc ^ b) & 0xFF] ^ (crc >> 8)) & 0xFFFFFFFF
    return crc
