import struct
from typing import Callable, List

from .base import PartitionExtent

MBR_SIGNATURE = 0xAA55
MBR_TABLE_OFFSET = 446
MBR_ENTRIES = 4
# status, first CHS, type, last CHS, first LBA, sector count
MBR_ENTRY = struct.Struct("<B3sB3sII")

# DOS, LBA, Linux, DR-DOS and Multiuser DOS extended partition containers
EXTENDED_TYPES = frozenset({0x05, 0x0F, 0x15, 0x1F, 0x85, 0x91, 0x9B, 0xC5, 0xCF, 0xD5})


def _entries(sector: bytes):
    """Yield (type, first LBA, sector count) of the four slots, or nothing
    when the sector lacks the 0x55AA boot signature."""
    if len(sector) < 512:
        return
    if struct.unpack_from("<H", sector, 510)[0] != MBR_SIGNATURE:
        return
    for i in range(MBR_ENTRIES):
        _, _, ptype, _, start, length = MBR_ENTRY.unpack_from(
            sector, MBR_TABLE_OFFSET + i * MBR_ENTRY.size)
        yield ptype, start, length


def _logical(read_sector: Callable[[int], bytes], chain_start: int,
             sectors: int) -> List[PartitionExtent]:
    extents = []
    ebr = chain_start
    seen = set()
    while ebr and ebr < sectors and ebr not in seen:
        seen.add(ebr)
        next_ebr = 0
        for ptype, start, length in _entries(read_sector(ebr)):
            if ptype in EXTENDED_TYPES:
                # links are relative to the first EBR of the chain
                next_ebr = chain_start + start
                continue
            if ptype == 0 or start == 0 or length == 0:
                continue
            first = ebr + start
            if first >= sectors:
                continue
            extents.append(PartitionExtent(start=first, length=min(length, sectors - first)))
        ebr = next_ebr
    return extents


def parse_mbr(read_sector: Callable[[int], bytes], sectors: int) -> List[PartitionExtent]:
    """Partitions of a Master Boot Record in table order.

    Primary slots are reported in slot order. An extended container is not
    reported itself; the logical partitions of its EBR chain take its place.
    Unused slots (type 0, zero start or zero length) are skipped. A sector 0
    without the 0x55AA boot signature carries no table and yields an empty
    list.
    """
    extents = []
    for ptype, start, length in _entries(read_sector(0)):
        if ptype in EXTENDED_TYPES:
            extents.extend(_logical(read_sector, start, sectors))
            continue
        if ptype == 0 or start == 0 or length == 0:
            continue
        extents.append(PartitionExtent(start=start, length=length))
    return extents
