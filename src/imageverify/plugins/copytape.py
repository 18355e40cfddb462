"""
CopyTape images (``.cptp``).

A CopyTape file is a sequence of text-tagged records::

    CPTP:BLK 000512\\n<512 bytes of block data>\\n
    CPTP:MRK\\n                                  file mark
    CPTP:EOT\\n                                  end of tape

Blocks are numbered from zero across the whole tape and file marks do not
take a block number. Block sizes vary, so ``sector_size`` reports the
largest block and :meth:`CopyTapeImage.read_sectors` returns the blocks
exactly as stored.
"""

from __future__ import annotations

import logging
from typing import BinaryIO, List, Optional, Tuple

from ..errors import MalformedHeader, UnsupportedFormat
from ..mediatypes import MediaType
from ..utils import check_sector_range, read_at, stream_length
from .base import TapeFile, TapePartition

log = logging.getLogger(__name__)

CPTP_SIGNATURE = b"CPTP:"
CPTP_BLOCK = b"CPTP:BLK "
CPTP_MARK = b"CPTP:MRK\n"
CPTP_EOT = b"CPTP:EOT\n"
CPTP_TAG_SIZE = 9
CPTP_SIZE_FIELD = 7  # six decimal digits and a newline


class CopyTapeImage:
    name = "cptp"

    def __init__(self) -> None:
        self.sector_size = 0
        self.sectors = 0
        self.media_type = MediaType.Unknown
        self._stream: Optional[BinaryIO] = None
        self._blocks: List[Tuple[int, int]] = []
        self._files: List[TapeFile] = []

    def open(self, stream: BinaryIO) -> None:
        length = stream_length(stream)
        if length < CPTP_TAG_SIZE or read_at(stream, 0, len(CPTP_SIGNATURE)) != CPTP_SIGNATURE:
            raise UnsupportedFormat("not a CopyTape image")

        blocks: List[Tuple[int, int]] = []
        files: List[TapeFile] = []
        file_no = 0
        first = 0
        pos = 0
        while pos < length:
            if length - pos < CPTP_TAG_SIZE:
                raise MalformedHeader(f"truncated record at 0x{pos:x}")
            tag = read_at(stream, pos, CPTP_TAG_SIZE)
            if tag == CPTP_MARK:
                if len(blocks) > first:
                    files.append(TapeFile(file_no, 0, first, len(blocks) - 1))
                file_no += 1
                first = len(blocks)
                pos += CPTP_TAG_SIZE
                continue
            if tag == CPTP_EOT:
                break
            if tag != CPTP_BLOCK:
                raise MalformedHeader(f"unknown record {tag!r} at 0x{pos:x}")
            if length - pos < CPTP_TAG_SIZE + CPTP_SIZE_FIELD:
                raise MalformedHeader(f"truncated block header at 0x{pos:x}")
            field = read_at(stream, pos + CPTP_TAG_SIZE, CPTP_SIZE_FIELD)
            if not field[:6].isdigit() or field[6:] != b"\n":
                raise MalformedHeader(f"bad block size {field!r} at 0x{pos:x}")
            size = int(field[:6])
            data_at = pos + CPTP_TAG_SIZE + CPTP_SIZE_FIELD
            if data_at + size + 1 > length or read_at(stream, data_at + size, 1) != b"\n":
                raise MalformedHeader(f"block {len(blocks)} runs past its record")
            blocks.append((data_at, size))
            pos = data_at + size + 1

        if not blocks:
            raise MalformedHeader("tape holds no blocks")
        if len(blocks) > first:
            files.append(TapeFile(file_no, 0, first, len(blocks) - 1))

        self._stream = stream
        self._blocks = blocks
        self._files = files
        self.sectors = len(blocks)
        self.sector_size = max(size for _, size in blocks)
        self.media_type = MediaType.UnknownTape
        log.debug("cptp: %d blocks in %d files, largest block %d",
                  self.sectors, len(files), self.sector_size)

    def read_sectors(self, start: int, count: int) -> bytes:
        check_sector_range(start, count, self.sectors)
        return b"".join(read_at(self._stream, offset, size)
                        for offset, size in self._blocks[start:start + count])

    def tape_files(self) -> List[TapeFile]:
        return list(self._files)

    def tape_partitions(self) -> List[TapePartition]:
        return [TapePartition(0, 0, self.sectors - 1)] if self.sectors else []
