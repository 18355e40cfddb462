"""
Raw Mode 1 CD dumps (``.bin``), optionally with interleaved subchannel.

Every sector is stored as the full 2352-byte frame::

    0x000  12  sync pattern 00 FF FF FF FF FF FF FF FF FF FF 00
    0x00C   4  header: minute, second, frame (BCD), mode
    0x010 2048  user data
    0x810 288  EDC, zero fill and ECC

followed, in the ``cd-raw-sub`` variant, by 96 bytes of raw P-W
subchannel. The image is a single data track.
"""

from __future__ import annotations

import logging
from typing import BinaryIO, List, Optional

from ..errors import MalformedHeader, UnsupportedFormat
from ..mediatypes import MediaType
from ..utils import check_sector_range, read_at, stream_length
from .base import Track

log = logging.getLogger(__name__)

CD_SYNC = b"\x00" + b"\xff" * 10 + b"\x00"
CD_RAW_SECTOR = 2352
CD_USER_OFFSET = 16
CD_USER_SIZE = 2048
CD_SUBCHANNEL_SIZE = 96
CD_FLAG_DATA_TRACK = 0x04


class RawCdImage:
    name = "cd-raw"

    long_sector_size = CD_RAW_SECTOR
    subchannel_stored = 0

    def __init__(self) -> None:
        self.sector_size = CD_USER_SIZE
        self.sectors = 0
        self.media_type = MediaType.Unknown
        self._stream: Optional[BinaryIO] = None

    @property
    def _stride(self) -> int:
        return CD_RAW_SECTOR + self.subchannel_stored

    def open(self, stream: BinaryIO) -> None:
        size = stream_length(stream)
        if size == 0:
            raise MalformedHeader("CD image is empty")
        if size % self._stride:
            raise UnsupportedFormat(f"{size} bytes is not a multiple of {self._stride}-byte frames")
        head = read_at(stream, 0, CD_USER_OFFSET)
        if head[:12] != CD_SYNC:
            raise UnsupportedFormat("first sector has no CD sync pattern")
        if head[15] != 1:
            raise MalformedHeader(f"first sector is mode {head[15]}, only mode 1 is supported")
        self._stream = stream
        self.sectors = size // self._stride
        self.media_type = MediaType.CDROM
        log.debug("%s: %d frames of %d bytes", self.name, self.sectors, self._stride)

    def _frames(self, start: int, count: int) -> bytes:
        check_sector_range(start, count, self.sectors)
        return read_at(self._stream, start * self._stride, count * self._stride)

    def read_sectors(self, start: int, count: int) -> bytes:
        raw = self._frames(start, count)
        return b"".join(
            raw[i + CD_USER_OFFSET:i + CD_USER_OFFSET + CD_USER_SIZE]
            for i in range(0, len(raw), self._stride)
        )

    def read_sectors_long(self, start: int, count: int) -> bytes:
        raw = self._frames(start, count)
        if not self.subchannel_stored:
            return raw
        return b"".join(raw[i:i + CD_RAW_SECTOR] for i in range(0, len(raw), self._stride))

    def tracks(self) -> List[Track]:
        if not self.sectors:
            return []
        return [Track(sequence=1, session=1, start=0, end=self.sectors - 1,
                      flags=CD_FLAG_DATA_TRACK)]


class RawCdSubchannelImage(RawCdImage):
    name = "cd-raw-sub"

    subchannel_stored = CD_SUBCHANNEL_SIZE
    subchannel_size = CD_SUBCHANNEL_SIZE

    def read_subchannel(self, start: int, count: int) -> bytes:
        raw = self._frames(start, count)
        return b"".join(
            raw[i + CD_RAW_SECTOR:i + self._stride] for i in range(0, len(raw), self._stride)
        )
