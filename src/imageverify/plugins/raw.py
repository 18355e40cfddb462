"""
Raw sector dumps (``.img``, ``.ima``, ``.iso`` ...).

A raw image has no header: the file is the sectors, back to back. The
geometry comes from the file size and the media type from a table of
well-known floppy sizes.
"""

from __future__ import annotations

import logging
from typing import BinaryIO, List, Optional

from ..errors import MalformedHeader, UnsupportedFormat
from ..mediatypes import MediaType, media_type_from_size
from ..utils import check_sector_range, read_at, stream_length
from .base import PartitionExtent, Track
from .mbr import parse_mbr

log = logging.getLogger(__name__)


class RawImage:
    """Flat image of fixed-size sectors."""

    name = "raw"

    def __init__(self, sector_size: int = 512) -> None:
        self.sector_size = sector_size
        self.sectors = 0
        self.media_type = MediaType.Unknown
        self._stream: Optional[BinaryIO] = None

    def open(self, stream: BinaryIO) -> None:
        size = stream_length(stream)
        if size == 0:
            raise MalformedHeader("raw image is empty")
        if size % self.sector_size:
            raise UnsupportedFormat(
                f"{size} bytes is not a multiple of {self.sector_size}-byte sectors"
            )
        self._stream = stream
        self.sectors = size // self.sector_size
        self.media_type = media_type_from_size(size, self.sector_size)
        log.debug("raw image: %d bytes, %d sectors of %d, %s",
                  size, self.sectors, self.sector_size, self.media_type.name)

    def read_sectors(self, start: int, count: int) -> bytes:
        check_sector_range(start, count, self.sectors)
        return read_at(self._stream, start * self.sector_size, count * self.sector_size)


class PartitionedRawImage(RawImage):
    """Raw hard disk image that also reports its MBR partition table."""

    name = "raw-mbr"

    def partitions(self) -> List[PartitionExtent]:
        if not self.sectors:
            return []
        return parse_mbr(lambda lba: self.read_sectors(lba, 1), self.sectors)


class OpticalRawImage(RawImage):
    """ISO 9660 style dump of 2048-byte user data sectors.

    The whole image is one data track in one session. Track flags are not
    stored in such dumps, so none are reported.
    """

    name = "iso"

    def __init__(self, sector_size: int = 2048) -> None:
        super().__init__(sector_size)

    def tracks(self) -> List[Track]:
        if not self.sectors:
            return []
        return [Track(sequence=1, session=1, start=0, end=self.sectors - 1)]
