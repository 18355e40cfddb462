"""
Apple DiskCopy 4.2 images.

The image starts with an 84-byte big-endian header followed by the user
data of every sector and then the tag data. Only the user data is
exposed; sectors are always 512 bytes.

Header layout::

    0x00  64  disk name, Pascal string
    0x40   4  user data size
    0x44   4  tag data size
    0x48   4  user data checksum
    0x4C   4  tag data checksum
    0x50   1  disk format
    0x51   1  format byte
    0x52   1  valid flag, always 1
    0x53   1  reserved, always 0
"""

from __future__ import annotations

import logging
import struct
from typing import BinaryIO, Optional

from ..errors import MalformedHeader, UnsupportedFormat
from ..mediatypes import MediaType
from ..utils import check_sector_range, read_at, stream_length

log = logging.getLogger(__name__)

DC42_HEADER = struct.Struct(">64sIIIIBBBB")
DC42_SECTOR_SIZE = 512

FORMAT_400K = 0x00
FORMAT_800K = 0x01
FORMAT_720K = 0x02
FORMAT_1440K = 0x03
FORMAT_1680K = 0x04
FORMAT_TWIGGY = 0x54
FORMAT_NOT_STANDARD = 0x5D

MEDIA_TYPE_BY_FORMAT = {
    FORMAT_400K: MediaType.AppleSonySS,
    FORMAT_800K: MediaType.AppleSonyDS,
    FORMAT_720K: MediaType.DOS_35_DS_DD_9,
    FORMAT_1440K: MediaType.DOS_35_HD,
    FORMAT_1680K: MediaType.DMF,
    FORMAT_TWIGGY: MediaType.AppleFileWare,
    FORMAT_NOT_STANDARD: MediaType.Unknown,
}

FMT_BYTES = {
    0x01,  # Twiggy
    0x02,  # 400K, 720K, 1440K, 1680K
    0x12,  # 800K, written by buggy tools
    0x22,  # 800K
    0x24,  # ProDOS
    0x93,  # not standard
    0x96,  # invalid
}


class DiskCopy42Image:
    name = "dc42"

    def __init__(self) -> None:
        self.sector_size = DC42_SECTOR_SIZE
        self.sectors = 0
        self.media_type = MediaType.Unknown
        self.disk_name = ""
        self._stream: Optional[BinaryIO] = None

    def open(self, stream: BinaryIO) -> None:
        length = stream_length(stream)
        if length < DC42_HEADER.size:
            raise UnsupportedFormat("too short for a DiskCopy 4.2 header")
        stream.seek(0)
        raw = stream.read(DC42_HEADER.size)
        (pname, data_size, tag_size, _data_sum, _tag_sum,
         fmt, fmt_byte, valid, reserved) = DC42_HEADER.unpack(raw)

        if pname[0] > 63 or valid != 1 or reserved != 0:
            raise UnsupportedFormat("not a DiskCopy 4.2 image")

        self.disk_name = pname[1:1 + pname[0]].decode("mac_roman")
        log.debug("dc42: name=%r data=%d tags=%d format=0x%02x fmt_byte=0x%02x",
                  self.disk_name, data_size, tag_size, fmt, fmt_byte)

        if fmt not in MEDIA_TYPE_BY_FORMAT:
            raise MalformedHeader(f"unknown disk format 0x{fmt:02x}")
        if fmt_byte not in FMT_BYTES:
            raise MalformedHeader(f"unknown format byte 0x{fmt_byte:02x}")
        if fmt != FORMAT_TWIGGY and data_size + tag_size + DC42_HEADER.size != length:
            raise MalformedHeader(
                f"header declares {data_size}+{tag_size} bytes, file holds "
                f"{length - DC42_HEADER.size}"
            )
        if data_size % DC42_SECTOR_SIZE:
            raise MalformedHeader(f"data size {data_size} is not a whole number of sectors")
        if DC42_HEADER.size + data_size > length:
            raise MalformedHeader("data runs past the end of the file")

        self._stream = stream
        self.sectors = data_size // DC42_SECTOR_SIZE
        self.media_type = MEDIA_TYPE_BY_FORMAT[fmt]

    def read_sectors(self, start: int, count: int) -> bytes:
        check_sector_range(start, count, self.sectors)
        return read_at(self._stream,
                       DC42_HEADER.size + start * DC42_SECTOR_SIZE,
                       count * DC42_SECTOR_SIZE)
