"""
Capability interface shared by all image plugins.

Plugins are not required to inherit from anything: the engine talks to
them through the structural :class:`ImagePlugin` protocol. Everything
else is an optional capability with its own protocol and query function:
partition enumeration (:func:`supports_partitions`), optical tracks
(:func:`supports_tracks`), long sectors and subchannel data of CD images
(:func:`supports_long_sectors`, :func:`supports_subchannel`) and tape
files and partitions (:func:`is_tape`). A plugin without them is
perfectly valid.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, List, Optional, Protocol, runtime_checkable

from ..mediatypes import MediaType


@dataclass(frozen=True)
class PartitionExtent:
    """A contiguous run of sectors holding one partition or volume."""
    start: int
    length: int

    @property
    def end(self) -> int:
        """First sector past the extent."""
        return self.start + self.length

    def overlaps(self, other: "PartitionExtent") -> bool:
        return self.start < other.end and other.start < self.end

    def __str__(self) -> str:
        return f"start={self.start} length={self.length}"


@runtime_checkable
class ImagePlugin(Protocol):
    """Decoder for one disk-image format.

    ``media_type``, ``sectors`` and ``sector_size`` are only meaningful
    after a successful :meth:`open` and stay constant afterwards.
    """

    name: str
    media_type: MediaType
    sectors: int
    sector_size: int

    def open(self, stream: BinaryIO) -> None:
        """Parse the image headers.

        Raises UnsupportedFormat when the signature does not match and
        MalformedHeader when it matches but the header is inconsistent.
        """
        ...

    def read_sectors(self, start: int, count: int) -> bytes:
        """Return ``count`` sectors starting at ``start``.

        Raises OutOfRange when the run extends past the last sector,
        without returning any data, and ReadError on I/O failure.
        """
        ...


@runtime_checkable
class PartitionedImage(Protocol):
    def partitions(self) -> List[PartitionExtent]:
        """Partition extents in on-disk table order."""
        ...


@dataclass(frozen=True)
class Track:
    """One track of an optical disc; ``start`` and ``end`` are inclusive."""
    sequence: int
    session: int
    start: int
    end: int
    pregap: int = 0
    flags: Optional[int] = None

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def __str__(self) -> str:
        text = (f"track {self.sequence} session={self.session} start={self.start} "
                f"end={self.end} pregap={self.pregap}")
        if self.flags is not None:
            text += f" flags=0x{self.flags:02x}"
        return text


@dataclass(frozen=True)
class TapeFile:
    """Blocks between two file marks; block numbers are inclusive."""
    file: int
    partition: int
    first_block: int
    last_block: int

    def __str__(self) -> str:
        return (f"file {self.file} partition={self.partition} "
                f"blocks={self.first_block}-{self.last_block}")


@dataclass(frozen=True)
class TapePartition:
    number: int
    first_block: int
    last_block: int

    def __str__(self) -> str:
        return f"partition {self.number} blocks={self.first_block}-{self.last_block}"


@runtime_checkable
class TrackedImage(Protocol):
    def tracks(self) -> List[Track]:
        """Tracks in disc order."""
        ...


@runtime_checkable
class LongSectorImage(Protocol):
    """Image that can return sectors with their sync, header and EDC/ECC."""

    long_sector_size: int

    def read_sectors_long(self, start: int, count: int) -> bytes:
        ...


@runtime_checkable
class SubchannelImage(Protocol):
    subchannel_size: int

    def read_subchannel(self, start: int, count: int) -> bytes:
        ...


@runtime_checkable
class TapeImage(Protocol):
    """Tape image. ``sectors`` counts blocks and ``sector_size`` is the
    largest block; :meth:`ImagePlugin.read_sectors` returns the blocks as
    stored, which may be shorter than ``count * sector_size``.
    """

    def tape_files(self) -> List[TapeFile]:
        ...

    def tape_partitions(self) -> List[TapePartition]:
        ...


def supports_partitions(plugin: object) -> bool:
    return isinstance(plugin, PartitionedImage)


def supports_tracks(plugin: object) -> bool:
    return isinstance(plugin, TrackedImage)


def supports_long_sectors(plugin: object) -> bool:
    return isinstance(plugin, LongSectorImage)


def supports_subchannel(plugin: object) -> bool:
    return isinstance(plugin, SubchannelImage)


def is_tape(plugin: object) -> bool:
    return isinstance(plugin, TapeImage)
