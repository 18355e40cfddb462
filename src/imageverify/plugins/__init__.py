"""
Image plugins and the registry suites use to pick one by name.

The registry maps a plugin name to a factory; every call to
:func:`get_plugin` returns a fresh instance so no two verifications ever
share plugin state.
"""

from typing import Callable, Dict, List

from ..errors import ExpectationError
from .base import (
    ImagePlugin,
    LongSectorImage,
    PartitionExtent,
    PartitionedImage,
    SubchannelImage,
    TapeFile,
    TapeImage,
    TapePartition,
    Track,
    TrackedImage,
    is_tape,
    supports_long_sectors,
    supports_partitions,
    supports_subchannel,
    supports_tracks,
)
from .cdraw import RawCdImage, RawCdSubchannelImage
from .copytape import CopyTapeImage
from .diskcopy42 import DiskCopy42Image
from .raw import OpticalRawImage, PartitionedRawImage, RawImage

PLUGINS: Dict[str, Callable[[], ImagePlugin]] = {
    "raw": RawImage,
    "iso": OpticalRawImage,
    "raw-mbr": PartitionedRawImage,
    "dc42": DiskCopy42Image,
    "cd-raw": RawCdImage,
    "cd-raw-sub": RawCdSubchannelImage,
    "cptp": CopyTapeImage,
}


def plugin_names() -> List[str]:
    return sorted(PLUGINS)


def get_plugin(name: str) -> ImagePlugin:
    try:
        factory = PLUGINS[name]
    except KeyError:
        raise ExpectationError(
            f"unknown image plugin {name!r}; available: {', '.join(plugin_names())}"
        ) from None
    return factory()


__all__ = [
    "ImagePlugin",
    "PartitionExtent",
    "PartitionedImage",
    "TrackedImage",
    "LongSectorImage",
    "SubchannelImage",
    "TapeImage",
    "Track",
    "TapeFile",
    "TapePartition",
    "supports_partitions",
    "supports_tracks",
    "supports_long_sectors",
    "supports_subchannel",
    "is_tape",
    "RawImage",
    "OpticalRawImage",
    "PartitionedRawImage",
    "DiskCopy42Image",
    "RawCdImage",
    "RawCdSubchannelImage",
    "CopyTapeImage",
    "PLUGINS",
    "get_plugin",
    "plugin_names",
]
