"""
Utility functions and helpers for the ImageVerify harness.

This module centralises small helper routines used across the fixture
store, the image plugins and the verification engine. Keeping these
helpers in one place avoids circular imports between the plugin package
and the engine.
"""

from __future__ import annotations

import io
import os
import string
from typing import BinaryIO

from .errors import OutOfRange, ReadError

HEX_DIGITS = frozenset(string.hexdigits)


def stream_length(fh: BinaryIO) -> int:
    """Return the total size of a seekable stream.

    The stream position is restored before returning.

    Parameters
    ----------
    fh: file-like
        Object with ``seek`` and ``tell`` methods.

    Returns
    -------
    int
        Size in bytes.
    """
    cur = fh.tell()
    fh.seek(0, io.SEEK_END)
    end = fh.tell()
    fh.seek(cur)
    return end


def read_at(fh: BinaryIO, offset: int, size: int) -> bytes:
    """Read exactly ``size`` bytes at ``offset``.

    Unlike a plain ``read`` a short result is an error here: image
    plugins compute offsets from their own geometry, so running out of
    data means the image is damaged, not that the caller asked too much.

    Raises
    ------
    ReadError
        On any OS-level failure or a short read.
    """
    try:
        fh.seek(offset)
        data = fh.read(size)
    except (OSError, ValueError) as exc:
        raise ReadError(f"read of {size} bytes at 0x{offset:x} failed: {exc}") from exc
    if len(data) != size:
        raise ReadError(f"short read at 0x{offset:x}: wanted {size} bytes, got {len(data)}")
    return data


def check_sector_range(start: int, count: int, sectors: int) -> None:
    """Raise OutOfRange unless ``[start, start + count)`` lies in the image."""
    if start < 0 or count < 0 or start + count > sectors:
        raise OutOfRange(start, count, sectors)


def normalize_hex(value: str) -> str:
    return value.strip().lower()


def is_hex(value: str) -> bool:
    value = value.strip()
    return bool(value) and all(ch in HEX_DIGITS for ch in value)


def join_fixture_path(folder: str, file_name: str) -> str:
    return os.path.join(folder, file_name) if folder else file_name
