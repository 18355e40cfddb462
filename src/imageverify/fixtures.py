"""
Fixture store: turn a fixture name into a seekable byte stream.

Fixtures live in per-suite folders below a test-files root. Most are
stored compressed (``DSKA0000.IMG.lz``); image plugins however need
random access to sectors, which the compressed formats cannot offer
cheaply. Compressed fixtures are therefore decoded once, block by block,
into a spooled temporary file that stays in memory up to a limit and
moves to disk beyond it. The caller receives that file rewound to
offset zero and owns it from then on.

Because the whole archive is decoded before the stream is returned, a
truncated or damaged archive is reported as :class:`FixtureCorrupt`
before any plugin gets to look at it.
"""

from __future__ import annotations

import logging
import os
import tempfile
from typing import BinaryIO, Callable, Iterator

from .compression import CHUNK, CORRUPTION_ERRORS, decoder_for
from .errors import FixtureCorrupt, FixtureNotFound, FixtureUnreadable
from .utils import join_fixture_path

log = logging.getLogger(__name__)

DEFAULT_SPOOL_LIMIT = 64 * 1024 * 1024


def open_fixture(folder: str, file_name: str,
                 spool_limit: int = DEFAULT_SPOOL_LIMIT) -> BinaryIO:
    """Open ``file_name`` inside ``folder`` for reading.

    Parameters
    ----------
    folder: str
        Directory holding the fixture.
    file_name: str
        Fixture name. A ``.lz``, ``.gz``, ``.bz2`` or ``.xz`` suffix
        selects transparent decompression.
    spool_limit: int, optional
        Decompressed bytes kept in memory before spilling to disk.

    Returns
    -------
    BinaryIO
        Seekable stream positioned at offset zero. The caller must close
        it.

    Raises
    ------
    FixtureNotFound, FixtureUnreadable, FixtureCorrupt
    """
    path = join_fixture_path(folder, file_name)
    if not os.path.exists(path):
        raise FixtureNotFound(path, "no such fixture")
    try:
        fin = open(path, "rb")
    except OSError as exc:
        raise FixtureUnreadable(path, str(exc)) from exc

    decoder = decoder_for(file_name)
    if decoder is None:
        log.debug("opened %s uncompressed", path)
        return fin
    with fin:
        return _spool(path, _SourceFile(path, fin), decoder, spool_limit)


class _SourceFile:
    """Compressed input whose read errors are reported as the fixture's.

    The decoders raise OSError for damaged data as well, so read failures
    have to be told apart before they reach them.
    """

    def __init__(self, path: str, fin: BinaryIO) -> None:
        self.path = path
        self.fin = fin

    def read(self, size: int = -1) -> bytes:
        try:
            return self.fin.read(size)
        except OSError as exc:
            raise FixtureUnreadable(self.path, str(exc)) from exc

    def __getattr__(self, name):
        return getattr(self.fin, name)


def _spool(path: str, fin: _SourceFile,
           decoder: Callable[..., Iterator[bytes]], spool_limit: int) -> BinaryIO:
    out = tempfile.SpooledTemporaryFile(max_size=spool_limit)
    size = 0
    try:
        for block in decoder(fin, CHUNK):
            out.write(block)
            size += len(block)
    except CORRUPTION_ERRORS as exc:
        out.close()
        raise FixtureCorrupt(path, f"decompression failed after {size} bytes: {exc}") from exc
    except BaseException:
        out.close()
        raise
    out.seek(0)
    log.debug("decompressed %s to %d bytes", path, size)
    return out


class FixtureStore:
    """Resolve fixtures relative to a test-files root.

    A store holds no open handles and caches nothing; every call to
    :meth:`open` hands out an independent stream.
    """

    def __init__(self, root: str, spool_limit: int = DEFAULT_SPOOL_LIMIT) -> None:
        self.root = root
        self.spool_limit = spool_limit

    def folder(self, folder: str) -> str:
        return os.path.join(self.root, folder) if folder else self.root

    def path_for(self, folder: str, file_name: str) -> str:
        return join_fixture_path(self.folder(folder), file_name)

    def open(self, folder: str, file_name: str) -> BinaryIO:
        return open_fixture(self.folder(folder), file_name, self.spool_limit)
