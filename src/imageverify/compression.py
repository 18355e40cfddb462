"""
Single-stream decompressors for compressed fixture images.

Each decoder takes an open binary file and yields decompressed blocks of
at most ``chunk`` bytes, so callers never hold a whole image in memory.
Decoders are selected by file-name suffix via :func:`decoder_for`.

gzip, bzip2 and xz use the standard library readers. lzip has no
standard library reader, but an lzip member is a plain LZMA stream with
a small header and trailer around it, so it is decoded with the raw
LZMA1 decoder from :mod:`lzma` and checked against the trailer.
"""

from __future__ import annotations

import bz2
import gzip
import lzma
import struct
import zlib
from typing import BinaryIO, Callable, Dict, Iterator, Optional

CHUNK = 1024 * 1024

LZIP_MAGIC = b"LZIP"
LZIP_HEADER_SIZE = 6
LZIP_TRAILER = struct.Struct("<IQQ")  # data CRC32, data size, member size
LZIP_MIN_DICT = 1 << 12
LZIP_MAX_DICT = 1 << 29


class LzipError(ValueError):
    """Malformed or truncated lzip data."""


def lzip_dictionary_size(coded: int) -> int:
    """Decode the dictionary size byte of an lzip header.

    Bits 4-0 hold the base-2 logarithm of the base size, bits 7-5 the
    number of sixteenths of the base to subtract from it.
    """
    base = 1 << (coded & 0x1F)
    return base - (base // 16) * ((coded >> 5) & 0x07)


def _lzma1(dict_size: int) -> lzma.LZMADecompressor:
    return lzma.LZMADecompressor(
        format=lzma.FORMAT_RAW,
        filters=[{"id": lzma.FILTER_LZMA1, "dict_size": dict_size,
                  "lc": 3, "lp": 0, "pb": 2}],
    )


def iter_lzip(fin: BinaryIO, chunk: int = CHUNK) -> Iterator[bytes]:
    """Yield the decompressed content of every member of an lzip file."""
    buf = b""
    members = 0
    while True:
        while len(buf) < LZIP_HEADER_SIZE:
            more = fin.read(chunk)
            if not more:
                break
            buf += more
        if not buf and members:
            return
        if len(buf) < LZIP_HEADER_SIZE or buf[:4] != LZIP_MAGIC:
            if members:
                raise LzipError(f"trailing garbage after member {members}")
            raise LzipError("missing LZIP signature")
        version, coded = buf[4], buf[5]
        if version != 1:
            raise LzipError(f"unsupported lzip version {version}")
        dict_size = lzip_dictionary_size(coded)
        if not LZIP_MIN_DICT <= dict_size <= LZIP_MAX_DICT:
            raise LzipError(f"invalid dictionary size {dict_size}")

        dec = _lzma1(dict_size)
        data = buf[LZIP_HEADER_SIZE:]
        fed = 0
        crc = 0
        size = 0
        while not dec.eof:
            if dec.needs_input and not data:
                data = fin.read(chunk)
                if not data:
                    raise LzipError(f"member {members} is truncated")
            fed += len(data)
            out = dec.decompress(data, max_length=chunk)
            data = b""
            if out:
                crc = zlib.crc32(out, crc)
                size += len(out)
                yield out

        rest = dec.unused_data
        packed = fed - len(rest)
        while len(rest) < LZIP_TRAILER.size:
            more = fin.read(chunk)
            if not more:
                raise LzipError(f"member {members} trailer is truncated")
            rest += more
        stored_crc, data_size, member_size = LZIP_TRAILER.unpack_from(rest)
        if stored_crc != crc & 0xFFFFFFFF:
            raise LzipError(f"member {members} CRC mismatch")
        if data_size != size:
            raise LzipError(f"member {members} data size {size}, trailer says {data_size}")
        if member_size != LZIP_HEADER_SIZE + packed + LZIP_TRAILER.size:
            raise LzipError(f"member {members} size does not match trailer")
        buf = rest[LZIP_TRAILER.size:]
        members += 1


def _reader(opener: Callable[[BinaryIO], BinaryIO]) -> Callable[..., Iterator[bytes]]:
    def iterate(fin: BinaryIO, chunk: int = CHUNK) -> Iterator[bytes]:
        with opener(fin) as f:
            while True:
                block = f.read(chunk)
                if not block:
                    return
                yield block
    return iterate


DECODERS: Dict[str, Callable[..., Iterator[bytes]]] = {
    ".lz": iter_lzip,
    ".gz": _reader(lambda f: gzip.GzipFile(fileobj=f, mode="rb")),
    ".bz2": _reader(lambda f: bz2.BZ2File(f, mode="rb")),
    ".xz": _reader(lambda f: lzma.LZMAFile(f, mode="rb")),
}

# What the decoders raise on damaged or truncated input.
# gzip.BadGzipFile and bz2's "Invalid data stream" are OSError subclasses.
CORRUPTION_ERRORS = (EOFError, OSError, lzma.LZMAError, zlib.error, LzipError)


def decoder_for(file_name: str) -> Optional[Callable[..., Iterator[bytes]]]:
    """Return the decoder for a compressed fixture name, or None."""
    lower = file_name.lower()
    for suffix, decoder in DECODERS.items():
        if lower.endswith(suffix):
            return decoder
    return None
