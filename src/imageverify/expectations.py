"""
Expectation tables: what each fixture is supposed to decode to.

A table is plain data. :class:`FixtureEntry` rows and the :class:`Suite`
that groups them are frozen dataclasses validated on construction; any
inconsistency in a table is a bug in the test definitions and raises
:class:`~imageverify.errors.ExpectationError`, which stops the run.

Tables are usually written in YAML::

    suite: DriDiskCopy
    plugin: raw
    folder: Media image formats/DRI DISKCOPY
    digest_algorithm: md5
    fixtures:
      - file: DSKA0000.IMG.lz
        media_type: DOS_35_HD
        sectors: 2880
        sector_size: 512
        digest: 0f46a7ac6e4a7e2b1aeaf2d0b3d04b06
        partitions:
          - {start: 63, length: 20417}

Optical fixtures may also list ``tracks`` (with optional ``pregap`` and
``flags``), ``long_digest`` and ``subchannel_digest``; tape fixtures list
``tape_files`` and ``tape_partitions``::

      - file: data.cptp
        media_type: UnknownTape
        sectors: 3
        sector_size: 1024
        digest: "9e107d9d372bb6826bd81d3542a419d6"
        tape_files:
          - {file: 0, partition: 0, first_block: 0, last_block: 1}
          - {file: 1, partition: 0, first_block: 2, last_block: 2}
        tape_partitions:
          - {number: 0, first_block: 0, last_block: 2}
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import yaml

from .errors import ExpectationError
from .mediatypes import MediaType, parse_media_type
from .plugins import PLUGINS, PartitionExtent, TapeFile, TapePartition, Track
from .utils import is_hex

# Largest image the engine will stream, in bytes.
MAX_STREAM_BYTES = 2 ** 63 - 1

DEFAULT_DIGEST_ALGORITHM = "md5"

SUITE_KEYS = {"suite", "plugin", "folder", "digest_algorithm", "fixtures"}
REQUIRED_FIXTURE_KEYS = {"file", "media_type", "sectors", "sector_size", "digest"}
OPTIONAL_FIXTURE_KEYS = {"partitions", "tracks", "long_digest", "subchannel_digest",
                         "tape_files", "tape_partitions"}
FIXTURE_KEYS = REQUIRED_FIXTURE_KEYS | OPTIONAL_FIXTURE_KEYS


@dataclass(frozen=True)
class FixtureEntry:
    """Expected decoding of one fixture image.

    Everything after ``digest`` is optional; ``None`` means the table
    makes no claim and the matching check is skipped.
    """
    file_name: str
    media_type: MediaType
    sectors: int
    sector_size: int
    digest: str
    partitions: Optional[Tuple[PartitionExtent, ...]] = None
    tracks: Optional[Tuple[Track, ...]] = None
    long_digest: Optional[str] = None
    subchannel_digest: Optional[str] = None
    tape_files: Optional[Tuple[TapeFile, ...]] = None
    tape_partitions: Optional[Tuple[TapePartition, ...]] = None

    def __post_init__(self) -> None:
        where = self.file_name or "<unnamed fixture>"
        if not self.file_name:
            raise ExpectationError("fixture without a file name")
        if not isinstance(self.media_type, MediaType):
            raise ExpectationError(f"{where}: media type must be a MediaType")
        if self.sectors < 0:
            raise ExpectationError(f"{where}: negative sector count {self.sectors}")
        if self.sector_size <= 0:
            raise ExpectationError(f"{where}: sector size must be positive")
        if self.sectors * self.sector_size > MAX_STREAM_BYTES:
            raise ExpectationError(
                f"{where}: {self.sectors} x {self.sector_size} bytes is larger than "
                "the engine can stream"
            )
        if not isinstance(self.digest, str) or not is_hex(self.digest):
            raise ExpectationError(f"{where}: digest {self.digest!r} is not hex")
        for name in ("long_digest", "subchannel_digest"):
            value = getattr(self, name)
            if value is not None and not (isinstance(value, str) and is_hex(value)):
                raise ExpectationError(f"{where}: {name} {value!r} is not hex")
        if self.partitions is not None:
            _check_partitions(where, self.partitions, self.sectors)
        if self.tracks is not None:
            _check_spans(where, "track", [(t.start, t.end) for t in self.tracks], self.sectors)
        if self.tape_files is not None:
            _check_spans(where, "tape file",
                         [(f.first_block, f.last_block) for f in self.tape_files], self.sectors)
        if self.tape_partitions is not None:
            _check_spans(where, "tape partition",
                         [(p.first_block, p.last_block) for p in self.tape_partitions],
                         self.sectors)


def _check_partitions(where: str, partitions: Tuple[PartitionExtent, ...], sectors: int) -> None:
    for i, part in enumerate(partitions):
        if part.start < 0 or part.length <= 0 or part.end > sectors:
            raise ExpectationError(
                f"{where}: partition {i} ({part}) is outside [0, {sectors})"
            )
    ordered = sorted(partitions, key=lambda p: p.start)
    for a, b in zip(ordered, ordered[1:]):
        if a.overlaps(b):
            raise ExpectationError(f"{where}: partitions ({a}) and ({b}) overlap")


def _check_spans(where: str, what: str, spans: Iterable[Tuple[int, int]], sectors: int) -> None:
    """Inclusive ``(first, last)`` spans must lie in ``[0, sectors)``."""
    for i, (first, last) in enumerate(spans):
        if first < 0 or last < first or last >= sectors:
            raise ExpectationError(
                f"{where}: {what} {i} ({first}-{last}) is outside [0, {sectors})"
            )


@dataclass(frozen=True)
class Suite:
    """One expectation table bound to a plugin and a fixture folder."""
    name: str
    plugin: str
    folder: str
    fixtures: Tuple[FixtureEntry, ...]
    digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM

    def __post_init__(self) -> None:
        if self.plugin not in PLUGINS:
            raise ExpectationError(f"suite {self.name!r}: unknown image plugin {self.plugin!r}")
        if self.digest_algorithm not in hashlib.algorithms_available:
            raise ExpectationError(
                f"suite {self.name!r}: unknown digest algorithm {self.digest_algorithm!r}"
            )
        try:
            digest_size = hashlib.new(self.digest_algorithm).digest_size
        except ValueError as exc:
            raise ExpectationError(
                f"suite {self.name!r}: digest algorithm {self.digest_algorithm!r} "
                f"is unusable: {exc}"
            ) from exc
        if digest_size == 0:
            # shake_128 and shake_256 need an output length
            raise ExpectationError(
                f"suite {self.name!r}: {self.digest_algorithm!r} has no fixed digest size"
            )
        seen = set()
        for fixture in self.fixtures:
            if fixture.file_name in seen:
                raise ExpectationError(
                    f"suite {self.name!r}: fixture {fixture.file_name!r} listed twice"
                )
            seen.add(fixture.file_name)


def _require_int(where: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ExpectationError(f"{where}: {key} must be an integer, got {value!r}")
    return value


# table key -> (record type, required fields, optional fields)
RECORD_FIELDS = {
    "partitions": (PartitionExtent, ("start", "length"), ()),
    "tracks": (Track, ("sequence", "session", "start", "end"), ("pregap", "flags")),
    "tape_files": (TapeFile, ("file", "partition", "first_block", "last_block"), ()),
    "tape_partitions": (TapePartition, ("number", "first_block", "last_block"), ()),
}


def record_from_dict(where: str, key: str, data: Any):
    """Build one partition, track or tape record of a fixture row."""
    cls, required, optional = RECORD_FIELDS[key]
    if not isinstance(data, Mapping) or not set(required) <= set(data) \
            or set(data) - set(required) - set(optional):
        raise ExpectationError(
            f"{where}: {key} entries need {', '.join(required)}"
            + (f" and may have {', '.join(optional)}" if optional else "")
        )
    values = {}
    for name in required + optional:
        if data.get(name) is not None:
            values[name] = _require_int(where, f"{key}.{name}", data[name])
    return cls(**values)


def record_to_dict(key: str, record) -> Dict[str, Any]:
    _, required, optional = RECORD_FIELDS[key]
    out = {name: getattr(record, name) for name in required}
    out.update({name: getattr(record, name) for name in optional
                if getattr(record, name) is not None})
    return out


def _digest_field(where: str, data: Mapping, key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        # all-digit digests load as integers unless quoted
        raise ExpectationError(f"{where}: {key} must be a quoted string")
    return value


def fixture_from_dict(data: Any) -> FixtureEntry:
    if not isinstance(data, Mapping):
        raise ExpectationError(f"fixture rows must be mappings, got {data!r}")
    where = str(data.get("file", "<unnamed fixture>"))
    unknown = set(data) - FIXTURE_KEYS
    if unknown:
        raise ExpectationError(f"{where}: unknown keys {sorted(unknown)}")
    missing = REQUIRED_FIXTURE_KEYS - set(data)
    if missing:
        raise ExpectationError(f"{where}: missing keys {sorted(missing)}")

    media_type = parse_media_type(str(data["media_type"]))
    if media_type is None:
        raise ExpectationError(f"{where}: unknown media type {data['media_type']!r}")

    records = {}
    for key in RECORD_FIELDS:
        if data.get(key) is None:
            continue
        if not isinstance(data[key], list):
            raise ExpectationError(f"{where}: {key} must be a list")
        records[key] = tuple(record_from_dict(where, key, r) for r in data[key])

    return FixtureEntry(
        file_name=str(data["file"]),
        media_type=media_type,
        sectors=_require_int(where, "sectors", data["sectors"]),
        sector_size=_require_int(where, "sector_size", data["sector_size"]),
        digest=_digest_field(where, data, "digest"),
        long_digest=_digest_field(where, data, "long_digest"),
        subchannel_digest=_digest_field(where, data, "subchannel_digest"),
        **records,
    )


def suite_from_dict(data: Any, source: str = "<table>") -> Suite:
    if not isinstance(data, Mapping):
        raise ExpectationError(f"{source}: expected a mapping at the top level")
    unknown = set(data) - SUITE_KEYS
    if unknown:
        raise ExpectationError(f"{source}: unknown keys {sorted(unknown)}")
    for key in ("suite", "plugin", "fixtures"):
        if key not in data:
            raise ExpectationError(f"{source}: missing key {key!r}")
    if not isinstance(data["fixtures"], list):
        raise ExpectationError(f"{source}: fixtures must be a list")
    return Suite(
        name=str(data["suite"]),
        plugin=str(data["plugin"]),
        folder=str(data.get("folder") or ""),
        fixtures=tuple(fixture_from_dict(row) for row in data["fixtures"]),
        digest_algorithm=str(data.get("digest_algorithm") or DEFAULT_DIGEST_ALGORITHM),
    )


def load_suite(path: str) -> Suite:
    """Read a YAML expectation table."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ExpectationError(f"{path}: {exc}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ExpectationError(f"{path}: invalid YAML: {exc}") from exc
    return suite_from_dict(data, source=path)


def load_suites(paths: Iterable[str]) -> Tuple[Suite, ...]:
    return tuple(load_suite(p) for p in paths)


def suite_to_dict(suite: Suite) -> Dict[str, Any]:
    """Inverse of :func:`suite_from_dict`, for writing tables back out."""
    rows = []
    for f in suite.fixtures:
        row: Dict[str, Any] = {
            "file": f.file_name,
            "media_type": f.media_type.name,
            "sectors": f.sectors,
            "sector_size": f.sector_size,
            "digest": f.digest,
        }
        for key in ("long_digest", "subchannel_digest"):
            if getattr(f, key) is not None:
                row[key] = getattr(f, key)
        for key in RECORD_FIELDS:
            if getattr(f, key) is not None:
                row[key] = [record_to_dict(key, r) for r in getattr(f, key)]
        rows.append(row)
    return {
        "suite": suite.name,
        "plugin": suite.plugin,
        "folder": suite.folder,
        "digest_algorithm": suite.digest_algorithm,
        "fixtures": rows,
    }
