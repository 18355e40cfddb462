"""
Verification engine.

For every fixture of a suite the engine opens the image through the
suite's plugin, compares the reported metadata with the expectation
table, streams every sector through a digest and, where both sides can
provide one, compares the partition table, the optical track list and the
tape layout. Each fixture moves through these states::

    PENDING -> OPENED -> METADATA_CHECKED -> DIGEST_COMPUTED
            -> PARTITIONS_CHECKED -> DONE

and can drop to ``ERRORED`` from any of them. The digest stage also
covers long-sector and subchannel digests; the partition stage also
covers tracks and tape files. Mismatches are not exceptions: they are
collected as :class:`Diagnostic` entries and all checks still run, so one
report shows everything that is wrong with a fixture. Fixture-store and
plugin errors end that fixture only; the rest of the suite carries on.

A table that expects something the plugin cannot report (partitions from
a plugin without partition support, tracks from a block-device plugin)
does not stop the other checks either, but the fixture ends ``ERRORED``.
"""

from __future__ import annotations

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .config import DEFAULT_CHUNK_BYTES, HarnessConfig
from .errors import FixtureError, MalformedHeader, PluginError, ReadError
from .expectations import DEFAULT_DIGEST_ALGORITHM, FixtureEntry, Suite
from .fixtures import FixtureStore
from .mediatypes import MediaType
from .plugins import (
    ImagePlugin,
    PartitionExtent,
    Track,
    get_plugin,
    is_tape,
    supports_long_sectors,
    supports_partitions,
    supports_subchannel,
    supports_tracks,
)
from .utils import normalize_hex

log = logging.getLogger(__name__)


class State(Enum):
    PENDING = "pending"
    OPENED = "opened"
    METADATA_CHECKED = "metadata checked"
    DIGEST_COMPUTED = "digest computed"
    PARTITIONS_CHECKED = "partitions checked"
    DONE = "done"
    ERRORED = "errored"


class MismatchKind(Enum):
    METADATA_MISMATCH = "MetadataMismatch"
    DIGEST_MISMATCH = "DigestMismatch"
    PARTITION_MISMATCH = "PartitionMismatch"
    PARTITION_CAPABILITY_MISSING = "PartitionCapabilityMissing"
    TRACK_MISMATCH = "TrackMismatch"
    TAPE_MISMATCH = "TapeMismatch"
    CAPABILITY_MISSING = "CapabilityMissing"
    ERROR = "Error"


@dataclass(frozen=True)
class Diagnostic:
    """One human-readable finding about a fixture."""
    kind: MismatchKind
    field: str
    message: str
    expected: Any = None
    actual: Any = None

    def __str__(self) -> str:
        return f"{self.kind.value} [{self.field}]: {self.message}"


@dataclass(frozen=True)
class VerificationResult:
    fixture: FixtureEntry
    state: State
    media_type_match: bool
    geometry_match: bool
    digest_match: bool
    partition_match: Optional[bool]
    digest: Optional[str] = None
    track_match: Optional[bool] = None
    long_digest_match: Optional[bool] = None
    subchannel_digest_match: Optional[bool] = None
    tape_match: Optional[bool] = None
    long_digest: Optional[str] = None
    subchannel_digest: Optional[str] = None
    mismatches: Tuple[Diagnostic, ...] = ()

    @property
    def passed(self) -> bool:
        return self.state is State.DONE and not self.mismatches

    @property
    def errored(self) -> bool:
        return self.state is State.ERRORED

    def kinds(self) -> List[MismatchKind]:
        return [d.kind for d in self.mismatches]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file": self.fixture.file_name,
            "state": self.state.value,
            "passed": self.passed,
            "media_type_match": self.media_type_match,
            "geometry_match": self.geometry_match,
            "digest_match": self.digest_match,
            "partition_match": self.partition_match,
            "track_match": self.track_match,
            "long_digest_match": self.long_digest_match,
            "subchannel_digest_match": self.subchannel_digest_match,
            "tape_match": self.tape_match,
            "digest": self.digest,
            "long_digest": self.long_digest,
            "subchannel_digest": self.subchannel_digest,
            "mismatches": [
                {"kind": d.kind.value, "field": d.field, "message": d.message}
                for d in self.mismatches
            ],
        }


@dataclass(frozen=True)
class SuiteReport:
    suite: Suite
    results: Tuple[VerificationResult, ...]

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def failures(self) -> List[VerificationResult]:
        return [r for r in self.results if not r.passed]

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1


class OpenedImage:
    """An image opened through a plugin, owning the fixture stream.

    Use as a context manager; the stream is closed on every exit path,
    including a failing :meth:`ImagePlugin.open`. Geometry is read once
    when the image is opened.
    """

    def __init__(self, store: FixtureStore, folder: str, file_name: str,
                 plugin: ImagePlugin) -> None:
        self.store = store
        self.folder = folder
        self.file_name = file_name
        self.plugin = plugin
        self.stream = None
        self.media_type: MediaType = MediaType.Unknown
        self.sectors = 0
        self.sector_size = 0

    def __enter__(self) -> "OpenedImage":
        self.stream = self.store.open(self.folder, self.file_name)
        try:
            self.plugin.open(self.stream)
            self.media_type = self.plugin.media_type
            self.sectors = self.plugin.sectors
            self.sector_size = self.plugin.sector_size
            if self.sector_size <= 0 or self.sectors < 0:
                raise MalformedHeader(
                    f"plugin reported {self.sectors} sectors of {self.sector_size} bytes"
                )
        except BaseException:
            self.close()
            raise
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self.stream is not None:
            self.stream.close()
            self.stream = None

    def read_sectors(self, start: int, count: int) -> bytes:
        return self.plugin.read_sectors(start, count)

    def partitions(self) -> List[PartitionExtent]:
        return list(self.plugin.partitions())


def sectors_per_read(sector_size: int, chunk_bytes: int) -> int:
    return max(1, chunk_bytes // sector_size)


def iter_runs(read: Callable[[int, int], bytes], sectors: int, unit: int,
              chunk_bytes: int = DEFAULT_CHUNK_BYTES, exact: bool = True) -> Iterator[bytes]:
    """Yield ``read(start, count)`` over ``[0, sectors)`` in bounded runs.

    ``unit`` is the number of bytes one sector contributes. With ``exact``
    every run must be exactly ``count * unit`` bytes long; otherwise, as
    for tape blocks, it may be shorter but never longer.
    """
    per_read = sectors_per_read(unit, chunk_bytes)
    done = 0
    while done < sectors:
        count = min(per_read, sectors - done)
        data = read(done, count)
        want = count * unit
        if len(data) > want or (exact and len(data) != want):
            raise ReadError(f"plugin returned {len(data)} bytes for {count} sectors at {done}")
        yield data
        done += count


def iter_sector_chunks(image, chunk_bytes: int = DEFAULT_CHUNK_BYTES) -> Iterator[bytes]:
    """Yield the whole sector range of ``image`` in bounded runs.

    ``image`` is anything with ``sectors``, ``sector_size`` and
    ``read_sectors``: an :class:`OpenedImage` or a bare plugin.
    """
    plugin = getattr(image, "plugin", image)
    return iter_runs(image.read_sectors, image.sectors, image.sector_size,
                     chunk_bytes, exact=not is_tape(plugin))


def _digest(chunks: Iterable[bytes], algorithm: str) -> str:
    ctx = hashlib.new(algorithm)
    for block in chunks:
        ctx.update(block)
    return ctx.hexdigest()


def stream_digest(image, algorithm: str = DEFAULT_DIGEST_ALGORITHM,
                  chunk_bytes: int = DEFAULT_CHUNK_BYTES) -> str:
    """Hex digest of every decoded sector of ``image``."""
    return _digest(iter_sector_chunks(image, chunk_bytes), algorithm)


def long_sector_digest(plugin, algorithm: str = DEFAULT_DIGEST_ALGORITHM,
                       chunk_bytes: int = DEFAULT_CHUNK_BYTES) -> str:
    """Hex digest of every sector read with its sync, header and EDC/ECC."""
    return _digest(iter_runs(plugin.read_sectors_long, plugin.sectors,
                             plugin.long_sector_size, chunk_bytes), algorithm)


def subchannel_digest(plugin, algorithm: str = DEFAULT_DIGEST_ALGORITHM,
                      chunk_bytes: int = DEFAULT_CHUNK_BYTES) -> str:
    """Hex digest of the subchannel data of every sector."""
    return _digest(iter_runs(plugin.read_subchannel, plugin.sectors,
                             plugin.subchannel_size, chunk_bytes), algorithm)


def compare_records(kind: MismatchKind, name: str, expected: Sequence, actual: Sequence,
                    same: Callable[[Any, Any], bool] = lambda a, b: a == b) -> List[Diagnostic]:
    """Exact, order-sensitive comparison of two record lists."""
    diags = []
    if len(expected) != len(actual):
        diags.append(Diagnostic(
            kind, name, f"expected {len(expected)} {name}, got {len(actual)}",
            len(expected), len(actual)))
    for i, (want, got) in enumerate(zip(expected, actual)):
        if not same(want, got):
            diags.append(Diagnostic(kind, f"{name}[{i}]", f"expected {want}, got {got}",
                                    want, got))
    return diags


def compare_partitions(expected: Sequence[PartitionExtent],
                       actual: Sequence[PartitionExtent]) -> List[Diagnostic]:
    return compare_records(MismatchKind.PARTITION_MISMATCH, "partitions", expected, actual)


def _same_track(want: Track, got: Track) -> bool:
    # a table without flags makes no claim about them
    if want.flags is None:
        got = Track(got.sequence, got.session, got.start, got.end, got.pregap)
    return want == got


def compare_tracks(expected: Sequence[Track], actual: Sequence[Track],
                   sectors: int) -> List[Diagnostic]:
    """Compare track lists and check the tracks reach the last sector."""
    diags = compare_records(MismatchKind.TRACK_MISMATCH, "tracks", expected, actual, _same_track)
    if actual:
        last = max(t.end for t in actual)
        if last != sectors - 1:
            diags.append(Diagnostic(
                MismatchKind.TRACK_MISMATCH, "tracks",
                f"last track ends at sector {last} but the image has {sectors} sectors",
                sectors - 1, last))
    return diags


@dataclass
class _Run:
    """Mutable bookkeeping for one fixture, frozen by :meth:`finish`."""
    fixture: FixtureEntry
    state: State = State.PENDING
    media_type_match: bool = False
    geometry_match: bool = False
    digest_match: bool = False
    partition_match: Optional[bool] = None
    track_match: Optional[bool] = None
    long_digest_match: Optional[bool] = None
    subchannel_digest_match: Optional[bool] = None
    tape_match: Optional[bool] = None
    digest: Optional[str] = None
    long_digest: Optional[str] = None
    subchannel_digest: Optional[str] = None
    incomplete: bool = False
    mismatches: List[Diagnostic] = field(default_factory=list)

    def advance(self, state: State) -> None:
        self.state = state

    def mismatch(self, kind: MismatchKind, name: str, message: str,
                 expected: Any = None, actual: Any = None) -> None:
        self.mismatches.append(Diagnostic(kind, name, message, expected, actual))

    def missing(self, kind: MismatchKind, name: str, message: str) -> None:
        """The table expects something the plugin cannot report."""
        self.mismatch(kind, name, message)
        self.incomplete = True

    def fail(self, exc: Exception) -> None:
        self.mismatch(MismatchKind.ERROR, self.state.value,
                      f"{type(exc).__name__}: {exc}")
        self.state = State.ERRORED

    def check_metadata(self, image: OpenedImage) -> None:
        fx = self.fixture
        self.media_type_match = image.media_type == fx.media_type
        if not self.media_type_match:
            self.mismatch(MismatchKind.METADATA_MISMATCH, "media_type",
                          f"expected {fx.media_type.name}, got {_media_name(image.media_type)}",
                          fx.media_type, image.media_type)
        sectors_ok = image.sectors == fx.sectors
        if not sectors_ok:
            self.mismatch(MismatchKind.METADATA_MISMATCH, "sectors",
                          f"expected {fx.sectors}, got {image.sectors}",
                          fx.sectors, image.sectors)
        size_ok = image.sector_size == fx.sector_size
        if not size_ok:
            self.mismatch(MismatchKind.METADATA_MISMATCH, "sector_size",
                          f"expected {fx.sector_size}, got {image.sector_size}",
                          fx.sector_size, image.sector_size)
        self.geometry_match = sectors_ok and size_ok

    def _compare_digest(self, name: str, expected: str, actual: str) -> bool:
        ok = normalize_hex(actual) == normalize_hex(expected)
        if not ok:
            self.mismatch(MismatchKind.DIGEST_MISMATCH, name,
                          f"expected {normalize_hex(expected)}, got {actual}",
                          expected, actual)
        return ok

    def check_digest(self, digest: str) -> None:
        self.digest = digest
        self.digest_match = self._compare_digest("digest", self.fixture.digest, digest)

    def check_long_digests(self, image: OpenedImage, algorithm: str, chunk_bytes: int) -> None:
        fx = self.fixture
        plugin = image.plugin
        if fx.long_digest is not None:
            if not supports_long_sectors(plugin):
                self.long_digest_match = False
                self.missing(MismatchKind.CAPABILITY_MISSING, "long_digest",
                             f"plugin {plugin.name!r} cannot read long sectors")
            else:
                self.long_digest = long_sector_digest(plugin, algorithm, chunk_bytes)
                self.long_digest_match = self._compare_digest(
                    "long_digest", fx.long_digest, self.long_digest)
        if fx.subchannel_digest is not None:
            if not supports_subchannel(plugin):
                self.subchannel_digest_match = False
                self.missing(MismatchKind.CAPABILITY_MISSING, "subchannel_digest",
                             f"plugin {plugin.name!r} cannot read subchannel data")
            else:
                self.subchannel_digest = subchannel_digest(plugin, algorithm, chunk_bytes)
                self.subchannel_digest_match = self._compare_digest(
                    "subchannel_digest", fx.subchannel_digest, self.subchannel_digest)

    def check_partitions(self, image: OpenedImage) -> None:
        expected = self.fixture.partitions
        if expected is None:
            return
        if not supports_partitions(image.plugin):
            self.partition_match = False
            self.missing(MismatchKind.PARTITION_CAPABILITY_MISSING, "partitions",
                         f"{len(expected)} partitions expected but plugin "
                         f"{image.plugin.name!r} cannot enumerate partitions")
            return
        diags = compare_partitions(expected, image.partitions())
        self.partition_match = not diags
        self.mismatches.extend(diags)

    def check_tracks(self, image: OpenedImage) -> None:
        expected = self.fixture.tracks
        if expected is None:
            return
        if not supports_tracks(image.plugin):
            self.track_match = False
            self.missing(MismatchKind.CAPABILITY_MISSING, "tracks",
                         f"{len(expected)} tracks expected but plugin "
                         f"{image.plugin.name!r} does not report tracks")
            return
        diags = compare_tracks(expected, list(image.plugin.tracks()), image.sectors)
        self.track_match = not diags
        self.mismatches.extend(diags)

    def check_tape(self, image: OpenedImage) -> None:
        fx = self.fixture
        if fx.tape_files is None and fx.tape_partitions is None:
            return
        if not is_tape(image.plugin):
            self.tape_match = False
            self.missing(MismatchKind.CAPABILITY_MISSING, "tape",
                         f"tape layout expected but plugin {image.plugin.name!r} is not a tape")
            return
        diags = []
        if fx.tape_files is not None:
            diags += compare_records(MismatchKind.TAPE_MISMATCH, "tape_files",
                                     fx.tape_files, list(image.plugin.tape_files()))
        if fx.tape_partitions is not None:
            diags += compare_records(MismatchKind.TAPE_MISMATCH, "tape_partitions",
                                     fx.tape_partitions, list(image.plugin.tape_partitions()))
        self.tape_match = not diags
        self.mismatches.extend(diags)

    def finish(self) -> VerificationResult:
        if self.incomplete:
            self.state = State.ERRORED
        elif self.state is not State.ERRORED:
            self.state = State.DONE
        return VerificationResult(
            fixture=self.fixture,
            state=self.state,
            media_type_match=self.media_type_match,
            geometry_match=self.geometry_match,
            digest_match=self.digest_match,
            partition_match=self.partition_match,
            digest=self.digest,
            track_match=self.track_match,
            long_digest_match=self.long_digest_match,
            subchannel_digest_match=self.subchannel_digest_match,
            tape_match=self.tape_match,
            long_digest=self.long_digest,
            subchannel_digest=self.subchannel_digest,
            mismatches=tuple(self.mismatches),
        )


def _media_name(value) -> str:
    return value.name if isinstance(value, MediaType) else repr(value)


def verify_fixture(fixture: FixtureEntry, plugin: ImagePlugin, store: FixtureStore,
                   folder: str = "", algorithm: str = DEFAULT_DIGEST_ALGORITHM,
                   chunk_bytes: int = DEFAULT_CHUNK_BYTES) -> VerificationResult:
    """Run every check for one fixture.

    Parameters
    ----------
    fixture: FixtureEntry
        Expected values.
    plugin: ImagePlugin
        Fresh plugin instance, used for this fixture only.
    store: FixtureStore
        Where to find the fixture file.
    folder: str, optional
        Suite folder below the store root.
    algorithm: str, optional
        :mod:`hashlib` algorithm name for the content digests.
    chunk_bytes: int, optional
        Byte budget per sector read.

    Returns
    -------
    VerificationResult
    """
    run = _Run(fixture)
    try:
        with OpenedImage(store, folder, fixture.file_name, plugin) as image:
            run.advance(State.OPENED)
            run.check_metadata(image)
            run.advance(State.METADATA_CHECKED)
            run.check_digest(stream_digest(image, algorithm, chunk_bytes))
            run.check_long_digests(image, algorithm, chunk_bytes)
            run.advance(State.DIGEST_COMPUTED)
            run.check_partitions(image)
            run.check_tracks(image)
            run.check_tape(image)
            run.advance(State.PARTITIONS_CHECKED)
    except (FixtureError, PluginError) as exc:
        run.fail(exc)

    result = run.finish()
    if result.errored:
        log.warning("%s: errored: %s", store.path_for(folder, fixture.file_name),
                    "; ".join(str(d) for d in result.mismatches))
    else:
        log.info("%s: %s", fixture.file_name, "pass" if result.passed else "FAIL")
    return result


def verify_suite(suite: Suite, config: Optional[HarnessConfig] = None) -> SuiteReport:
    """Verify every fixture of ``suite``.

    Each fixture gets its own plugin instance and its own stream, so with
    ``config.workers > 1`` fixtures run on a thread pool. Results keep the
    table order either way.
    """
    config = config or HarnessConfig()
    store = FixtureStore(config.test_files_root, spool_limit=config.spool_limit)

    def one(fixture: FixtureEntry) -> VerificationResult:
        return verify_fixture(fixture, get_plugin(suite.plugin), store, suite.folder,
                              suite.digest_algorithm, config.chunk_bytes)

    log.info("suite %s: %d fixtures with plugin %s", suite.name,
             len(suite.fixtures), suite.plugin)
    if config.workers > 1 and len(suite.fixtures) > 1:
        with ThreadPoolExecutor(max_workers=config.workers) as pool:
            results = tuple(pool.map(one, suite.fixtures))
    else:
        results = tuple(one(f) for f in suite.fixtures)
    return SuiteReport(suite=suite, results=results)


def verify_suites(suites: Iterable[Suite],
                  config: Optional[HarnessConfig] = None) -> List[SuiteReport]:
    return [verify_suite(s, config) for s in suites]
