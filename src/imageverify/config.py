"""
Harness configuration.

Settings come from keyword arguments, from ``IMAGEVERIFY_*`` environment
variables (see :meth:`HarnessConfig.from_env`) or from the command line,
which overrides both.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigError
from .fixtures import DEFAULT_SPOOL_LIMIT

ENV_TEST_FILES_ROOT = "IMAGEVERIFY_TEST_FILES_ROOT"
ENV_CHUNK_BYTES = "IMAGEVERIFY_CHUNK_BYTES"
ENV_WORKERS = "IMAGEVERIFY_WORKERS"
ENV_SPOOL_LIMIT = "IMAGEVERIFY_SPOOL_LIMIT"

DEFAULT_CHUNK_BYTES = 1024 * 1024


@dataclass(frozen=True)
class HarnessConfig:
    """Settings for one verification run.

    Attributes
    ----------
    test_files_root: str
        Directory holding the suite folders.
    chunk_bytes: int
        Byte budget of one sector read while digesting. The number of
        sectors per read is derived from it, so peak memory does not
        depend on the sector size.
    workers: int
        Fixtures verified in parallel within a suite. ``1`` runs them
        one after the other.
    spool_limit: int
        Decompressed bytes kept in memory before spilling to disk.
    """
    test_files_root: str = "."
    chunk_bytes: int = DEFAULT_CHUNK_BYTES
    workers: int = 1
    spool_limit: int = DEFAULT_SPOOL_LIMIT

    def __post_init__(self) -> None:
        if self.chunk_bytes <= 0:
            raise ConfigError("chunk_bytes must be positive")
        if self.workers < 1:
            raise ConfigError("workers must be at least 1")
        if self.spool_limit < 0:
            raise ConfigError("spool_limit must not be negative")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "HarnessConfig":
        env = os.environ if environ is None else environ
        values = {}
        if env.get(ENV_TEST_FILES_ROOT):
            values["test_files_root"] = env[ENV_TEST_FILES_ROOT]
        for key, name in ((ENV_CHUNK_BYTES, "chunk_bytes"),
                          (ENV_WORKERS, "workers"),
                          (ENV_SPOOL_LIMIT, "spool_limit")):
            if env.get(key):
                try:
                    values[name] = int(env[key])
                except ValueError:
                    raise ConfigError(f"{key}={env[key]!r} is not an integer") from None
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
