"""
Exception types raised by the ImageVerify harness.

Fixture and plugin errors are recoverable: the engine records them as an
errored fixture and moves on to the next one. ``ExpectationError`` marks a
broken expectation table (unknown plugin, impossible geometry, bad YAML)
and is meant to stop the run.
"""

from __future__ import annotations


class ImageVerifyError(Exception):
    """Base class for every error raised by the harness."""


class ExpectationError(ImageVerifyError):
    """The expectation table or suite definition is malformed."""


class ConfigError(ImageVerifyError):
    """A harness setting is out of range."""


# ---- fixture store ----

class FixtureError(ImageVerifyError):
    """A fixture could not be turned into a readable byte stream."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class FixtureNotFound(FixtureError):
    pass


class FixtureUnreadable(FixtureError):
    pass


class FixtureCorrupt(FixtureError):
    pass


# ---- image plugins ----

class PluginError(ImageVerifyError):
    """Raised by image plugins while opening or reading an image."""


class UnsupportedFormat(PluginError):
    pass


class MalformedHeader(PluginError):
    pass


class OutOfRange(PluginError):
    def __init__(self, start: int, count: int, sectors: int) -> None:
        super().__init__(
            f"sectors {start}+{count} outside image of {sectors} sectors"
        )
        self.start = start
        self.count = count
        self.sectors = sectors


class ReadError(PluginError):
    pass
