"""
ImageVerify core package.

This package bundles the fixture store, the image plugin interface and
the verification engine used to check disk-image decoders against
golden expectation tables. The modules only depend on the standard
library and PyYAML, so importing the package is cheap.
"""

# Re-export common classes for convenience
from .config import HarnessConfig
from .engine import (
    Diagnostic,
    MismatchKind,
    OpenedImage,
    State,
    SuiteReport,
    VerificationResult,
    stream_digest,
    verify_fixture,
    verify_suite,
    verify_suites,
)
from .errors import (
    ConfigError,
    ExpectationError,
    FixtureCorrupt,
    FixtureError,
    FixtureNotFound,
    FixtureUnreadable,
    ImageVerifyError,
    MalformedHeader,
    OutOfRange,
    PluginError,
    ReadError,
    UnsupportedFormat,
)
from .expectations import FixtureEntry, Suite, load_suite, load_suites
from .fixtures import FixtureStore, open_fixture
from .mediatypes import MediaType
from .plugins import (
    ImagePlugin,
    PartitionExtent,
    TapeFile,
    TapePartition,
    Track,
    get_plugin,
    supports_partitions,
)

__all__ = [
    'HarnessConfig',
    'Diagnostic',
    'MismatchKind',
    'OpenedImage',
    'State',
    'SuiteReport',
    'VerificationResult',
    'stream_digest',
    'verify_fixture',
    'verify_suite',
    'verify_suites',
    'ConfigError',
    'ExpectationError',
    'FixtureCorrupt',
    'FixtureError',
    'FixtureNotFound',
    'FixtureUnreadable',
    'ImageVerifyError',
    'MalformedHeader',
    'OutOfRange',
    'PluginError',
    'ReadError',
    'UnsupportedFormat',
    'FixtureEntry',
    'Suite',
    'load_suite',
    'load_suites',
    'FixtureStore',
    'open_fixture',
    'MediaType',
    'ImagePlugin',
    'PartitionExtent',
    'TapeFile',
    'TapePartition',
    'Track',
    'get_plugin',
    'supports_partitions',
]
