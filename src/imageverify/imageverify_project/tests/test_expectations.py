import os
import tempfile

import pytest
import yaml

from imageverify.config import HarnessConfig
from imageverify.errors import ConfigError, ExpectationError
from imageverify.expectations import (
    MAX_STREAM_BYTES,
    FixtureEntry,
    Suite,
    load_suite,
    suite_from_dict,
    suite_to_dict,
)
from imageverify.mediatypes import MediaType
from imageverify.plugins import PartitionExtent, TapeFile, TapePartition, Track

TABLE = """
suite: DriDiskCopy
plugin: raw
folder: Media image formats/DRI DISKCOPY
fixtures:
  - file: DSKA0000.IMG.lz
    media_type: DOS_35_HD
    sectors: 2880
    sector_size: 512
    digest: "6c26a0f4e2f4a0a3e5cbb79a3bb82b0e"
  - file: hdd.img.lz
    media_type: GENERIC_HDD
    sectors: 20480
    sector_size: 512
    digest: "ABCDEF0123456789ABCDEF0123456789"
    partitions:
      - {start: 63, length: 20417}
"""


def _write(tmp, text):
    path = os.path.join(tmp, "table.yaml")
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return path


def test_load_suite_from_yaml():
    with tempfile.TemporaryDirectory() as tmp:
        suite = load_suite(_write(tmp, TABLE))
    assert suite.name == "DriDiskCopy"
    assert suite.plugin == "raw"
    assert suite.folder == "Media image formats/DRI DISKCOPY"
    assert suite.digest_algorithm == "md5"
    first, second = suite.fixtures
    assert first.media_type is MediaType.DOS_35_HD
    assert first.sectors == 2880
    assert first.partitions is None
    assert second.partitions == (PartitionExtent(63, 20417),)


def test_suite_round_trips_through_dict():
    suite = suite_from_dict(yaml.safe_load(TABLE))
    assert suite_from_dict(suite_to_dict(suite)) == suite


OPTICAL_TAPE_TABLE = """
suite: Optical
plugin: cd-raw-sub
fixtures:
  - file: data.bin.lz
    media_type: CDROM
    sectors: 300
    sector_size: 2048
    digest: "0123456789abcdef0123456789abcdef"
    long_digest: "fedcba9876543210fedcba9876543210"
    subchannel_digest: "00112233445566778899aabbccddeeff"
    tracks:
      - {sequence: 1, session: 1, start: 0, end: 149, flags: 4}
      - {sequence: 2, session: 1, start: 150, end: 299, pregap: 150}
  - file: tape.cptp.lz
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


def test_optical_and_tape_rows():
    cd, tape = suite_from_dict(yaml.safe_load(OPTICAL_TAPE_TABLE)).fixtures
    assert cd.tracks == (Track(1, 1, 0, 149, flags=4), Track(2, 1, 150, 299, pregap=150))
    assert cd.tracks[1].flags is None
    assert cd.long_digest == "fedcba9876543210fedcba9876543210"
    assert cd.subchannel_digest.startswith("0011")
    assert cd.partitions is None and cd.tape_files is None
    assert tape.media_type == MediaType.UnknownTape
    assert tape.tape_files == (TapeFile(0, 0, 0, 1), TapeFile(1, 0, 2, 2))
    assert tape.tape_partitions == (TapePartition(0, 0, 2),)
    assert tape.tracks is None and tape.long_digest is None


def test_optical_and_tape_rows_round_trip():
    suite = suite_from_dict(yaml.safe_load(OPTICAL_TAPE_TABLE))
    data = suite_to_dict(suite)
    assert "flags" not in data["fixtures"][0]["tracks"][1]
    assert "long_digest" not in data["fixtures"][1]
    assert suite_from_dict(yaml.safe_load(yaml.safe_dump(data))) == suite


def _row(**overrides):
    row = {"file": "a.img", "media_type": "DOS_35_HD", "sectors": 2880,
           "sector_size": 512, "digest": "00ff"}
    row.update(overrides)
    return {"suite": "s", "plugin": "raw", "fixtures": [row]}


@pytest.mark.parametrize("overrides", [
    {"media_type": "FLOPPY_9000"},
    {"sectors": "many"},
    {"sectors": -1},
    {"sector_size": 0},
    {"digest": "not hex"},
    {"digest": 1234},
    {"checksum": "00ff"},
    {"partitions": [{"start": 10, "length": 2880}]},
    {"partitions": [{"start": 0, "length": 100}, {"start": 50, "length": 100}]},
    {"partitions": [{"start": 0}]},
    {"tracks": [{"sequence": 1, "session": 1, "start": 0}]},
    {"tracks": [{"sequence": 1, "session": 1, "start": 0, "end": 2880}]},
    {"tracks": [{"sequence": 1, "session": 1, "start": 10, "end": 9}]},
    {"tracks": [{"sequence": 1, "session": 1, "start": 0, "end": 9, "mode": 1}]},
    {"tracks": {"sequence": 1}},
    {"long_digest": "xyz"},
    {"subchannel_digest": 1234},
    {"tape_files": [{"file": 0, "partition": 0, "first_block": 0, "last_block": 2880}]},
    {"tape_files": [{"file": 0, "first_block": 0, "last_block": 1}]},
    {"tape_partitions": [{"number": 0, "first_block": -1, "last_block": 1}]},
])
def test_malformed_rows_are_fatal(overrides):
    with pytest.raises(ExpectationError):
        suite_from_dict(_row(**overrides))


def test_missing_required_key():
    data = _row()
    del data["fixtures"][0]["digest"]
    with pytest.raises(ExpectationError):
        suite_from_dict(data)


def test_unknown_plugin_or_algorithm_is_fatal():
    with pytest.raises(ExpectationError):
        suite_from_dict(dict(_row(), plugin="nope"))
    with pytest.raises(ExpectationError):
        suite_from_dict(dict(_row(), digest_algorithm="md17"))


@pytest.mark.parametrize("algorithm", ["shake_128", "shake_256"])
def test_variable_length_digest_algorithm_is_fatal(algorithm):
    with pytest.raises(ExpectationError):
        suite_from_dict(dict(_row(), digest_algorithm=algorithm))
    suite = suite_from_dict(dict(_row(), digest_algorithm="sha3_256"))
    assert suite.digest_algorithm == "sha3_256"


def test_duplicate_fixture_is_fatal():
    data = _row()
    data["fixtures"].append(dict(data["fixtures"][0]))
    with pytest.raises(ExpectationError):
        suite_from_dict(data)


def test_sixty_four_bit_sector_counts():
    big = FixtureEntry("huge.img", MediaType.GENERIC_HDD, 2 ** 40, 512, "00")
    assert big.sectors * big.sector_size < MAX_STREAM_BYTES
    with pytest.raises(ExpectationError):
        FixtureEntry("too-big.img", MediaType.GENERIC_HDD, 2 ** 62, 4096, "00")


def test_partitions_may_touch_but_not_overlap():
    entry = FixtureEntry("a.img", MediaType.GENERIC_HDD, 300, 512, "00",
                         (PartitionExtent(0, 100), PartitionExtent(100, 200)))
    assert len(entry.partitions) == 2


def test_invalid_yaml_is_fatal():
    with tempfile.TemporaryDirectory() as tmp:
        with pytest.raises(ExpectationError):
            load_suite(_write(tmp, "suite: [unclosed"))
        with pytest.raises(ExpectationError):
            load_suite(os.path.join(tmp, "missing.yaml"))


def test_suite_validates_plugin_on_construction():
    with pytest.raises(ExpectationError):
        Suite(name="s", plugin="nope", folder="", fixtures=())


def test_config_from_env():
    env = {"IMAGEVERIFY_TEST_FILES_ROOT": "/data/test-files",
           "IMAGEVERIFY_WORKERS": "3",
           "IMAGEVERIFY_CHUNK_BYTES": "65536"}
    config = HarnessConfig.from_env(env)
    assert config.test_files_root == "/data/test-files"
    assert config.workers == 3
    assert config.chunk_bytes == 65536
    assert HarnessConfig.from_env(env, workers=8).workers == 8
    assert HarnessConfig.from_env({}, workers=None).workers == 1


def test_config_rejects_bad_values():
    with pytest.raises(ConfigError):
        HarnessConfig.from_env({"IMAGEVERIFY_WORKERS": "lots"})
    with pytest.raises(ConfigError):
        HarnessConfig(chunk_bytes=0)
