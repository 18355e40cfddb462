import io
import struct

import pytest

from imageverify.engine import iter_sector_chunks
from imageverify.errors import ExpectationError, MalformedHeader, OutOfRange, UnsupportedFormat
from imageverify.mediatypes import MediaType, media_type_from_size
from imageverify.plugins import (
    CopyTapeImage,
    DiskCopy42Image,
    OpticalRawImage,
    PartitionExtent,
    PartitionedRawImage,
    RawCdImage,
    RawCdSubchannelImage,
    RawImage,
    TapeFile,
    TapePartition,
    Track,
    get_plugin,
    is_tape,
    plugin_names,
    supports_long_sectors,
    supports_partitions,
    supports_subchannel,
    supports_tracks,
)
from imageverify.plugins.mbr import parse_mbr

from image_helpers import (
    make_cptp,
    make_dc42,
    make_extended_disk,
    make_mbr_disk,
    make_raw_cd,
    patterned_image,
)


def _open(plugin, data):
    plugin.open(io.BytesIO(data))
    return plugin


def _sector_reader(disk):
    return lambda lba: bytes(disk[lba * 512:(lba + 1) * 512])


def test_raw_geometry_and_media_type():
    img = _open(RawImage(), patterned_image(1440))
    assert img.sectors == 1440
    assert img.sector_size == 512
    assert img.media_type == MediaType.DOS_35_DS_DD_9


def test_raw_unknown_size_is_hard_disk():
    img = _open(RawImage(), patterned_image(2000))
    assert img.media_type == MediaType.GENERIC_HDD


def test_iso_plugin_uses_2048_byte_sectors():
    img = _open(get_plugin("iso"), patterned_image(16, 2048))
    assert img.sector_size == 2048
    assert img.sectors == 16
    assert img.media_type == MediaType.CD


def test_raw_rejects_partial_sector_and_empty():
    with pytest.raises(UnsupportedFormat):
        _open(RawImage(), b"\0" * 700)
    with pytest.raises(MalformedHeader):
        _open(RawImage(), b"")


def test_read_sectors_returns_requested_run():
    data = patterned_image(32)
    img = _open(RawImage(), data)
    assert img.read_sectors(5, 3) == data[5 * 512:8 * 512]
    assert img.read_sectors(31, 1) == data[-512:]
    assert img.read_sectors(0, 0) == b""


@pytest.mark.parametrize("start,count", [(0, 33), (32, 1), (30, 5), (-1, 1)])
def test_read_past_end_is_out_of_range(start, count):
    img = _open(RawImage(), patterned_image(32))
    with pytest.raises(OutOfRange):
        img.read_sectors(start, count)


@pytest.mark.parametrize("chunk_bytes", [512, 1536, 4096, 10000, 1 << 20])
def test_chunking_is_transparent(chunk_bytes):
    data = patterned_image(37)
    img = _open(RawImage(), data)
    assert b"".join(iter_sector_chunks(img, chunk_bytes)) == data


def test_chunk_smaller_than_sector_still_reads_one_sector():
    data = patterned_image(4, 2048)
    img = _open(get_plugin("iso"), data)
    chunks = list(iter_sector_chunks(img, 100))
    assert len(chunks) == 4
    assert b"".join(chunks) == data


def test_mbr_partitions_in_table_order():
    disk = make_mbr_disk(4096, [(0x83, 2048, 1024), (0x06, 63, 1900)])
    img = _open(PartitionedRawImage(), disk)
    assert supports_partitions(img)
    assert img.partitions() == [PartitionExtent(2048, 1024), PartitionExtent(63, 1900)]


def test_mbr_skips_empty_slots_and_missing_signature():
    disk = bytearray(make_mbr_disk(128, [(0x00, 1, 10), (0x0B, 20, 30)]))
    assert parse_mbr(_sector_reader(disk), 128) == [PartitionExtent(20, 30)]
    disk[510:512] = b"\0\0"
    assert parse_mbr(_sector_reader(disk), 128) == []


def test_mbr_follows_ebr_chain_in_place_of_extended_slot():
    disk = make_extended_disk(
        4096, [(0x06, 63, 937)], 1000,
        [(1000, 0x83, 63, 500), (1600, 0x82, 63, 200), (2000, 0x0B, 1, 1000)])
    img = _open(PartitionedRawImage(), disk)
    assert img.partitions() == [
        PartitionExtent(63, 937),
        PartitionExtent(1063, 500),
        PartitionExtent(1663, 200),
        PartitionExtent(2001, 1000),
    ]


def test_mbr_extended_container_is_never_an_extent():
    for ext_type in (0x05, 0x0F, 0x85):
        disk = bytearray(make_mbr_disk(256, [(0x0B, 1, 99), (ext_type, 100, 156)]))
        disk[100 * 512 + 510:100 * 512 + 512] = b"\0\0"
        assert parse_mbr(_sector_reader(disk), 256) == [PartitionExtent(1, 99)]


def test_mbr_ebr_loop_terminates():
    disk = make_extended_disk(1024, [], 100, [(100, 0x83, 1, 10), (200, 0x83, 1, 10)])
    disk = bytearray(disk)
    # point the second EBR back at the first
    struct.pack_into("<B3sB3sII", disk, 200 * 512 + 446 + 16, 0, b"\0\0\0", 0x05,
                     b"\0\0\0", 0, 1)
    assert parse_mbr(_sector_reader(disk), 1024) == [
        PartitionExtent(101, 10), PartitionExtent(201, 10)]


def test_plain_raw_has_no_partition_capability():
    assert not supports_partitions(RawImage())
    assert not supports_partitions(DiskCopy42Image())


def test_dc42_opens_and_reads_past_header():
    data = patterned_image(2880)
    img = _open(DiskCopy42Image(), make_dc42(data))
    assert img.media_type == MediaType.DOS_35_HD
    assert img.sectors == 2880
    assert img.disk_name == "Test Disk"
    assert img.read_sectors(100, 2) == data[100 * 512:102 * 512]


def test_dc42_signature_mismatch_is_unsupported():
    with pytest.raises(UnsupportedFormat):
        _open(DiskCopy42Image(), make_dc42(patterned_image(4), valid=0))
    with pytest.raises(UnsupportedFormat):
        _open(DiskCopy42Image(), b"short")


def test_dc42_inconsistent_header_is_malformed():
    data = patterned_image(8)
    with pytest.raises(MalformedHeader):
        _open(DiskCopy42Image(), make_dc42(data, data_size=len(data) + 512))
    with pytest.raises(MalformedHeader):
        _open(DiskCopy42Image(), make_dc42(data, fmt=0x42))
    with pytest.raises(MalformedHeader):
        _open(DiskCopy42Image(), make_dc42(data, fmt_byte=0x77))


def test_unknown_plugin_is_fatal():
    with pytest.raises(ExpectationError):
        get_plugin("no-such-format")


def test_registry_returns_fresh_instances():
    assert get_plugin("raw") is not get_plugin("raw")


def test_media_type_from_size_table():
    assert media_type_from_size(1474560) == MediaType.DOS_35_HD
    assert media_type_from_size(901120) == MediaType.CBM_AMIGA_35_DD
    assert media_type_from_size(123 * 512) == MediaType.GENERIC_HDD


def test_registry_lists_every_reference_plugin():
    assert plugin_names() == ["cd-raw", "cd-raw-sub", "cptp", "dc42", "iso", "raw", "raw-mbr"]


def test_iso_is_one_track_without_flags():
    img = _open(OpticalRawImage(), patterned_image(16, 2048))
    assert supports_tracks(img)
    assert not supports_long_sectors(img)
    assert img.tracks() == [Track(sequence=1, session=1, start=0, end=15)]
    assert img.tracks()[0].flags is None
    assert not supports_tracks(RawImage())


def test_cd_raw_returns_user_data_and_long_sectors():
    image, user, raw, _ = make_raw_cd(10)
    img = _open(RawCdImage(), image)
    assert img.media_type == MediaType.CDROM
    assert img.sectors == 10
    assert img.sector_size == 2048
    assert img.read_sectors(3, 2) == user[3 * 2048:5 * 2048]
    assert img.read_sectors_long(9, 1) == raw[9 * 2352:]
    assert img.tracks() == [Track(1, 1, 0, 9, flags=0x04)]
    assert supports_long_sectors(img)
    assert not supports_subchannel(img)


def test_cd_raw_with_subchannel_splits_frames():
    image, user, raw, sub = make_raw_cd(6, subchannel=True)
    img = _open(RawCdSubchannelImage(), image)
    assert img.sectors == 6
    assert supports_subchannel(img)
    assert img.read_sectors(0, 6) == user
    assert img.read_sectors_long(0, 6) == raw
    assert img.read_subchannel(2, 3) == sub[2 * 96:5 * 96]
    with pytest.raises(OutOfRange):
        img.read_subchannel(5, 2)


def test_cd_raw_rejects_other_layouts():
    image, _, _, _ = make_raw_cd(2)
    with pytest.raises(UnsupportedFormat):
        _open(RawCdImage(), image + b"\0")
    with pytest.raises(UnsupportedFormat):
        _open(RawCdImage(), b"\0" * 2352)
    with pytest.raises(MalformedHeader):
        _open(RawCdImage(), make_raw_cd(2, mode=2)[0])
    with pytest.raises(MalformedHeader):
        _open(RawCdImage(), b"")
    # 2352-byte frames do not line up with 2448-byte strides
    with pytest.raises(UnsupportedFormat):
        _open(RawCdSubchannelImage(), make_raw_cd(3)[0])


def test_cptp_blocks_files_and_partitions():
    blocks = [b"a" * 512, b"b" * 1024, b"c" * 80]
    img = _open(CopyTapeImage(), make_cptp([blocks[:2], blocks[2:]]))
    assert is_tape(img)
    assert img.media_type == MediaType.UnknownTape
    assert img.sectors == 3
    assert img.sector_size == 1024
    assert img.read_sectors(0, 3) == b"".join(blocks)
    assert img.read_sectors(1, 1) == blocks[1]
    assert img.tape_files() == [TapeFile(0, 0, 0, 1), TapeFile(1, 0, 2, 2)]
    assert img.tape_partitions() == [TapePartition(0, 0, 2)]


def test_cptp_empty_files_take_a_number_but_no_entry():
    data = make_cptp([[b"x" * 16], [], [b"y" * 32]])
    img = _open(CopyTapeImage(), data)
    assert img.tape_files() == [TapeFile(0, 0, 0, 0), TapeFile(2, 0, 1, 1)]


def test_cptp_trailing_blocks_without_mark_form_a_file():
    data = b"CPTP:BLK 000004\nabcd\nCPTP:MRK\nCPTP:BLK 000002\nef\n"
    img = _open(CopyTapeImage(), data)
    assert img.tape_files() == [TapeFile(0, 0, 0, 0), TapeFile(1, 0, 1, 1)]
    assert img.read_sectors(0, 2) == b"abcdef"


def test_cptp_malformed_records():
    with pytest.raises(UnsupportedFormat):
        _open(CopyTapeImage(), b"not a tape at all")
    with pytest.raises(MalformedHeader):
        _open(CopyTapeImage(), b"CPTP:BLK 000010\nshort\n")
    with pytest.raises(MalformedHeader):
        _open(CopyTapeImage(), b"CPTP:BLK 00x004\nabcd\n")
    with pytest.raises(MalformedHeader):
        _open(CopyTapeImage(), b"CPTP:XYZ\n")
    with pytest.raises(MalformedHeader):
        _open(CopyTapeImage(), b"CPTP:MRK\nCPTP:EOT\n")


def test_tape_chunks_may_be_shorter_than_sector_size():
    blocks = [b"a" * 512, b"b" * 1024, b"c" * 80]
    img = _open(CopyTapeImage(), make_cptp([blocks]))
    assert b"".join(iter_sector_chunks(img, 1024)) == b"".join(blocks)
