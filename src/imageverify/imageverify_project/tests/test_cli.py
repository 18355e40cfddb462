import hashlib
import json
import os
import tempfile

import yaml

from verify_cli import main

from image_helpers import make_dc42, patterned_image, write_fixture


def _table(tmp, fixtures, plugin="raw"):
    path = os.path.join(tmp, f"{plugin}.yaml")
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump({"suite": plugin.upper(), "plugin": plugin,
                        "folder": plugin, "fixtures": fixtures}, f)
    return path


def _row(name, data, **overrides):
    row = {"file": name, "media_type": "DOS_35_HD", "sectors": len(data) // 512,
           "sector_size": 512, "digest": hashlib.md5(data).hexdigest()}
    row.update(overrides)
    return row


def test_cli_passes_and_prints_each_fixture(capsys):
    data = patterned_image(2880)
    with tempfile.TemporaryDirectory() as tmp:
        write_fixture(os.path.join(tmp, "dc42"), "mf2hd.dc42.lz", make_dc42(data))
        table = _table(tmp, [_row("mf2hd.dc42.lz", data)], plugin="dc42")
        code = main(["--table", table, "--root", tmp])
    out = capsys.readouterr().out
    assert code == 0
    assert "[pass] mf2hd.dc42.lz" in out
    assert "1/1 fixtures passed" in out


def test_cli_reports_failure_as_json(capsys):
    data = patterned_image(2880)
    with tempfile.TemporaryDirectory() as tmp:
        write_fixture(os.path.join(tmp, "raw"), "a.img.gz", data)
        table = _table(tmp, [_row("a.img.gz", data, sectors=1440)])
        code = main(["--table", table, "--root", tmp, "--json", "--workers", "2"])
    assert code == 1
    report = json.loads(capsys.readouterr().out)
    result = report[0]["results"][0]
    assert result["passed"] is False
    assert result["digest_match"] is True
    assert [m["field"] for m in result["mismatches"]] == ["sectors"]


def test_cli_bad_table_exits_2(capsys):
    with tempfile.TemporaryDirectory() as tmp:
        table = _table(tmp, [{"file": "a.img"}])
        assert main(["--table", table, "--root", tmp]) == 2
    assert "error:" in capsys.readouterr().err
