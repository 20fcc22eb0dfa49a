#!/usr/bin/env python3
"""CLI JSON contract tests for the spool-encode tool."""
import json
import subprocess
import sys
from pathlib import Path

import lz4.frame
import zstandard as zstd

import spool_encode

REPO_ROOT = Path(__file__).resolve().parent.parent

DOC = {
    "columns": [
        {"name": "id", "type": "bigint"},
        {"name": "price", "type": "decimal(10,2)"},
        {"name": "day", "type": "date"},
        {"name": "at", "type": "timestamp(3) with time zone"},
        {"name": "tags", "type": "array(varchar)"},
        {"name": "attrs", "type": "map(varchar, bigint)"},
        {"name": "raw", "type": "varbinary"},
    ],
    "rows": [
        [1, "12.30", "2020-01-01", "2020-01-01 05:30:00.123 +05:30", ["x", None], {"a": 1}, "AAH/"],
        [2, None, None, None, None, None, None],
    ],
    "page_size": 1,
}

EXPECTED = [
    [1, "12.30", "2020-01-01", "2020-01-01 05:30:00.123 +05:30", ["x", None], {"a": 1}, "AAH/"],
    [2, None, None, None, None, None, None],
]


def _write_doc(tmp_path, doc=DOC):
    path = tmp_path / "rows.json"
    path.write_text(json.dumps(doc), encoding="utf-8")
    return path


def _main_json(capsys, argv):
    code = spool_encode.main(argv)
    return code, json.loads(capsys.readouterr().out)


def test_encode_json_contract(tmp_path, capsys):
    src = _write_doc(tmp_path)
    out = tmp_path / "seg" / "segment.json"
    code, payload = _main_json(capsys, ["encode", "--input", str(src), "--output", str(out), "--query-id", "q1", "--json"])

    assert code == 0
    assert payload["schema_version"] == "spool.cli.v1"
    assert payload["tool"] == "spool-encode"
    assert payload["command"] == "encode"
    assert payload["ok"] is True
    result = payload["result"]
    assert result["encoding"] == "json"
    assert result["query_id"] == "q1"
    assert result["rows"] == 2
    assert result["pages"] == 2
    assert result["segment_size"] == out.stat().st_size
    assert result["attributes"] == {"segmentSize": out.stat().st_size}
    assert json.loads(out.read_bytes()) == EXPECTED


def test_encode_compressed_outputs(tmp_path, capsys):
    src = _write_doc(tmp_path)
    decoders = {
        "json+zstd": lambda b: zstd.ZstdDecompressor().decompressobj().decompress(b),
        "json+lz4": lz4.frame.decompress,
    }
    for encoding, decode in decoders.items():
        out = tmp_path / f"segment.{encoding}"
        code, payload = _main_json(capsys, ["encode", "--input", str(src), "--output", str(out),
                                            "--encoding", encoding, "--json"])
        assert code == 0
        assert payload["result"]["encoding"] == encoding
        assert payload["result"]["segment_size"] == out.stat().st_size
        assert json.loads(decode(out.read_bytes())) == EXPECTED


def test_encode_bad_row_reports_failure(tmp_path, capsys):
    src = _write_doc(tmp_path, {"columns": [{"name": "a", "type": "bigint"}], "rows": [[1, 2]]})
    code, payload = _main_json(capsys, ["encode", "--input", str(src), "--output", str(tmp_path / "o"), "--json"])
    assert code == 1
    assert payload["ok"] is False
    assert "InputError" in payload["result"]["error"]


def test_encode_unknown_type_reports_failure(tmp_path, capsys):
    src = _write_doc(tmp_path, {"columns": [{"name": "a", "type": "blob"}], "rows": []})
    code, payload = _main_json(capsys, ["encode", "--input", str(src), "--output", str(tmp_path / "o"), "--json"])
    assert code == 1
    assert "TypeSignatureError" in payload["result"]["error"]


def test_encode_json_file(tmp_path, capsys):
    src = _write_doc(tmp_path)
    report = tmp_path / "report.json"
    code = spool_encode.main(["encode", "--input", str(src), "--output", str(tmp_path / "o.json"),
                              "--json-file", str(report)])
    assert code == 0
    assert "[encode] 2 rows" in capsys.readouterr().out
    assert json.loads(report.read_text())["ok"] is True


def test_encodings_json_contract(capsys):
    code, payload = _main_json(capsys, ["encodings", "--json"])
    assert code == 0
    assert payload["result"]["encodings"] == ["json", "json+zstd", "json+lz4"]


def test_self_test_json_contract(capsys):
    code, payload = _main_json(capsys, ["self-test", "--json"])
    assert code == 0
    assert payload["command"] == "self_test"
    result = payload["result"]
    assert result["version"] == "spool-cli-self-test-v1"
    assert result["summary"]["ok"] is True
    assert {c["name"] for c in result["checks"]} == {"json_roundtrip", "json+zstd_roundtrip", "json+lz4_roundtrip"}


def test_version_json_contract():
    proc = subprocess.run(
        [sys.executable, str(REPO_ROOT / "tools" / "spool_encode.py"), "version", "--json"],
        capture_output=True, text=True, check=True,
    )
    payload = json.loads(proc.stdout)
    assert payload["command"] == "version"
    assert payload["result"]["version"] == "spool-cli-version-v1"
    build = payload["result"]["build"]
    assert set(build["components"]) == {"zstandard", "lz4", "pydantic", "structlog"}


def test_no_command_prints_help(capsys):
    assert spool_encode.main([]) == 2
    assert "spool-encode" in capsys.readouterr().out
