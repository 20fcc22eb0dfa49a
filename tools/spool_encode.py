#!/usr/bin/env python3
"""
spool_encode.py
===============
Encode a JSON-described result set into a spooled segment file.

Input document:

    {
      "columns": [{"name": "id", "type": "bigint"}, {"name": "tags", "type": "array(varchar)"}],
      "rows": [[1, ["a", "b"]], [2, null]],
      "page_size": 1024
    }

Usage:
    python tools/spool_encode.py encode --input rows.json --output segment.bin --encoding json+zstd --json
    python tools/spool_encode.py encodings --json
    python tools/spool_encode.py version --json
    python tools/spool_encode.py self-test --json
"""
from __future__ import annotations

import argparse
import base64
import json
import sys
import uuid
from datetime import date, datetime, time as clock_time, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from cli_runtime import emit_json, ensure_import_paths, resolve_repo_root, self_test_core, version_result

REPO_ROOT = resolve_repo_root(__file__)
ensure_import_paths(REPO_ROOT)

from spool_attributes import DataAttribute  # noqa: E402
from spool_logging import configure_logging  # noqa: E402
from spool_page import OutputColumn, pages_from_rows  # noqa: E402
from spool_types import (  # noqa: E402
    ArrayType,
    BooleanType,
    CharType,
    DateType,
    DecimalType,
    IntervalDayTimeType,
    IntervalYearMonthType,
    MapType,
    RowType,
    TimestampType,
    TimestampWithTimeZoneType,
    TimeType,
    TimeWithTimeZoneType,
    VarbinaryType,
    VarcharType,
    PICOS_PER_MICRO,
    parse_type_signature,
    resolve_zone,
)
from spooling.contracts import Session  # noqa: E402
from spooling.encoder_map import available_encodings, create_encoder  # noqa: E402

CLI_SCHEMA_VERSION = "spool.cli.v1"
TOOL = "spool-encode"
_EPOCH_DATE = date(1970, 1, 1)
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class InputError(ValueError):
    ...


def _epoch_micros(dt: datetime) -> int:
    return (dt - _EPOCH) // timedelta(microseconds=1)


def _picos_of_day(t: clock_time) -> int:
    seconds = t.hour * 3600 + t.minute * 60 + t.second
    return seconds * 10**12 + t.microsecond * PICOS_PER_MICRO


def to_physical(value_type, value: Any) -> Any:
    """Convert a JSON input value into the block representation of value_type."""
    if value is None:
        return None
    if isinstance(value_type, (VarcharType, CharType)):
        return str(value).encode("utf-8")
    if isinstance(value_type, BooleanType):
        if not isinstance(value, bool):
            raise InputError(f"expected boolean, got {value!r}")
        return value
    if isinstance(value_type, DecimalType):
        scaled = Decimal(str(value)).scaleb(value_type.scale)
        if scaled != scaled.to_integral_value():
            raise InputError(f"{value!r} has more than {value_type.scale} fraction digits")
        return int(scaled)
    if isinstance(value_type, DateType):
        return (date.fromisoformat(value) - _EPOCH_DATE).days
    if isinstance(value_type, TimeWithTimeZoneType):
        parsed = clock_time.fromisoformat(value)
        offset = parsed.utcoffset()
        if offset is None:
            raise InputError(f"time with time zone needs an offset: {value!r}")
        return (_picos_of_day(parsed.replace(tzinfo=None)), int(offset.total_seconds() // 60))
    if isinstance(value_type, TimeType):
        return _picos_of_day(clock_time.fromisoformat(value))
    if isinstance(value_type, TimestampWithTimeZoneType):
        text, _, zone_id = str(value).rpartition(" ")
        if not text:
            raise InputError(f"timestamp with time zone needs a zone: {value!r}")
        local = datetime.fromisoformat(text).replace(tzinfo=resolve_zone(zone_id))
        millis, micros = divmod(_epoch_micros(local), 1000)
        return (millis, micros * PICOS_PER_MICRO, zone_id)
    if isinstance(value_type, TimestampType):
        return _epoch_micros(datetime.fromisoformat(value).replace(tzinfo=timezone.utc))
    if isinstance(value_type, (IntervalYearMonthType, IntervalDayTimeType)):
        return int(value)
    if isinstance(value_type, VarbinaryType):
        return base64.b64decode(value)
    if isinstance(value_type, ArrayType):
        return [to_physical(value_type.element_type, v) for v in value]
    if isinstance(value_type, MapType):
        if not isinstance(value, dict):
            raise InputError(f"expected object for {value_type.display_name}, got {value!r}")
        return [(to_physical(value_type.key_type, _map_key(value_type.key_type, k)),
                 to_physical(value_type.value_type, v)) for k, v in value.items()]
    if isinstance(value_type, RowType):
        return [to_physical(t, v) for (_, t), v in zip(value_type.fields, value)]
    return value


def _map_key(key_type, key: str) -> Any:
    if isinstance(key_type, (VarcharType, CharType, DateType, TimestampType, TimeType)):
        return key
    if isinstance(key_type, BooleanType):
        return key == "true"
    if isinstance(key_type, DecimalType):
        return key
    try:
        return json.loads(key)
    except json.JSONDecodeError:
        return key


def load_input(path: Path):
    try:
        doc = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InputError(f"input is not valid JSON: {exc}") from exc
    if not isinstance(doc, dict) or "columns" not in doc:
        raise InputError("input must be an object with 'columns' and 'rows'")

    columns = []
    for channel, column in enumerate(doc["columns"]):
        columns.append(OutputColumn(channel, column.get("name", f"_col{channel}"), parse_type_signature(column["type"])))

    rows = []
    for row in doc.get("rows", []):
        if len(row) != len(columns):
            raise InputError(f"row has {len(row)} values, expected {len(columns)}")
        rows.append(tuple(to_physical(c.type, v) for c, v in zip(columns, row)))
    page_size = int(doc.get("page_size", 1024))
    return columns, rows, page_size


def encode_file(input_path: Path, output_path: Path, encoding: str, query_id: Optional[str] = None) -> Dict[str, Any]:
    columns, rows, page_size = load_input(input_path)
    pages = list(pages_from_rows(rows, len(columns), page_size))
    session = Session(query_id=query_id or uuid.uuid4().hex[:12])
    encoder = create_encoder(encoding, session, columns)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "wb") as f:
        attrs = encoder.encode(f, pages)

    return {
        "encoding": encoder.encoding,
        "query_id": session.query_id,
        "columns": [{"name": c.column_name, "type": c.type.display_name} for c in columns],
        "rows": len(rows),
        "pages": len(pages),
        "output": str(output_path),
        "attributes": attrs.to_dict(),
        "segment_size": attrs.get(DataAttribute.SEGMENT_SIZE, int),
    }


def _payload(command: str, ok: bool, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"schema_version": CLI_SCHEMA_VERSION, "tool": TOOL, "command": command, "ok": ok, "result": result}


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="spool-encode", description="Encode result rows into spooled segments")
    ap.add_argument("--log-level", default="WARNING")
    sub = ap.add_subparsers(dest="command")

    p = sub.add_parser("encode", help="Encode a JSON row document into a segment file")
    p.add_argument("--input", required=True)
    p.add_argument("--output", required=True)
    p.add_argument("--encoding", default="json", choices=available_encodings())
    p.add_argument("--query-id", default=None)

    for name in ("encode", "encodings", "version", "self-test"):
        target = p if name == "encode" else sub.add_parser(name)
        target.add_argument("--json", action="store_true")
        target.add_argument("--json-file", default=None)

    args = ap.parse_args(argv)
    if not args.command:
        ap.print_help()
        return 2

    configure_logging(level=args.log_level, json_format=True)
    enabled_json = bool(args.json)
    json_file = Path(args.json_file).resolve() if args.json_file else None

    if args.command == "encodings":
        result = {"encodings": available_encodings()}
        emit_json(_payload("encodings", True, result), enabled_json, json_file)
        if not enabled_json:
            print("\n".join(result["encodings"]))
        return 0

    if args.command == "version":
        result = version_result(tool=TOOL, repo_root=REPO_ROOT)
        emit_json(_payload("version", True, result), enabled_json, json_file)
        if not enabled_json:
            build = result["build"]
            print(f"spool {build.get('spool_version', 'dev')} ({build.get('system', '?')}/{build.get('machine', '?')})")
        return 0

    if args.command == "self-test":
        result = self_test_core(tool=TOOL, repo_root=REPO_ROOT)
        ok = bool(result["summary"]["ok"])
        emit_json(_payload("self_test", ok, result), enabled_json, json_file)
        if not enabled_json:
            summary = result["summary"]
            print(f"[self-test] ok={summary['ok']} passed={summary['checks_passed']}/{summary['checks_total']}")
        return 0 if ok else 1

    try:
        result = encode_file(Path(args.input), Path(args.output), args.encoding, args.query_id)
    except (InputError, ValueError, OSError) as exc:
        emit_json(_payload("encode", False, {"error": f"{type(exc).__name__}: {exc}"}), enabled_json, json_file)
        if not enabled_json:
            print(f"[encode] failed: {exc}", file=sys.stderr)
        return 1

    emit_json(_payload("encode", True, result), enabled_json, json_file)
    if not enabled_json:
        print(f"[encode] {result['rows']} rows -> {result['output']} ({result['segment_size']} bytes, {result['encoding']})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
