#!/usr/bin/env python3
"""Shared runtime helpers for Spool CLI wrappers."""

from __future__ import annotations

import io
import json
import os
import platform
import sys
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional


def resolve_repo_root(script_file: str) -> Path:
    """Resolve repo root for source and PyInstaller-frozen execution."""
    meipass = getattr(sys, "_MEIPASS", None)
    if meipass:
        root = Path(meipass)
        if (root / "api").exists():
            return root
        if (root / "_internal" / "api").exists():
            return root / "_internal"
    return Path(script_file).resolve().parent.parent


def ensure_import_paths(repo_root: Path) -> None:
    for p in (repo_root / "api", repo_root / "tools"):
        ps = str(p)
        if ps not in sys.path:
            sys.path.insert(0, ps)


def _component_version(module_name: str) -> Optional[str]:
    try:
        mod = __import__(module_name)
    except ImportError:
        return None
    return getattr(mod, "__version__", None) or getattr(mod, "VERSION", None)


def get_build_info(tool: str, repo_root: Path) -> Dict[str, Any]:
    return {
        "tool": tool,
        "spool_version": os.environ.get("SPOOL_BUILD_VERSION", "dev"),
        "build_commit": os.environ.get("GITHUB_SHA") or os.environ.get("SPOOL_BUILD_COMMIT") or "",
        "platform": platform.platform(),
        "system": platform.system(),
        "machine": platform.machine(),
        "python": platform.python_version(),
        "frozen": bool(getattr(sys, "frozen", False)),
        "repo_root": str(repo_root),
        "components": {
            "zstandard": _component_version("zstandard"),
            "lz4": _component_version("lz4"),
            "pydantic": _component_version("pydantic"),
            "structlog": _component_version("structlog"),
        },
    }


def _check(name: str, ok: bool, severity: str = "error", **extra: Any) -> Dict[str, Any]:
    row = {"name": name, "ok": bool(ok), "severity": severity}
    row.update(extra)
    return row


def summarize_checks(checks: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    checks = list(checks)
    errors = sum(1 for c in checks if not c.get("ok") and c.get("severity") == "error")
    warnings = sum(1 for c in checks if not c.get("ok") and c.get("severity") == "warning")
    return {
        "checks_total": len(checks),
        "checks_passed": sum(1 for c in checks if c.get("ok")),
        "errors": errors,
        "warnings": warnings,
        "ok": errors == 0,
    }


def self_test_core(*, tool: str, repo_root: Path) -> Dict[str, Any]:
    """Encode a tiny segment with every registered encoding and decode it back."""
    ensure_import_paths(repo_root)
    checks: List[Dict[str, Any]] = []
    started = time.time()
    expected = [[1, "a"], [2, None]]

    try:
        import lz4.frame
        import zstandard as zstd

        from spool_attributes import DataAttribute
        from spool_page import Block, OutputColumn, Page
        from spool_types import BIGINT, VARCHAR
        from spooling.contracts import EncoderSettings, Session
        from spooling.encoder_map import available_encodings, create_encoder

        columns = [OutputColumn(0, "id", BIGINT), OutputColumn(1, "name", VARCHAR)]
        page = Page.of(Block.of(1, 2), Block.of(b"a", None))
        session = Session(query_id="self-test")
        decoders = {
            "json": lambda b: b,
            "json+zstd": lambda b: zstd.ZstdDecompressor().decompressobj().decompress(b),
            "json+lz4": lz4.frame.decompress,
        }
        for encoding in available_encodings():
            try:
                out = io.BytesIO()
                encoder = create_encoder(encoding, session, columns, EncoderSettings())
                attrs = encoder.encode(out, [page])
                raw = decoders[encoding](out.getvalue())
                ok = json.loads(raw) == expected and attrs.get(DataAttribute.SEGMENT_SIZE, int) == len(out.getvalue())
                checks.append(_check(f"{encoding}_roundtrip", ok, segment_bytes=len(out.getvalue())))
            except Exception as exc:
                checks.append(_check(f"{encoding}_roundtrip", False, detail=str(exc)))
    except ImportError as exc:
        checks.append(_check("imports", False, detail=str(exc)))

    return {
        "version": "spool-cli-self-test-v1",
        "build": get_build_info(tool, repo_root),
        "summary": summarize_checks(checks),
        "checks": checks,
        "duration_seconds": round(time.time() - started, 3),
    }


def version_result(*, tool: str, repo_root: Path) -> Dict[str, Any]:
    return {
        "version": "spool-cli-version-v1",
        "build": get_build_info(tool, repo_root),
    }


def emit_json(payload: Dict[str, Any], enabled: bool, json_file: Optional[Path] = None) -> None:
    if json_file:
        json_file.parent.mkdir(parents=True, exist_ok=True)
        json_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    if enabled:
        print(json.dumps(payload, indent=2))
