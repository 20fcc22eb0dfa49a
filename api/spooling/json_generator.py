#!/usr/bin/env python3
"""
JsonGenerator - [STREAMING JSON WRITER]
=======================================
Token-level JSON writer over a binary sink. Tracks array/object nesting,
inserts separators, buffers output and escapes strings directly on UTF-8
bytes, so callers holding encoded text never decode it.

Output is compact (no whitespace). Non-ASCII text is written as raw UTF-8;
only '"', '\\' and control characters below 0x20 are escaped.
"""

import base64
import math
import re
from decimal import Decimal

from spool_types import Float32, real_to_string

_ROOT = 0
_ARRAY = 1
_OBJECT = 2
_CONTEXT_NAMES = {_ROOT: "root", _ARRAY: "Array", _OBJECT: "Object"}

_ESCAPE_RE = re.compile(rb'[\x00-\x1f"\\]')
_ESCAPES = {
    b'"': b'\\"',
    b"\\": b"\\\\",
    b"\n": b"\\n",
    b"\r": b"\\r",
    b"\t": b"\\t",
    b"\x08": b"\\b",
    b"\x0c": b"\\f",
}
for _i in range(0x20):
    _ESCAPES.setdefault(bytes([_i]), b"\\u%04x" % _i)


class JsonProcessingError(ValueError):
    ...


def _escape_match(m) -> bytes:
    return _ESCAPES[m.group(0)]


def escape_utf8(data: bytes) -> bytes:
    if _ESCAPE_RE.search(data) is None:
        return data
    return _ESCAPE_RE.sub(_escape_match, data)


class JsonGenerator:
    def __init__(self, sink, buffer_size: int = 8192):
        self._sink = sink
        self._buffer_size = buffer_size
        self._buf = bytearray()
        # [kind, entries written, field name written and awaiting its value]
        self._ctx = [[_ROOT, 0, False]]
        self._closed = False

    @property
    def depth(self) -> int:
        return len(self._ctx) - 1

    @property
    def closed(self) -> bool:
        return self._closed

    # ── plumbing ─────────────────────────────────────────────────────

    def _append(self, data: bytes):
        if self._closed:
            raise JsonProcessingError("Generator is closed")
        self._buf += data
        if len(self._buf) >= self._buffer_size:
            self._flush_buffer()

    def _flush_buffer(self):
        if self._buf:
            chunk = bytes(self._buf)
            self._buf.clear()
            self._sink.write(chunk)

    def _before_value(self):
        if self._closed:
            raise JsonProcessingError("Generator is closed")
        ctx = self._ctx[-1]
        kind = ctx[0]
        if kind == _ARRAY:
            if ctx[1]:
                self._buf += b","
            ctx[1] += 1
        elif kind == _OBJECT:
            if not ctx[2]:
                raise JsonProcessingError("Can not write a value, expecting a field name")
            ctx[2] = False
        else:
            if ctx[1]:
                self._buf += b" "
            ctx[1] += 1

    def _end(self, kind: int, token: bytes):
        ctx = self._ctx[-1]
        if ctx[0] != kind:
            raise JsonProcessingError(
                f"Current context not {_CONTEXT_NAMES[kind]} but {_CONTEXT_NAMES[ctx[0]]}"
            )
        if kind == _OBJECT and ctx[2]:
            raise JsonProcessingError("Can not end an Object while a field value is pending")
        self._ctx.pop()
        self._append(token)

    # ── structure ────────────────────────────────────────────────────

    def write_start_array(self):
        self._before_value()
        self._ctx.append([_ARRAY, 0, False])
        self._append(b"[")

    def write_end_array(self):
        self._end(_ARRAY, b"]")

    def write_start_object(self):
        self._before_value()
        self._ctx.append([_OBJECT, 0, False])
        self._append(b"{")

    def write_end_object(self):
        self._end(_OBJECT, b"}")

    def write_field_name(self, name: str):
        if self._closed:
            raise JsonProcessingError("Generator is closed")
        ctx = self._ctx[-1]
        if ctx[0] != _OBJECT or ctx[2]:
            raise JsonProcessingError("Can not write a field name, expecting a value")
        if ctx[1]:
            self._buf += b","
        ctx[1] += 1
        ctx[2] = True
        self._append(b'"' + escape_utf8(_encode_text(name)) + b'":')

    # ── scalars ──────────────────────────────────────────────────────

    def write_null(self):
        self._before_value()
        self._append(b"null")

    def write_boolean(self, value: bool):
        self._before_value()
        self._append(b"true" if value else b"false")

    def write_number(self, value):
        if isinstance(value, bool):
            raise JsonProcessingError("Booleans are not numbers; use write_boolean()")
        if isinstance(value, int):
            text = str(value)
        elif isinstance(value, Float32):
            if not math.isfinite(value):
                raise JsonProcessingError(f"Non-finite number {value!r} cannot be written as a JSON number")
            text = real_to_string(value)
        elif isinstance(value, float):
            if not math.isfinite(value):
                raise JsonProcessingError(f"Non-finite number {value!r} cannot be written as a JSON number")
            text = repr(value)
        elif isinstance(value, Decimal):
            if not value.is_finite():
                raise JsonProcessingError(f"Non-finite number {value} cannot be written as a JSON number")
            text = str(value)
        else:
            raise JsonProcessingError(f"Not a number: {type(value).__name__}")
        self._before_value()
        self._append(text.encode("ascii"))

    def write_string(self, value: str):
        self.write_utf8_string(_encode_text(value))

    def write_utf8_string(self, data, offset: int = 0, length: int = None):
        """Write already UTF-8 encoded text as a JSON string without decoding it."""
        if offset or length is not None:
            end = len(data) if length is None else offset + length
            data = data[offset:end]
        self._before_value()
        self._append(b'"' + escape_utf8(bytes(data)) + b'"')

    def write_binary(self, data):
        self._before_value()
        self._append(b'"' + base64.b64encode(bytes(data)) + b'"')

    # ── lifecycle ────────────────────────────────────────────────────

    def flush(self):
        if self._closed:
            return
        self._flush_buffer()
        flush = getattr(self._sink, "flush", None)
        if flush is not None:
            flush()

    def close(self):
        """Write out buffered bytes and stop accepting tokens. The sink stays open."""
        if self._closed:
            return
        self._flush_buffer()
        self._closed = True

    def release(self):
        """Discard buffered bytes without writing them."""
        self._buf.clear()
        self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.close()
        else:
            self.release()
        return False


def _encode_text(value: str) -> bytes:
    try:
        return value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise JsonProcessingError(f"Invalid text for JSON string: {e}") from e
