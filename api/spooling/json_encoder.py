#!/usr/bin/env python3
"""
JsonQueryDataEncoder - [JSON SEGMENT ENCODER v1]
================================================
TARGET: Result pages -> one JSON array of row arrays, plus the exact byte size.
TECH:   Streaming JsonGenerator + raw UTF-8 fast path for text columns.

Wire format:

    [[c1, c2, ...], [c1, c2, ...], ...]

Pages are written in input order, rows in position order, columns in the
order of the OutputColumn list.
"""

import dataclasses
import math
import time
from contextlib import ExitStack
from datetime import date, datetime
from datetime import time as clock_time
from decimal import Decimal
from enum import Enum
from typing import BinaryIO, List, Mapping, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel

from spool_attributes import DataAttribute, DataAttributes
from spool_logging import get_logger
from spool_observability import Telemetry
from spool_page import OutputColumn, Page
from spool_primitives import CountingSink, to_int_exact
from spool_types import (
    CharType,
    Float32,
    SqlDate,
    SqlDecimal,
    SqlIntervalDayTime,
    SqlIntervalYearMonth,
    SqlTime,
    SqlTimestamp,
    SqlTimestampWithTimeZone,
    SqlTimeWithTimeZone,
    SqlVarbinary,
    ValueType,
    VarcharType,
    pad_spaces,
    real_to_string,
)
from spooling.contracts import EncoderSettings, EncodingError, Session
from spooling.json_generator import JsonGenerator, JsonProcessingError
from spooling.query_data_encoder import QueryDataEncoder, QueryDataEncoderFactory, SinkTransform

ENCODING = "json"

log = get_logger(__name__)

# Written as their canonical text form
_TEXTUAL_TYPES = (
    SqlDate,
    SqlDecimal,
    SqlIntervalDayTime,
    SqlIntervalYearMonth,
    SqlTime,
    SqlTimeWithTimeZone,
    SqlTimestamp,
    SqlTimestampWithTimeZone,
)


class JsonQueryDataEncoder(QueryDataEncoder):
    def __init__(self, session: Session, columns: Sequence[OutputColumn], settings: Optional[EncoderSettings] = None):
        if session is None:
            raise ValueError("session is None")
        if columns is None:
            raise ValueError("columns is None")
        self.session = session
        self.columns = list(columns)
        self.settings = settings or EncoderSettings()

    @property
    def encoding(self) -> str:
        return ENCODING

    def encode_through(
        self,
        output: BinaryIO,
        pages: Sequence[Page],
        transforms: Sequence[SinkTransform],
    ) -> DataAttributes:
        label = self.encoding + "".join(t.suffix for t in reversed(transforms))
        started = time.perf_counter()
        rows = 0
        pages_seen = 0
        try:
            with ExitStack() as stack:
                counting = CountingSink(output)
                stack.callback(counting.close)

                sink = counting
                chain = []
                for transform in transforms:
                    sink = transform.wrap(sink)
                    stack.callback(sink.release)
                    chain.append(sink)

                generator = JsonGenerator(sink, buffer_size=self.settings.buffer_size)
                stack.callback(generator.release)

                try:
                    generator.write_start_array()
                    for page in pages:
                        self._write_page(generator, page)
                        rows += page.position_count
                        pages_seen += 1
                    generator.write_end_array()
                    generator.close()
                except JsonProcessingError as e:
                    raise EncodingError("Could not serialize to JSON") from e

                for compressing in reversed(chain):
                    compressing.close()
                # final flush to have the data written to the output stream
                counting.flush()

                attributes = DataAttributes.builder() \
                    .set(DataAttribute.SEGMENT_SIZE, to_int_exact(counting.count)) \
                    .build()
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            Telemetry.track_encode(label, rows, 0, elapsed_ms, success=False)
            log.warning(
                "segment_encode_failed",
                query_id=self.session.query_id,
                encoding=label,
                rows_written=rows,
                error=f"{type(e).__name__}: {e}",
            )
            raise

        size = attributes.get(DataAttribute.SEGMENT_SIZE, int)
        elapsed_ms = (time.perf_counter() - started) * 1000
        Telemetry.track_encode(label, rows, size, elapsed_ms)
        log.debug(
            "segment_encoded",
            query_id=self.session.query_id,
            encoding=label,
            pages=pages_seen,
            rows=rows,
            columns=len(self.columns),
            segment_size=size,
            duration_ms=round(elapsed_ms, 3),
        )
        return attributes

    def _write_page(self, generator: JsonGenerator, page: Page):
        sources = [(page.get_block(column.source_page_channel), column.type) for column in self.columns]
        for position in range(page.position_count):
            generator.write_start_array()
            for block, value_type in sources:
                write_column(generator, block, position, value_type)
            generator.write_end_array()


def write_column(generator: JsonGenerator, block, position: int, value_type: ValueType):
    if block.is_null(position):
        generator.write_null()
        return
    # Text skips the object path: block bytes go straight to the generator
    if isinstance(value_type, VarcharType):
        generator.write_utf8_string(value_type.get_slice(block, position))
    elif isinstance(value_type, CharType):
        generator.write_utf8_string(pad_spaces(value_type.get_slice(block, position), value_type.length))
    else:
        write_value(generator, value_type.get_object_value(block, position))


def _non_finite_text(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    return "Infinity" if value > 0 else "-Infinity"


def write_value(generator: JsonGenerator, value):
    if value is None:
        generator.write_null()
    elif isinstance(value, bool):
        generator.write_boolean(value)
    elif isinstance(value, float):
        if math.isfinite(value):
            generator.write_number(value)
        else:
            generator.write_string(_non_finite_text(value))
    elif isinstance(value, int):
        generator.write_number(value)
    elif isinstance(value, Decimal):
        if value.is_finite():
            generator.write_number(value)
        else:
            generator.write_string("NaN" if value.is_nan() else _non_finite_text(float(value)))
    elif isinstance(value, _TEXTUAL_TYPES):
        generator.write_string(str(value))
    elif isinstance(value, SqlVarbinary):
        generator.write_binary(value.data)
    elif isinstance(value, str):
        generator.write_string(value)
    elif isinstance(value, (bytes, bytearray, memoryview)):
        generator.write_binary(value)
    elif isinstance(value, (list, tuple)):
        generator.write_start_array()
        for element in value:
            write_value(generator, element)
        generator.write_end_array()
    elif isinstance(value, Mapping):
        generator.write_start_object()
        for key, item in value.items():
            # Keys always become text, whatever their SQL type
            generator.write_field_name(field_name(key))
            write_value(generator, item)
        generator.write_end_object()
    else:
        write_opaque(generator, value)


def field_name(key) -> str:
    if isinstance(key, str):
        return key
    if key is None:
        return "null"
    if isinstance(key, bool):
        return "true" if key else "false"
    if isinstance(key, float):
        if not math.isfinite(key):
            return _non_finite_text(key)
        return real_to_string(key) if isinstance(key, Float32) else repr(key)
    if isinstance(key, tuple):
        return "[" + ", ".join(field_name(k) for k in key) + "]"
    return str(key)


def write_opaque(generator: JsonGenerator, value):
    """
    Fallback for values outside the SQL type set (OpaqueType decoders).

    Supported: objects with to_json_value(), dataclasses, pydantic models,
    enums, date/time objects, UUIDs and sets. Anything else fails the segment.
    """
    to_json_value = getattr(value, "to_json_value", None)
    if callable(to_json_value):
        write_value(generator, to_json_value())
    elif dataclasses.is_dataclass(value) and not isinstance(value, type):
        generator.write_start_object()
        for f in dataclasses.fields(value):
            generator.write_field_name(f.name)
            write_value(generator, getattr(value, f.name))
        generator.write_end_object()
    elif isinstance(value, BaseModel):
        write_value(generator, value.model_dump(mode="json"))
    elif isinstance(value, Enum):
        write_value(generator, value.value)
    elif isinstance(value, (datetime, date, clock_time)):
        generator.write_string(value.isoformat())
    elif isinstance(value, UUID):
        generator.write_string(str(value))
    elif isinstance(value, (set, frozenset)):
        generator.write_start_array()
        for element in value:
            write_value(generator, element)
        generator.write_end_array()
    else:
        cls = type(value)
        raise JsonProcessingError(f"No serializer found for class {cls.__module__}.{cls.__qualname__}")


class JsonQueryDataEncoderFactory(QueryDataEncoderFactory):
    def __init__(self, settings: Optional[EncoderSettings] = None):
        self.settings = settings or EncoderSettings()

    @property
    def encoding(self) -> str:
        return ENCODING

    def create(self, session: Session, columns: List[OutputColumn]) -> QueryDataEncoder:
        return JsonQueryDataEncoder(session, columns, self.settings)
