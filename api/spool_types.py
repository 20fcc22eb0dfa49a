#!/usr/bin/env python3
"""
Spool Value Types
=================
Closed set of SQL value types carried by result pages, plus the decoded
object forms the JSON renderer understands.

Every type reads the *physical* value stored in a block and turns it into
its *object* value:

    varchar/char        UTF-8 bytes             -> str (char is space padded)
    boolean             bool                    -> bool
    tinyint..bigint     int                     -> int
    real                float                   -> Float32
    double              float                   -> float
    decimal(p, s)       unscaled int            -> SqlDecimal
    date                days since epoch        -> SqlDate
    time(p)             picos of day            -> SqlTime
    time(p) w/ tz       (picos, offset_minutes) -> SqlTimeWithTimeZone
    timestamp(p)        epoch micros | (micros, picos_of_micro) -> SqlTimestamp
    timestamp(p) w/ tz  (millis, zone) | (millis, picos_of_milli, zone)
                                                -> SqlTimestampWithTimeZone
    interval y-m        months                  -> SqlIntervalYearMonth
    interval d-s        millis                  -> SqlIntervalDayTime
    varbinary           bytes                   -> SqlVarbinary
    array(T)            sequence                -> list
    map(K, V)           mapping | [(k, v), ...] -> dict
    row(...)            sequence                -> list
    opaque              anything                -> decoder(raw)

Text types also expose get_slice() so the encoder can skip the object path.
"""

from __future__ import annotations

import re
import struct
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

PICOS_PER_SECOND = 10**12
PICOS_PER_MILLI = 10**9
PICOS_PER_MICRO = 10**6
MICROS_PER_SECOND = 10**6
MILLIS_PER_SECOND = 1000
SECONDS_PER_DAY = 86400
MILLIS_PER_DAY = SECONDS_PER_DAY * MILLIS_PER_SECOND

MAX_TIME_PRECISION = 12
MAX_DECIMAL_PRECISION = 38
MAX_CHAR_LENGTH = 65536

_EPOCH_UTC = datetime(1970, 1, 1, tzinfo=timezone.utc)
# zone rules are looked up within these instants (0002-01-01 .. 9998-12-31 UTC)
_ZONE_LOOKUP_MIN = (datetime(2, 1, 1, tzinfo=timezone.utc) - _EPOCH_UTC) // timedelta(seconds=1)
_ZONE_LOOKUP_MAX = (datetime(9998, 12, 31, tzinfo=timezone.utc) - _EPOCH_UTC) // timedelta(seconds=1)

_UTF8_CONTINUATION = re.compile(rb"[\x80-\xbf]")
_OFFSET_ZONE = re.compile(r"^([+-])(\d{2}):(\d{2})$")


# ==========================================
# 1. DECODED VALUE OBJECTS
# ==========================================

class Float32(float):
    """A float holding a value that is exactly representable in single precision."""

    __slots__ = ()

    def __new__(cls, value=0.0):
        return super().__new__(cls, narrow_to_real(float(value)))

    def __repr__(self) -> str:
        return real_to_string(self)

    __str__ = __repr__


def narrow_to_real(value: float) -> float:
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError:
        raise ValueError(f"value {value!r} is out of range for REAL") from None


def real_to_string(value: float) -> str:
    """Shortest decimal text that reads back to the same single precision value."""
    if value != value:
        return "NaN"
    if value in (float("inf"), float("-inf")):
        return "Infinity" if value > 0 else "-Infinity"
    target = float(value)
    for digits in range(1, 10):
        text = "%.*g" % (digits, target)
        try:
            narrowed = narrow_to_real(float(text))
        except ValueError:
            # rounded past the largest finite REAL
            continue
        if narrowed == target:
            return repr(float(text))
    return repr(target)


def _fraction(units: int, width: int, precision: int) -> str:
    if precision <= 0:
        return ""
    return "." + str(units).rjust(width, "0")[:precision]


def format_offset(offset_minutes: int) -> str:
    sign = "-" if offset_minutes < 0 else "+"
    hours, minutes = divmod(abs(offset_minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def resolve_zone(zone_id: str):
    if zone_id in ("UTC", "Z", "GMT", "UT"):
        return timezone.utc
    m = _OFFSET_ZONE.match(zone_id)
    if m:
        minutes = int(m.group(2)) * 60 + int(m.group(3))
        if m.group(1) == "-":
            minutes = -minutes
        return timezone(timedelta(minutes=minutes))
    return ZoneInfo(zone_id)


def _format_clock(picos_of_day: int, precision: int) -> str:
    seconds, picos = divmod(picos_of_day, PICOS_PER_SECOND)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}" + _fraction(picos, 12, precision)


def civil_from_days(days: int) -> Tuple[int, int, int]:
    """(year, month, day) of a proleptic Gregorian day number, 0 = 1970-01-01."""
    z = days + 719468
    era = z // 146097
    doe = z - era * 146097
    yoe = (doe - doe // 1460 + doe // 36524 - doe // 146096) // 365
    doy = doe - (365 * yoe + yoe // 4 - yoe // 100)
    mp = (5 * doy + 2) // 153
    day = doy - (153 * mp + 2) // 5 + 1
    month = mp + 3 if mp < 10 else mp - 9
    year = yoe + era * 400 + (1 if month <= 2 else 0)
    return year, month, day


def _format_year(year: int) -> str:
    # years past 9999 carry an explicit sign, negative years keep four digits
    if year > 9999:
        return f"+{year}"
    if year < 0:
        return f"-{-year:04d}"
    return f"{year:04d}"


def format_date(days: int) -> str:
    year, month, day = civil_from_days(days)
    return f"{_format_year(year)}-{month:02d}-{day:02d}"


def _format_local(local_seconds: int, picos_of_second: int, precision: int) -> str:
    days, second_of_day = divmod(local_seconds, SECONDS_PER_DAY)
    return format_date(days) + " " + _format_clock(second_of_day * PICOS_PER_SECOND + picos_of_second, precision)


def _zone_offset_seconds(zone, epoch_seconds: int) -> int:
    """UTC offset of zone at epoch_seconds; instants outside datetime's range use the nearest one inside it."""
    clamped = min(max(epoch_seconds, _ZONE_LOOKUP_MIN), _ZONE_LOOKUP_MAX)
    offset = (_EPOCH_UTC + timedelta(seconds=clamped)).astimezone(zone).utcoffset()
    return offset // timedelta(seconds=1)


@dataclass(frozen=True)
class SqlDate:
    days: int

    def __str__(self) -> str:
        return format_date(self.days)


@dataclass(frozen=True)
class SqlTime:
    picos: int
    precision: int = 3

    def __str__(self) -> str:
        return _format_clock(self.picos, self.precision)


@dataclass(frozen=True)
class SqlTimeWithTimeZone:
    picos: int
    offset_minutes: int
    precision: int = 3

    def __str__(self) -> str:
        return _format_clock(self.picos, self.precision) + format_offset(self.offset_minutes)


@dataclass(frozen=True)
class SqlTimestamp:
    epoch_micros: int
    picos_of_micro: int = 0
    precision: int = 3

    def __str__(self) -> str:
        seconds, micros = divmod(self.epoch_micros, MICROS_PER_SECOND)
        return _format_local(seconds, micros * PICOS_PER_MICRO + self.picos_of_micro, self.precision)


@dataclass(frozen=True)
class SqlTimestampWithTimeZone:
    epoch_millis: int
    zone_id: str
    picos_of_milli: int = 0
    precision: int = 3

    def __str__(self) -> str:
        seconds, millis = divmod(self.epoch_millis, MILLIS_PER_SECOND)
        local = seconds + _zone_offset_seconds(resolve_zone(self.zone_id), seconds)
        picos = millis * PICOS_PER_MILLI + self.picos_of_milli
        return _format_local(local, picos, self.precision) + " " + self.zone_id


@dataclass(frozen=True)
class SqlIntervalYearMonth:
    months: int

    def __str__(self) -> str:
        sign = "-" if self.months < 0 else ""
        years, months = divmod(abs(self.months), 12)
        return f"{sign}{years}-{months}"


@dataclass(frozen=True)
class SqlIntervalDayTime:
    millis: int

    def __str__(self) -> str:
        sign = "-" if self.millis < 0 else ""
        days, rest = divmod(abs(self.millis), MILLIS_PER_DAY)
        hours, rest = divmod(rest, 3600 * MILLIS_PER_SECOND)
        minutes, rest = divmod(rest, 60 * MILLIS_PER_SECOND)
        seconds, millis = divmod(rest, MILLIS_PER_SECOND)
        return f"{sign}{days} {hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}"


@dataclass(frozen=True)
class SqlDecimal:
    unscaled: int
    precision: int
    scale: int

    def to_decimal(self) -> Decimal:
        return Decimal(self.unscaled).scaleb(-self.scale)

    def __str__(self) -> str:
        if self.scale <= 0:
            return str(self.unscaled * 10 ** (-self.scale))
        sign = "-" if self.unscaled < 0 else ""
        digits = str(abs(self.unscaled)).rjust(self.scale + 1, "0")
        return f"{sign}{digits[:-self.scale]}.{digits[-self.scale:]}"


@dataclass(frozen=True)
class SqlVarbinary:
    data: bytes

    def __str__(self) -> str:
        return self.data.hex(" ")


# ==========================================
# 2. VALUE TYPES
# ==========================================

def _as_utf8(raw) -> bytes:
    if isinstance(raw, str):
        return raw.encode("utf-8")
    return bytes(raw)


def count_code_points(data: bytes) -> int:
    return len(data) - len(_UTF8_CONTINUATION.findall(data))


def pad_spaces(data: bytes, length: int) -> bytes:
    """Right-pad a UTF-8 byte string with spaces to `length` code points."""
    text_length = count_code_points(data)
    if text_length > length:
        raise ValueError(f"pad length {length} is less than text length {text_length}")
    if text_length == length:
        return data
    return data + b" " * (length - text_length)


def _check_precision(precision: int, limit: int = MAX_TIME_PRECISION) -> None:
    if not 0 <= precision <= limit:
        raise ValueError(f"precision must be in range [0, {limit}]: {precision}")


def _decode(value_type: "ValueType", raw):
    if raw is None:
        return None
    return value_type.to_object(raw)


class ValueType:
    """Base of the closed type set. Subclasses are frozen dataclasses."""

    @property
    def display_name(self) -> str:
        raise NotImplementedError

    def to_object(self, raw) -> Any:
        raise NotImplementedError

    def get_object_value(self, block, position: int) -> Any:
        if block.is_null(position):
            return None
        return self.to_object(block.get(position))

    def __str__(self) -> str:
        return self.display_name


@dataclass(frozen=True)
class VarcharType(ValueType):
    length: Optional[int] = None

    @property
    def display_name(self) -> str:
        return "varchar" if self.length is None else f"varchar({self.length})"

    def get_slice(self, block, position: int) -> bytes:
        return _as_utf8(block.get(position))

    def to_object(self, raw) -> str:
        if isinstance(raw, str):
            return raw
        return bytes(raw).decode("utf-8", errors="replace")


@dataclass(frozen=True)
class CharType(ValueType):
    length: int = 1

    def __post_init__(self):
        if not 1 <= self.length <= MAX_CHAR_LENGTH:
            raise ValueError(f"CHAR length must be in range [1, {MAX_CHAR_LENGTH}]: {self.length}")

    @property
    def display_name(self) -> str:
        return f"char({self.length})"

    def get_slice(self, block, position: int) -> bytes:
        return _as_utf8(block.get(position))

    def to_object(self, raw) -> str:
        return pad_spaces(_as_utf8(raw), self.length).decode("utf-8", errors="replace")


@dataclass(frozen=True)
class BooleanType(ValueType):
    display_name = "boolean"

    def to_object(self, raw) -> bool:
        return bool(raw)


@dataclass(frozen=True)
class TinyintType(ValueType):
    display_name = "tinyint"

    def to_object(self, raw) -> int:
        return int(raw)


@dataclass(frozen=True)
class SmallintType(ValueType):
    display_name = "smallint"

    def to_object(self, raw) -> int:
        return int(raw)


@dataclass(frozen=True)
class IntegerType(ValueType):
    display_name = "integer"

    def to_object(self, raw) -> int:
        return int(raw)


@dataclass(frozen=True)
class BigintType(ValueType):
    display_name = "bigint"

    def to_object(self, raw) -> int:
        return int(raw)


@dataclass(frozen=True)
class RealType(ValueType):
    display_name = "real"

    def to_object(self, raw) -> Float32:
        return Float32(raw)


@dataclass(frozen=True)
class DoubleType(ValueType):
    display_name = "double"

    def to_object(self, raw) -> float:
        return float(raw)


@dataclass(frozen=True)
class DecimalType(ValueType):
    precision: int = MAX_DECIMAL_PRECISION
    scale: int = 0

    def __post_init__(self):
        if not 1 <= self.precision <= MAX_DECIMAL_PRECISION:
            raise ValueError(f"DECIMAL precision must be in range [1, {MAX_DECIMAL_PRECISION}]: {self.precision}")
        if not 0 <= self.scale <= self.precision:
            raise ValueError(f"DECIMAL scale must be in range [0, precision ({self.precision})]: {self.scale}")

    @property
    def display_name(self) -> str:
        return f"decimal({self.precision},{self.scale})"

    def to_object(self, raw) -> SqlDecimal:
        return SqlDecimal(int(raw), self.precision, self.scale)


@dataclass(frozen=True)
class DateType(ValueType):
    display_name = "date"

    def to_object(self, raw) -> SqlDate:
        return SqlDate(int(raw))


@dataclass(frozen=True)
class TimeType(ValueType):
    precision: int = 3

    def __post_init__(self):
        _check_precision(self.precision)

    @property
    def display_name(self) -> str:
        return f"time({self.precision})"

    def to_object(self, raw) -> SqlTime:
        return SqlTime(int(raw), self.precision)


@dataclass(frozen=True)
class TimeWithTimeZoneType(ValueType):
    precision: int = 3

    def __post_init__(self):
        _check_precision(self.precision)

    @property
    def display_name(self) -> str:
        return f"time({self.precision}) with time zone"

    def to_object(self, raw) -> SqlTimeWithTimeZone:
        picos, offset_minutes = raw
        return SqlTimeWithTimeZone(int(picos), int(offset_minutes), self.precision)


@dataclass(frozen=True)
class TimestampType(ValueType):
    precision: int = 3

    def __post_init__(self):
        _check_precision(self.precision)

    @property
    def display_name(self) -> str:
        return f"timestamp({self.precision})"

    def to_object(self, raw) -> SqlTimestamp:
        if isinstance(raw, tuple):
            micros, picos = raw
            return SqlTimestamp(int(micros), int(picos), self.precision)
        return SqlTimestamp(int(raw), 0, self.precision)


@dataclass(frozen=True)
class TimestampWithTimeZoneType(ValueType):
    precision: int = 3

    def __post_init__(self):
        _check_precision(self.precision)

    @property
    def display_name(self) -> str:
        return f"timestamp({self.precision}) with time zone"

    def to_object(self, raw) -> SqlTimestampWithTimeZone:
        if len(raw) == 3:
            millis, picos, zone_id = raw
        else:
            millis, zone_id = raw
            picos = 0
        return SqlTimestampWithTimeZone(int(millis), zone_id, int(picos), self.precision)


@dataclass(frozen=True)
class IntervalYearMonthType(ValueType):
    display_name = "interval year to month"

    def to_object(self, raw) -> SqlIntervalYearMonth:
        return SqlIntervalYearMonth(int(raw))


@dataclass(frozen=True)
class IntervalDayTimeType(ValueType):
    display_name = "interval day to second"

    def to_object(self, raw) -> SqlIntervalDayTime:
        return SqlIntervalDayTime(int(raw))


@dataclass(frozen=True)
class VarbinaryType(ValueType):
    display_name = "varbinary"

    def to_object(self, raw) -> SqlVarbinary:
        return SqlVarbinary(bytes(raw))


@dataclass(frozen=True)
class ArrayType(ValueType):
    element_type: ValueType

    @property
    def display_name(self) -> str:
        return f"array({self.element_type.display_name})"

    def to_object(self, raw) -> list:
        element_type = self.element_type
        return [_decode(element_type, element) for element in raw]


def _hashable_key(key):
    if isinstance(key, list):
        return tuple(_hashable_key(k) for k in key)
    if isinstance(key, dict):
        return tuple((k, _hashable_key(v)) for k, v in key.items())
    return key


@dataclass(frozen=True)
class MapType(ValueType):
    key_type: ValueType
    value_type: ValueType

    @property
    def display_name(self) -> str:
        return f"map({self.key_type.display_name}, {self.value_type.display_name})"

    def to_object(self, raw) -> dict:
        entries = raw.items() if isinstance(raw, Mapping) else raw
        out = {}
        for key, value in entries:
            if key is None:
                raise ValueError("map key cannot be null")
            out[_hashable_key(self.key_type.to_object(key))] = _decode(self.value_type, value)
        return out


@dataclass(frozen=True)
class RowType(ValueType):
    fields: Tuple[Tuple[Optional[str], ValueType], ...]

    @property
    def display_name(self) -> str:
        parts = []
        for name, field_type in self.fields:
            parts.append(field_type.display_name if name is None else f"{name} {field_type.display_name}")
        return "row(" + ", ".join(parts) + ")"

    def to_object(self, raw) -> list:
        if len(raw) != len(self.fields):
            raise ValueError(f"row has {len(raw)} values but type declares {len(self.fields)} fields")
        return [_decode(field_type, value) for (_, field_type), value in zip(self.fields, raw)]


def _identity(raw):
    return raw


@dataclass(frozen=True)
class OpaqueType(ValueType):
    """Extension type: the decoder's result is written by the fallback writer."""

    name: str
    decoder: Callable[[Any], Any] = field(default=_identity, compare=False)

    @property
    def display_name(self) -> str:
        return self.name

    def to_object(self, raw) -> Any:
        return self.decoder(raw)


BOOLEAN = BooleanType()
TINYINT = TinyintType()
SMALLINT = SmallintType()
INTEGER = IntegerType()
BIGINT = BigintType()
REAL = RealType()
DOUBLE = DoubleType()
DATE = DateType()
VARCHAR = VarcharType()
VARBINARY = VarbinaryType()
INTERVAL_YEAR_MONTH = IntervalYearMonthType()
INTERVAL_DAY_TIME = IntervalDayTimeType()

_SIMPLE_TYPES = {
    "boolean": BOOLEAN,
    "tinyint": TINYINT,
    "smallint": SMALLINT,
    "integer": INTEGER,
    "int": INTEGER,
    "bigint": BIGINT,
    "real": REAL,
    "double": DOUBLE,
    "date": DATE,
    "varbinary": VARBINARY,
}

_MULTI_WORD_TYPES = {"time", "timestamp", "double", "interval"}


# ==========================================
# 3. TYPE SIGNATURE PARSER
# ==========================================

class TypeSignatureError(ValueError):
    ...


class _SignatureParser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def _skip_ws(self):
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def _peek(self) -> str:
        self._skip_ws()
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def _fail(self, message: str):
        raise TypeSignatureError(f"{message} at position {self.pos} in {self.text!r}")

    def _word(self) -> str:
        self._skip_ws()
        start = self.pos
        while self.pos < len(self.text) and (self.text[self.pos].isalnum() or self.text[self.pos] == "_"):
            self.pos += 1
        if start == self.pos:
            self._fail("expected identifier")
        return self.text[start:self.pos].lower()

    def _expect(self, char: str):
        if self._peek() != char:
            self._fail(f"expected {char!r}")
        self.pos += 1

    def _expect_words(self, *words: str):
        for word in words:
            got = self._word()
            if got != word:
                self._fail(f"expected {word!r}, got {got!r}")

    def _int_params(self) -> list:
        if self._peek() != "(":
            return []
        self.pos += 1
        params = [self._int()]
        while self._peek() == ",":
            self.pos += 1
            params.append(self._int())
        self._expect(")")
        return params

    def _int(self) -> int:
        word = self._word()
        if not word.isdigit():
            self._fail(f"expected integer parameter, got {word!r}")
        return int(word)

    def _time_zone_suffix(self) -> bool:
        save = self.pos
        if self._peek().isalpha():
            word = self._word()
            if word == "with":
                self._expect_words("time", "zone")
                return True
            if word == "without":
                self._expect_words("time", "zone")
                return False
        self.pos = save
        return False

    def _row_field(self) -> Tuple[Optional[str], ValueType]:
        save = self.pos
        name = self._word()
        # "timestamp with time zone" and friends are types, not named fields
        if name not in _MULTI_WORD_TYPES and self._peek().isalpha():
            return name, self.parse_type()
        self.pos = save
        return None, self.parse_type()

    def parse_type(self) -> ValueType:
        name = self._word()
        if name in _SIMPLE_TYPES:
            if name == "double" and self._peek().isalpha():
                save = self.pos
                if self._word() != "precision":
                    self.pos = save
            return _SIMPLE_TYPES[name]
        if name == "varchar":
            params = self._int_params()
            return VarcharType(params[0]) if params else VARCHAR
        if name == "char":
            params = self._int_params()
            return CharType(params[0] if params else 1)
        if name == "decimal":
            params = self._int_params()
            return DecimalType(*params) if params else DecimalType()
        if name in ("time", "timestamp"):
            params = self._int_params()
            precision = params[0] if params else 3
            with_zone = self._time_zone_suffix()
            if name == "time":
                return TimeWithTimeZoneType(precision) if with_zone else TimeType(precision)
            return TimestampWithTimeZoneType(precision) if with_zone else TimestampType(precision)
        if name == "interval":
            start = self._word()
            self._expect_words("to")
            end = self._word()
            if (start, end) == ("year", "month"):
                return INTERVAL_YEAR_MONTH
            if (start, end) == ("day", "second"):
                return INTERVAL_DAY_TIME
            self._fail(f"unsupported interval {start} to {end}")
        if name == "array":
            self._expect("(")
            element = self.parse_type()
            self._expect(")")
            return ArrayType(element)
        if name == "map":
            self._expect("(")
            key = self.parse_type()
            self._expect(",")
            value = self.parse_type()
            self._expect(")")
            return MapType(key, value)
        if name == "row":
            self._expect("(")
            fields = [self._row_field()]
            while self._peek() == ",":
                self.pos += 1
                fields.append(self._row_field())
            self._expect(")")
            return RowType(tuple(fields))
        self._fail(f"unknown type {name!r}")

    def expect_end(self):
        if self._peek():
            self._fail("unexpected trailing input")


def parse_type_signature(signature: str) -> ValueType:
    """Parse a SQL type signature such as 'map(varchar, array(decimal(10,2)))'."""
    parser = _SignatureParser(signature)
    value_type = parser.parse_type()
    parser.expect_end()
    return value_type
