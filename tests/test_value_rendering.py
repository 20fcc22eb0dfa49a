"""tests/test_value_rendering.py — JSON forms of every value type."""
import enum
import io
import json
import struct
import uuid
from dataclasses import dataclass
from datetime import date

import pytest
from pydantic import BaseModel

from spool_page import Block, OutputColumn, Page
from spool_types import (
    BIGINT,
    BOOLEAN,
    DATE,
    DOUBLE,
    INTEGER,
    INTERVAL_DAY_TIME,
    INTERVAL_YEAR_MONTH,
    REAL,
    SMALLINT,
    TINYINT,
    VARBINARY,
    VARCHAR,
    ArrayType,
    CharType,
    DecimalType,
    MapType,
    OpaqueType,
    RowType,
    TimestampType,
    TimestampWithTimeZoneType,
    TimeType,
    TimeWithTimeZoneType,
)
from spooling.json_encoder import JsonQueryDataEncoder, field_name

NEW_YEAR_2020_MICROS = 1577836800 * 10**6
YEAR_1_DAYS = -719162
YEAR_10000_DAYS = 2932897


def _column(session, value_type, *values) -> bytes:
    """Encode one column of values and return the raw segment bytes."""
    out = io.BytesIO()
    page = Page.of(Block(values))
    JsonQueryDataEncoder(session, [OutputColumn(0, "c", value_type)]).encode(out, [page])
    return out.getvalue()


def _values(session, value_type, *values) -> list:
    return [row[0] for row in json.loads(_column(session, value_type, *values))]


def _as_float32(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


ALL_TYPES = [
    BOOLEAN, TINYINT, SMALLINT, INTEGER, BIGINT, REAL, DOUBLE, DecimalType(10, 2), DATE,
    TimeType(3), TimeWithTimeZoneType(3), TimestampType(3), TimestampWithTimeZoneType(3),
    INTERVAL_YEAR_MONTH, INTERVAL_DAY_TIME, VARCHAR, CharType(4), VARBINARY,
    ArrayType(BIGINT), MapType(VARCHAR, BIGINT), RowType((("x", BIGINT),)), OpaqueType("json"),
]


class TestNulls:
    @pytest.mark.parametrize("value_type", ALL_TYPES, ids=lambda t: t.display_name)
    def test_null_in_every_type(self, session, value_type):
        assert _column(session, value_type, None) == b"[[null]]"

    def test_nulls_inside_containers(self, session):
        assert _values(session, ArrayType(BIGINT), [1, None]) == [[1, None]]
        assert _values(session, MapType(VARCHAR, BIGINT), [(b"k", None)]) == [{"k": None}]
        assert _values(session, RowType(((None, VARCHAR), (None, BIGINT))), [None, 4]) == [[None, 4]]


class TestScalars:
    def test_booleans(self, session):
        assert _column(session, BOOLEAN, True, False) == b"[[true],[false]]"

    def test_integer_widths(self, session):
        for value_type in (TINYINT, SMALLINT, INTEGER, BIGINT):
            assert _values(session, value_type, -1, 0, 127) == [-1, 0, 127]
        assert _values(session, BIGINT, 2**63 - 1) == [2**63 - 1]

    def test_double_round_trips(self, session):
        values = [0.1, 1e300, -2.5e-308, 123456789.123, 5e-324, -0.0]
        decoded = _values(session, DOUBLE, *values)
        assert decoded == values
        assert str(decoded[-1]) == "-0.0"

    def test_real_round_trips_in_single_precision(self, session):
        raw = [0.1, 3.4028234663852886e38, 1e-45, 16777217.0, -1.5]
        decoded = _values(session, REAL, *raw)
        assert [_as_float32(v) for v in decoded] == [_as_float32(v) for v in raw]

    def test_real_is_shortest_form(self, session):
        assert _column(session, REAL, 0.1) == b"[[0.1]]"

    @pytest.mark.parametrize("value_type", [REAL, DOUBLE], ids=["real", "double"])
    def test_non_finite_become_strings(self, session, value_type):
        out = _column(session, value_type, float("inf"), float("-inf"), float("nan"))
        assert out == b'[["Infinity"],["-Infinity"],["NaN"]]'

    def test_decimal_keeps_scale(self, session):
        out = _column(session, DecimalType(10, 2), 1230, -5, 0)
        assert out == b'[["12.30"],["-0.05"],["0.00"]]'
        assert _values(session, DecimalType(5, 0), 42) == ["42"]

    def test_varbinary_is_base64(self, session):
        assert _column(session, VARBINARY, b"\x00\x01\xff", b"") == b'[["AAH/"],[""]]'


class TestText:
    def test_varchar_escapes_and_keeps_utf8(self, session):
        out = _column(session, VARCHAR, 'say "hi"\n'.encode(), "żółw".encode())
        assert out == b'[["say \\"hi\\"\\n"],["' + "żółw".encode() + b'"]]'

    def test_varchar_accepts_str_values(self, session):
        assert _values(session, VARCHAR, "plain") == ["plain"]

    def test_char_is_space_padded_in_code_points(self, session):
        out = _values(session, CharType(5), b"ab", b"abcde", "é".encode())
        assert out == ["ab   ", "abcde", "é    "]

    def test_char_too_long_fails(self, session):
        with pytest.raises(ValueError):
            _column(session, CharType(2), b"abc")


class TestTemporal:
    def test_date(self, session):
        assert _values(session, DATE, 0, 18262, -1) == ["1970-01-01", "2020-01-01", "1969-12-31"]

    def test_time_precision(self, session):
        picos = 3723 * 10**12 + 4 * 10**9
        assert _values(session, TimeType(3), picos) == ["01:02:03.004"]
        assert _values(session, TimeType(0), picos) == ["01:02:03"]
        assert _values(session, TimeType(6), picos) == ["01:02:03.004000"]

    def test_time_with_time_zone(self, session):
        picos = 3723 * 10**12 + 4 * 10**9
        assert _values(session, TimeWithTimeZoneType(3), (picos, -300)) == ["01:02:03.004-05:00"]
        assert _values(session, TimeWithTimeZoneType(0), (0, 330)) == ["00:00:00+05:30"]

    def test_timestamp(self, session):
        micros = NEW_YEAR_2020_MICROS + 123456
        assert _values(session, TimestampType(3), micros) == ["2020-01-01 00:00:00.123"]
        assert _values(session, TimestampType(6), micros) == ["2020-01-01 00:00:00.123456"]
        assert _values(session, TimestampType(0), micros) == ["2020-01-01 00:00:00"]

    def test_timestamp_before_epoch(self, session):
        assert _values(session, TimestampType(3), -1000) == ["1969-12-31 23:59:59.999"]

    def test_timestamp_with_picos(self, session):
        raw = (NEW_YEAR_2020_MICROS + 1, 500_000)
        assert _values(session, TimestampType(9), raw) == ["2020-01-01 00:00:00.000001500"]

    def test_timestamp_with_time_zone(self, session):
        millis = NEW_YEAR_2020_MICROS // 1000 + 123
        value_type = TimestampWithTimeZoneType(3)
        assert _values(session, value_type, (millis, "UTC")) == ["2020-01-01 00:00:00.123 UTC"]
        assert _values(session, value_type, (millis, "+05:30")) == ["2020-01-01 05:30:00.123 +05:30"]
        assert _values(session, value_type, (millis, "America/New_York")) == [
            "2019-12-31 19:00:00.123 America/New_York"
        ]

    def test_date_beyond_four_digit_years(self, session):
        assert _values(session, DATE, YEAR_10000_DAYS - 1, YEAR_10000_DAYS) == ["9999-12-31", "+10000-01-01"]
        assert _values(session, DATE, YEAR_1_DAYS, YEAR_1_DAYS - 1, YEAR_1_DAYS - 367) == [
            "0001-01-01", "0000-12-31", "-0001-12-31"
        ]

    def test_timestamp_outside_datetime_range(self, session):
        before_year_1 = ((YEAR_1_DAYS - 367) * 86400 + 3723) * 10**6 + 4000
        after_9999 = YEAR_10000_DAYS * 86400 * 10**6
        assert _values(session, TimestampType(3), before_year_1, after_9999) == [
            "-0001-12-31 01:02:03.004", "+10000-01-01 00:00:00.000"
        ]

    def test_timestamp_hundreds_of_millennia_out(self, session):
        span = 300_000 * 366 * 86400 * 10**6
        later, earlier = _values(session, TimestampType(3), span, -span)
        assert later.startswith("+") and later.endswith(":00.000")
        assert earlier.startswith("-") and earlier.endswith(":00.000")

    def test_timestamp_with_time_zone_outside_datetime_range(self, session):
        millis = YEAR_10000_DAYS * 86_400_000
        value_type = TimestampWithTimeZoneType(3)
        assert _values(session, value_type, (millis, "UTC")) == ["+10000-01-01 00:00:00.000 UTC"]
        assert _values(session, value_type, (millis, "+05:30")) == ["+10000-01-01 05:30:00.000 +05:30"]
        assert _values(session, value_type, (millis, "America/New_York")) == [
            "9999-12-31 19:00:00.000 America/New_York"
        ]

    def test_intervals(self, session):
        assert _values(session, INTERVAL_YEAR_MONTH, 14, -14, 0) == ["1-2", "-1-2", "0-0"]
        millis = 86_400_000 + 7_200_000 + 180_000 + 4_005
        assert _values(session, INTERVAL_DAY_TIME, millis, -millis) == ["1 02:03:04.005", "-1 02:03:04.005"]


class TestContainers:
    def test_nested_array_map_array(self, session):
        value_type = ArrayType(MapType(VARCHAR, ArrayType(BIGINT)))
        raw = [[(b"k1", [1, 2]), (b"k2", [])], {"z": [3, None]}]
        (decoded,) = _values(session, value_type, raw)
        assert decoded == [{"k1": [1, 2], "k2": []}, {"z": [3, None]}]
        assert list(decoded[0]) == ["k1", "k2"]

    def test_integer_keys_are_text_in_insertion_order(self, session):
        out = _column(session, MapType(BIGINT, VARCHAR), [(3, b"c"), (1, b"a"), (2, b"b")])
        assert out == b'[[{"3":"c","1":"a","2":"b"}]]'

    def test_non_text_keys(self, session):
        assert _values(session, MapType(BOOLEAN, BIGINT), [(True, 1), (False, 0)]) == [{"true": 1, "false": 0}]
        assert _values(session, MapType(DATE, BIGINT), [(0, 1)]) == [{"1970-01-01": 1}]
        assert _values(session, MapType(DecimalType(4, 1), BIGINT), [(15, 1)]) == [{"1.5": 1}]
        assert _values(session, MapType(ArrayType(BIGINT), BIGINT), [([1, 2], 3)]) == [{"[1, 2]": 3}]

    def test_null_map_key_rejected(self, session):
        with pytest.raises(ValueError, match="map key"):
            _column(session, MapType(VARCHAR, BIGINT), [(None, 1)])

    def test_row_is_positional_array(self, session):
        value_type = RowType((("name", VARCHAR), ("n", BIGINT), ("d", DATE)))
        assert _values(session, value_type, [b"x", 1, 0]) == [["x", 1, "1970-01-01"]]

    def test_array_of_varbinary_and_doubles(self, session):
        assert _values(session, ArrayType(VARBINARY), [b"\x01"]) == [["AQ=="]]
        assert _values(session, ArrayType(DOUBLE), [float("nan"), 1.5]) == [["NaN", 1.5]]


class TestFieldNames:
    @pytest.mark.parametrize(
        "key, expected",
        [
            ("k", "k"),
            (7, "7"),
            (True, "true"),
            (None, "null"),
            (1.5, "1.5"),
            (float("inf"), "Infinity"),
            ((1, "a"), "[1, a]"),
        ],
    )
    def test_key_text(self, key, expected):
        assert field_name(key) == expected


class Color(enum.Enum):
    RED = "red"


@dataclass
class Point:
    x: int
    y: int


class Tag(BaseModel):
    name: str
    weight: float


class WithHook:
    def to_json_value(self):
        return {"hooked": [1, 2]}


class TestOpaque:
    def test_decoder_result_written_as_json(self, session):
        value_type = OpaqueType("json", decoder=json.loads)
        assert _values(session, value_type, '{"a": [1, true]}') == [{"a": [1, True]}]

    @pytest.mark.parametrize(
        "value, expected",
        [
            (WithHook(), {"hooked": [1, 2]}),
            (Point(1, 2), {"x": 1, "y": 2}),
            (Tag(name="t", weight=0.5), {"name": "t", "weight": 0.5}),
            (Color.RED, "red"),
            (date(2020, 1, 1), "2020-01-01"),
            (uuid.UUID(int=1), "00000000-0000-0000-0000-000000000001"),
            (frozenset({4}), [4]),
        ],
        ids=["hook", "dataclass", "pydantic", "enum", "date", "uuid", "set"],
    )
    def test_supported_fallbacks(self, session, value, expected):
        assert _values(session, OpaqueType("ext"), value) == [expected]
