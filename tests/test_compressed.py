"""tests/test_compressed.py — zstd and lz4 decorators over the JSON encoder."""
import io

import lz4.frame
import pytest
import zstandard as zstd

from common_lz4 import make_lz4_compressor
from common_zstd import make_cctx
from spool_attributes import DataAttribute
from spool_page import Block, OutputColumn, Page
from spool_types import BIGINT, VARCHAR, OpaqueType
from spooling.compressed import (
    Lz4FrameSink,
    Lz4QueryDataEncoder,
    Lz4QueryDataEncoderFactory,
    ZstdFrameSink,
    ZstdQueryDataEncoder,
    ZstdQueryDataEncoderFactory,
)
from spooling.contracts import EncoderSettings, EncodingError
from spooling.json_encoder import JsonQueryDataEncoder, JsonQueryDataEncoderFactory


def _zstd_decode(data: bytes) -> bytes:
    # frames carry no content size, so use the streaming decoder
    return zstd.ZstdDecompressor().decompressobj().decompress(data)


COLUMNS = [OutputColumn(0, "id", BIGINT), OutputColumn(1, "name", VARCHAR)]


def _pages(n=200):
    ids = list(range(n))
    names = [f"name-{i % 7}".encode() for i in ids]
    return [Page.of(Block(ids), Block(names))]


def _plain(session, pages) -> bytes:
    out = io.BytesIO()
    JsonQueryDataEncoder(session, COLUMNS).encode(out, pages)
    return out.getvalue()


DECORATORS = [
    (ZstdQueryDataEncoder, "json+zstd", _zstd_decode),
    (Lz4QueryDataEncoder, "json+lz4", lz4.frame.decompress),
]


class TestDecorators:
    @pytest.mark.parametrize("decorator, encoding, decode", DECORATORS, ids=["zstd", "lz4"])
    def test_payload_matches_undecorated_output(self, session, decorator, encoding, decode):
        pages = _pages()
        encoder = decorator(JsonQueryDataEncoder(session, COLUMNS))
        out = io.BytesIO()
        attrs = encoder.encode(out, pages)

        assert encoder.encoding == encoding
        assert decode(out.getvalue()) == _plain(session, pages)
        assert attrs.get(DataAttribute.SEGMENT_SIZE, int) == len(out.getvalue())

    @pytest.mark.parametrize("decorator, encoding, decode", DECORATORS, ids=["zstd", "lz4"])
    def test_size_is_compressed_size(self, session, decorator, encoding, decode):
        pages = _pages(2000)
        out = io.BytesIO()
        attrs = decorator(JsonQueryDataEncoder(session, COLUMNS)).encode(out, pages)
        assert attrs.get(DataAttribute.SEGMENT_SIZE, int) < len(_plain(session, pages))

    @pytest.mark.parametrize("decorator, encoding, decode", DECORATORS, ids=["zstd", "lz4"])
    def test_zero_pages_is_valid_frame(self, session, decorator, encoding, decode):
        out = io.BytesIO()
        attrs = decorator(JsonQueryDataEncoder(session, COLUMNS)).encode(out, [])
        assert decode(out.getvalue()) == b"[]"
        assert attrs.get(DataAttribute.SEGMENT_SIZE, int) == len(out.getvalue())

    @pytest.mark.parametrize("decorator, encoding, decode", DECORATORS, ids=["zstd", "lz4"])
    def test_output_left_open(self, session, decorator, encoding, decode):
        out = io.BytesIO()
        decorator(JsonQueryDataEncoder(session, COLUMNS)).encode(out, _pages(3))
        assert not out.closed

    def test_zstd_frame_has_checksum(self, session):
        out = io.BytesIO()
        ZstdQueryDataEncoder(JsonQueryDataEncoder(session, COLUMNS)).encode(out, _pages(3))
        params = zstd.get_frame_parameters(out.getvalue())
        assert params.has_checksum

    def test_nested_decorators(self, session):
        pages = _pages()
        encoder = Lz4QueryDataEncoder(ZstdQueryDataEncoder(JsonQueryDataEncoder(session, COLUMNS)))
        out = io.BytesIO()
        attrs = encoder.encode(out, pages)

        assert encoder.encoding == "json+zstd+lz4"
        assert _zstd_decode(lz4.frame.decompress(out.getvalue())) == _plain(session, pages)
        assert attrs.get(DataAttribute.SEGMENT_SIZE, int) == len(out.getvalue())

    def test_serialization_failure_surfaces_through_decorator(self, session):
        columns = [OutputColumn(0, "x", OpaqueType("ext"))]
        encoder = ZstdQueryDataEncoder(JsonQueryDataEncoder(session, columns))
        with pytest.raises(EncodingError):
            encoder.encode(io.BytesIO(), [Page.of(Block.of(object()))])

    def test_settings_reach_compressor(self, session):
        pages = _pages(2000)
        fast, slow = io.BytesIO(), io.BytesIO()
        ZstdQueryDataEncoder(JsonQueryDataEncoder(session, COLUMNS), EncoderSettings(zstd_level=1)).encode(fast, pages)
        ZstdQueryDataEncoder(JsonQueryDataEncoder(session, COLUMNS), EncoderSettings(zstd_level=19)).encode(slow, pages)
        assert _zstd_decode(fast.getvalue()) == _zstd_decode(slow.getvalue())

    def test_requires_delegate(self):
        with pytest.raises(ValueError):
            ZstdQueryDataEncoder(None)


class TestFactories:
    def test_identifiers(self):
        json_factory = JsonQueryDataEncoderFactory()
        assert ZstdQueryDataEncoderFactory(json_factory).encoding == "json+zstd"
        assert Lz4QueryDataEncoderFactory(json_factory).encoding == "json+lz4"

    def test_create_wraps_fresh_delegate(self, session):
        factory = ZstdQueryDataEncoderFactory(JsonQueryDataEncoderFactory())
        first = factory.create(session, COLUMNS)
        second = factory.create(session, COLUMNS)
        assert isinstance(first, ZstdQueryDataEncoder)
        assert isinstance(first.delegate, JsonQueryDataEncoder)
        assert first.delegate is not second.delegate


class TestFrameSinks:
    def test_zstd_sink_does_not_close_target(self):
        target = io.BytesIO()
        sink = ZstdFrameSink(target, make_cctx(level=3))
        sink.write(b'{"a":1}')
        sink.flush()
        sink.close()
        assert not target.closed
        assert _zstd_decode(target.getvalue()) == b'{"a":1}'

    def test_lz4_sink_round_trip(self):
        target = io.BytesIO()
        sink = Lz4FrameSink(target, make_lz4_compressor())
        for chunk in (b"abc", b"def" * 1000):
            sink.write(chunk)
        sink.close()
        assert lz4.frame.decompress(target.getvalue()) == b"abc" + b"def" * 1000

    def test_write_after_close_rejected(self):
        sink = Lz4FrameSink(io.BytesIO(), make_lz4_compressor())
        sink.close()
        with pytest.raises(ValueError):
            sink.write(b"x")

    def test_release_writes_nothing(self):
        target = io.BytesIO()
        sink = ZstdFrameSink(target, make_cctx())
        sink.release()
        sink.close()
        assert target.getvalue() == b""

    def test_unknown_lz4_block_size(self):
        with pytest.raises(ValueError):
            make_lz4_compressor(block_size="2MB")
