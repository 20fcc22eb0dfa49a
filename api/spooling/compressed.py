#!/usr/bin/env python3
"""
Compressed Query Data Encoders
==============================
Decorators that wrap any QueryDataEncoder and compress its byte stream.

A decorator never touches rows: it hands its delegate one more
SinkTransform, so the delegate's writer emits into a compressing sink that
sits on top of the delegate's byte counter. The reported SEGMENT_SIZE is
therefore the compressed size.

    ZstdQueryDataEncoder(JsonQueryDataEncoder(...))   -> "json+zstd"
    Lz4QueryDataEncoder(JsonQueryDataEncoder(...))    -> "json+lz4"
"""

from typing import BinaryIO, List, Optional, Sequence

import zstandard as zstd

from common_lz4 import make_lz4_compressor
from common_zstd import make_cctx
from spool_attributes import DataAttributes
from spool_page import OutputColumn, Page
from spooling.contracts import EncoderSettings, Session
from spooling.query_data_encoder import (
    QueryDataEncoder,
    QueryDataEncoderFactory,
    SinkTransform,
    TransformingSink,
)


# ==========================================
# 1. COMPRESSING SINKS
# ==========================================

class CompressingSink(TransformingSink):
    """
    Streams writes through an incremental compressor into `target`.

    The frame header goes out with the first write (or on close for an
    empty stream); close() ends the frame but leaves `target` open.
    """

    def __init__(self, target):
        self._target = target
        self._started = False
        self._closed = False

    def _begin(self) -> bytes:
        return b""

    def _compress(self, data: bytes) -> bytes:
        raise NotImplementedError

    def _flush_block(self) -> bytes:
        return b""

    def _finish(self) -> bytes:
        raise NotImplementedError

    def _emit(self, chunk: bytes):
        if chunk:
            self._target.write(chunk)

    def _ensure_started(self):
        if not self._started:
            self._started = True
            self._emit(self._begin())

    def write(self, data) -> int:
        if self._closed:
            raise ValueError(f"write to closed {type(self).__name__}")
        self._ensure_started()
        self._emit(self._compress(bytes(data)))
        return len(data)

    def flush(self) -> None:
        if self._closed:
            return
        if self._started:
            self._emit(self._flush_block())
        flush = getattr(self._target, "flush", None)
        if flush is not None:
            flush()

    def close(self) -> None:
        if self._closed:
            return
        self._ensure_started()
        self._emit(self._finish())
        self._closed = True

    def release(self) -> None:
        self._closed = True


class ZstdFrameSink(CompressingSink):
    def __init__(self, target, cctx: zstd.ZstdCompressor):
        super().__init__(target)
        self._cobj = cctx.compressobj()

    def _compress(self, data: bytes) -> bytes:
        return self._cobj.compress(data)

    def _flush_block(self) -> bytes:
        return self._cobj.flush(zstd.COMPRESSOBJ_FLUSH_BLOCK)

    def _finish(self) -> bytes:
        return self._cobj.flush(zstd.COMPRESSOBJ_FLUSH_FINISH)

    def release(self) -> None:
        super().release()
        self._cobj = None


class Lz4FrameSink(CompressingSink):
    def __init__(self, target, compressor):
        super().__init__(target)
        self._compressor = compressor

    def _begin(self) -> bytes:
        return self._compressor.begin()

    def _compress(self, data: bytes) -> bytes:
        return self._compressor.compress(data)

    def _finish(self) -> bytes:
        return self._compressor.flush()

    def release(self) -> None:
        super().release()
        self._compressor = None


# ==========================================
# 2. SINK TRANSFORMS
# ==========================================

class ZstdSinkTransform(SinkTransform):
    def __init__(self, settings: EncoderSettings):
        self.settings = settings

    @property
    def suffix(self) -> str:
        return "+zstd"

    def wrap(self, sink) -> TransformingSink:
        cctx = make_cctx(
            level=self.settings.zstd_level,
            threads=self.settings.zstd_threads,
            write_checksum=self.settings.zstd_checksum,
        )
        return ZstdFrameSink(sink, cctx)


class Lz4SinkTransform(SinkTransform):
    def __init__(self, settings: EncoderSettings):
        self.settings = settings

    @property
    def suffix(self) -> str:
        return "+lz4"

    def wrap(self, sink) -> TransformingSink:
        compressor = make_lz4_compressor(
            level=self.settings.lz4_level,
            block_size=self.settings.lz4_block_size,
            content_checksum=self.settings.lz4_content_checksum,
        )
        return Lz4FrameSink(sink, compressor)


# ==========================================
# 3. DECORATING ENCODERS
# ==========================================

class CompressedQueryDataEncoder(QueryDataEncoder):
    """Owns exactly one delegate encoder and compresses whatever it writes."""

    def __init__(self, delegate: QueryDataEncoder, transform: SinkTransform):
        if delegate is None:
            raise ValueError("delegate is None")
        self.delegate = delegate
        self.transform = transform

    @property
    def encoding(self) -> str:
        return self.delegate.encoding + self.transform.suffix

    def encode_through(
        self,
        output: BinaryIO,
        pages: Sequence[Page],
        transforms: Sequence[SinkTransform],
    ) -> DataAttributes:
        return self.delegate.encode_through(output, pages, tuple(transforms) + (self.transform,))


class ZstdQueryDataEncoder(CompressedQueryDataEncoder):
    def __init__(self, delegate: QueryDataEncoder, settings: Optional[EncoderSettings] = None):
        super().__init__(delegate, ZstdSinkTransform(settings or EncoderSettings()))


class Lz4QueryDataEncoder(CompressedQueryDataEncoder):
    def __init__(self, delegate: QueryDataEncoder, settings: Optional[EncoderSettings] = None):
        super().__init__(delegate, Lz4SinkTransform(settings or EncoderSettings()))


class ZstdQueryDataEncoderFactory(QueryDataEncoderFactory):
    def __init__(self, delegate: QueryDataEncoderFactory, settings: Optional[EncoderSettings] = None):
        self.delegate = delegate
        self.settings = settings or EncoderSettings()

    @property
    def encoding(self) -> str:
        return self.delegate.encoding + "+zstd"

    def create(self, session: Session, columns: List[OutputColumn]) -> QueryDataEncoder:
        return ZstdQueryDataEncoder(self.delegate.create(session, columns), self.settings)


class Lz4QueryDataEncoderFactory(QueryDataEncoderFactory):
    def __init__(self, delegate: QueryDataEncoderFactory, settings: Optional[EncoderSettings] = None):
        self.delegate = delegate
        self.settings = settings or EncoderSettings()

    @property
    def encoding(self) -> str:
        return self.delegate.encoding + "+lz4"

    def create(self, session: Session, columns: List[OutputColumn]) -> QueryDataEncoder:
        return Lz4QueryDataEncoder(self.delegate.create(session, columns), self.settings)
