#!/usr/bin/env python3
"""
Query Data Encoder Contracts
============================
An encoder turns a list of pages into bytes on an output sink and returns
DataAttributes. A factory builds one fresh encoder per request.

Decorators (compression) do not subclass the encoder they wrap. They own
one delegate and add a SinkTransform to the chain the delegate writes
through:

    physical sink <- CountingSink <- transform[0] <- transform[1] <- writer

The outermost decorator contributes transform[0], so bytes leaving the
row writer pass through the innermost decorator first, and the counter
always sees the final bytes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import BinaryIO, List, Sequence

from spool_attributes import DataAttributes
from spool_page import OutputColumn, Page
from spooling.contracts import Session


class TransformingSink(ABC):
    """A writable stream that transforms bytes before forwarding them."""

    @abstractmethod
    def write(self, data) -> int:
        ...

    @abstractmethod
    def flush(self) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        """Finish the transformation (e.g. end the frame). Never closes the wrapped sink."""

    @abstractmethod
    def release(self) -> None:
        """Drop internal state without writing anything more."""


class SinkTransform(ABC):
    @property
    @abstractmethod
    def suffix(self) -> str:
        """Appended to the wrapped encoder's encoding id, e.g. '+zstd'."""

    @abstractmethod
    def wrap(self, sink) -> TransformingSink:
        ...


class QueryDataEncoder(ABC):
    @property
    @abstractmethod
    def encoding(self) -> str:
        ...

    def encode(self, output: BinaryIO, pages: Sequence[Page]) -> DataAttributes:
        return self.encode_through(output, pages, ())

    @abstractmethod
    def encode_through(
        self,
        output: BinaryIO,
        pages: Sequence[Page],
        transforms: Sequence[SinkTransform],
    ) -> DataAttributes:
        """Encode pages into output, writing through the given transforms (outermost first)."""


class QueryDataEncoderFactory(ABC):
    @property
    @abstractmethod
    def encoding(self) -> str:
        ...

    @abstractmethod
    def create(self, session: Session, columns: List[OutputColumn]) -> QueryDataEncoder:
        ...
