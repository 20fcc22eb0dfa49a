#!/usr/bin/env python3
"""
Spool Pages
===========
Immutable columnar batches handed to the encoders.

A Page holds one Block per source channel; all blocks share a position
count. OutputColumn maps a result column onto a channel and a ValueType.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence, Tuple

from spool_types import ValueType


@dataclass(frozen=True)
class Block:
    values: Tuple[Any, ...]
    nulls: Optional[Tuple[bool, ...]] = None

    def __post_init__(self):
        object.__setattr__(self, "values", tuple(self.values))
        if self.nulls is not None:
            nulls = tuple(bool(n) for n in self.nulls)
            if len(nulls) != len(self.values):
                raise ValueError(f"null mask has {len(nulls)} entries for {len(self.values)} values")
            object.__setattr__(self, "nulls", nulls)

    @staticmethod
    def of(*values) -> "Block":
        return Block(values)

    @property
    def position_count(self) -> int:
        return len(self.values)

    def _check_position(self, position: int) -> None:
        if not 0 <= position < len(self.values):
            raise IndexError(f"position {position} out of range [0, {len(self.values)})")

    def is_null(self, position: int) -> bool:
        self._check_position(position)
        if self.nulls is not None and self.nulls[position]:
            return True
        return self.values[position] is None

    def get(self, position: int) -> Any:
        self._check_position(position)
        return self.values[position]


@dataclass(frozen=True)
class Page:
    blocks: Tuple[Block, ...]
    position_count: int = -1

    def __post_init__(self):
        blocks = tuple(self.blocks)
        object.__setattr__(self, "blocks", blocks)
        if not blocks:
            if self.position_count < 0:
                raise ValueError("position_count is required for a page without blocks")
            return
        counts = {b.position_count for b in blocks}
        if len(counts) != 1:
            raise ValueError(f"blocks have mismatched position counts: {sorted(counts)}")
        count = counts.pop()
        if self.position_count >= 0 and self.position_count != count:
            raise ValueError(f"position_count {self.position_count} does not match blocks ({count})")
        object.__setattr__(self, "position_count", count)

    @staticmethod
    def of(*blocks: Block) -> "Page":
        return Page(blocks)

    @property
    def channel_count(self) -> int:
        return len(self.blocks)

    def get_block(self, channel: int) -> Block:
        if not 0 <= channel < len(self.blocks):
            raise IndexError(f"channel {channel} is not present in page with {len(self.blocks)} blocks")
        return self.blocks[channel]


@dataclass(frozen=True)
class OutputColumn:
    source_page_channel: int
    column_name: str
    type: ValueType

    def __post_init__(self):
        if self.source_page_channel < 0:
            raise ValueError(f"source_page_channel is negative: {self.source_page_channel}")


def pages_from_rows(rows: Sequence[Sequence[Any]], channel_count: int, page_size: int = 1024) -> Iterable[Page]:
    """Transpose row tuples into pages of at most page_size positions."""
    if page_size <= 0:
        raise ValueError(f"page_size must be positive: {page_size}")
    for start in range(0, len(rows), page_size):
        chunk = rows[start:start + page_size]
        columns = [[] for _ in range(channel_count)]
        for row in chunk:
            if len(row) != channel_count:
                raise ValueError(f"row has {len(row)} values, expected {channel_count}")
            for channel, value in enumerate(row):
                columns[channel].append(value)
        yield Page(tuple(Block(tuple(values)) for values in columns), len(chunk))
