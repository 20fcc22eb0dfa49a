#!/usr/bin/env python3
"""
Spool Shared Primitives
=======================
Byte-level building blocks shared by every Spool encoder:
  - CountingSink               (pass-through writer that counts bytes)
  - to_int_exact               (bounded 32-bit size conversion)
  - INT32_MAX                  (upper bound for size attributes)
"""

from typing import BinaryIO


INT32_MAX = 2**31 - 1
INT32_MIN = -(2**31)


class SegmentSizeOverflowError(OverflowError):
    ...


def to_int_exact(value: int) -> int:
    """Return value unchanged if it fits a signed 32-bit integer, else raise."""
    value = int(value)
    if value > INT32_MAX or value < INT32_MIN:
        raise SegmentSizeOverflowError(f"integer overflow: {value} does not fit in 32 bits")
    return value


class CountingSink:
    """
    Wraps a binary sink and counts every byte forwarded to it.

    Nothing is buffered here: each write goes straight to the target.
    Closing the counter never closes the target, whose lifecycle belongs
    to the caller.
    """

    def __init__(self, target: BinaryIO):
        if target is None:
            raise ValueError("target is None")
        self._target = target
        self._count = 0
        self._closed = False

    @property
    def count(self) -> int:
        return self._count

    @property
    def closed(self) -> bool:
        return self._closed

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        if self._closed:
            raise ValueError("write to closed CountingSink")
        size = len(data) if not isinstance(data, memoryview) else data.nbytes
        if size == 0:
            return 0
        self._target.write(data)
        self._count += size
        return size

    def flush(self) -> None:
        if self._closed:
            return
        flush = getattr(self._target, "flush", None)
        if flush is not None:
            flush()

    def close(self) -> None:
        self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False
