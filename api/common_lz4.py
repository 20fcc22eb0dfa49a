#!/usr/bin/env python3
"""
Shared LZ4 frame compressor factory for Spool segment encoders.

Mirrors common_zstd: one place that decides level, block size and
checksum defaults for every "+lz4" encoding.
"""

from __future__ import annotations

import lz4.frame

BLOCK_SIZES = {
    "default": lz4.frame.BLOCKSIZE_DEFAULT,
    "64KB": lz4.frame.BLOCKSIZE_MAX64KB,
    "256KB": lz4.frame.BLOCKSIZE_MAX256KB,
    "1MB": lz4.frame.BLOCKSIZE_MAX1MB,
    "4MB": lz4.frame.BLOCKSIZE_MAX4MB,
}


def make_lz4_compressor(
    *,
    level: int = 0,
    block_size: str = "default",
    content_checksum: bool = False,
    block_linked: bool = True,
) -> lz4.frame.LZ4FrameCompressor:
    """
    Build an incremental LZ4 frame compressor.

    Levels 0-2 use the fast compressor, 3-16 the high compression one.
    Call begin() for the frame header, compress() per chunk, flush() to end the frame.
    """
    if block_size not in BLOCK_SIZES:
        raise ValueError(f"unknown lz4 block size {block_size!r}; expected one of {sorted(BLOCK_SIZES)}")
    return lz4.frame.LZ4FrameCompressor(
        block_size=BLOCK_SIZES[block_size],
        block_linked=block_linked,
        compression_level=int(level),
        content_checksum=content_checksum,
        auto_flush=False,
    )
