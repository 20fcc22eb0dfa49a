#!/usr/bin/env python3
"""
Shared zstd compressor factory for Spool segment encoders.

Centralizes level/threading/checksum defaults so every "+zstd" encoding
produces frames with the same settings.
"""

from __future__ import annotations

import os
from typing import Optional

import zstandard as zstd


def make_cctx(
    *,
    level: int = 3,
    threads: Optional[int] = 0,
    write_checksum: bool = True,
    text_like: bool = True,
    enable_ldm: Optional[bool] = None,
    window_log: Optional[int] = None,
):
    """
    Build a zstd compressor for streaming segment output.

    - `threads=0` keeps compression on the calling thread; -1 means all cores.
    - Text-like streams at level 16+ turn on long distance matching unless
      SPOOL_DISABLE_LDM=1.
    - Content size is never written: segments are streamed.
    """
    eff_threads = 0 if threads is None else int(threads)
    disable_ldm = os.getenv("SPOOL_DISABLE_LDM", "").strip() == "1"

    want_ldm = False
    if enable_ldm is not None:
        want_ldm = bool(enable_ldm)
    elif text_like and int(level) >= 16:
        want_ldm = True
    if disable_ldm:
        want_ldm = False

    if want_ldm or window_log is not None:
        kwargs = {"enable_ldm": want_ldm, "threads": eff_threads, "write_checksum": write_checksum,
                  "write_content_size": False}
        if window_log is not None:
            kwargs["window_log"] = int(window_log)
        params = zstd.ZstdCompressionParameters.from_level(int(level), **kwargs)
        return zstd.ZstdCompressor(compression_params=params)

    return zstd.ZstdCompressor(
        level=int(level),
        threads=eff_threads,
        write_content_size=False,
        write_checksum=write_checksum,
    )
