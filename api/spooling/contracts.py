import os
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

Lz4BlockSize = Literal["default", "64KB", "256KB", "1MB", "4MB"]

_PROFILES = {
    "speed": {"zstd_level": 1, "lz4_level": 0},
    "ratio": {"zstd_level": 19, "lz4_level": 12},
}

_ENV_FIELDS = {
    "SPOOL_ZSTD_LEVEL": "zstd_level",
    "SPOOL_ZSTD_THREADS": "zstd_threads",
    "SPOOL_ZSTD_CHECKSUM": "zstd_checksum",
    "SPOOL_LZ4_LEVEL": "lz4_level",
    "SPOOL_LZ4_BLOCK_SIZE": "lz4_block_size",
    "SPOOL_LZ4_CONTENT_CHECKSUM": "lz4_content_checksum",
    "SPOOL_BUFFER_SIZE": "buffer_size",
}


class EncodingError(OSError):
    """Serialization failed inside the structural writer."""


class Session(BaseModel):
    """Per-request context handed to encoder factories."""
    model_config = ConfigDict(frozen=True)

    query_id: str
    user: Optional[str] = None
    time_zone_key: str = "UTC"


class EncoderSettings(BaseModel):
    """Tuning knobs shared by the JSON encoder and its compression decorators."""
    model_config = ConfigDict(frozen=True)

    zstd_level: int = Field(default=3, ge=1, le=22)
    zstd_threads: int = Field(default=0, ge=-1, le=256)
    zstd_checksum: bool = True
    lz4_level: int = Field(default=0, ge=0, le=16)
    lz4_block_size: Lz4BlockSize = "default"
    lz4_content_checksum: bool = False
    buffer_size: int = Field(default=8192, ge=512, le=1 << 20)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EncoderSettings":
        """
        SPOOL_PROFILE=speed|ratio picks level presets; explicit SPOOL_* variables win.
        Invalid values raise pydantic.ValidationError.
        """
        env = os.environ if environ is None else environ
        values = {}

        profile = env.get("SPOOL_PROFILE", "").strip().lower()
        if profile in _PROFILES:
            values.update(_PROFILES[profile])

        for var, field_name in _ENV_FIELDS.items():
            raw = env.get(var, "").strip()
            if raw:
                values[field_name] = raw
        return cls(**values)
