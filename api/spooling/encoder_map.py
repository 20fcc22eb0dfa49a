#!/usr/bin/env python3
"""
Spool Encoder Map
=================
Central registry mapping encoding ids to their factory class.
All lazy imports happen through get_encoder_factory().

Decorated encodings name the encoding they wrap, so "json+zstd" is built as
ZstdQueryDataEncoderFactory(<factory for "json">).
"""

import importlib
from typing import Dict, List, Optional, Sequence

from spool_page import OutputColumn
from spooling.contracts import EncoderSettings, Session

# ─── Encoding ID → (module_path, class_name, wrapped encoding) ──────

ENCODER_MAP = {
    "json":      ("spooling.json_encoder", "JsonQueryDataEncoderFactory", None),
    "json+zstd": ("spooling.compressed",   "ZstdQueryDataEncoderFactory", "json"),
    "json+lz4":  ("spooling.compressed",   "Lz4QueryDataEncoderFactory",  "json"),
}

_FACTORY_CACHE: Dict[tuple, object] = {}


class UnknownEncodingError(KeyError):
    ...


def available_encodings() -> List[str]:
    return list(ENCODER_MAP)


def get_encoder_factory(encoding: str, settings: Optional[EncoderSettings] = None):
    """
    Lazily imports and instantiates the factory for the given encoding id.
    Settings default to EncoderSettings.from_env(). Factories are cached per
    (encoding, settings) pair; they are stateless, so sharing is safe.
    """
    if encoding not in ENCODER_MAP:
        raise UnknownEncodingError(
            f"Unknown encoding {encoding!r}; available: {', '.join(available_encodings())}"
        )
    if settings is None:
        settings = EncoderSettings.from_env()

    cache_key = (encoding, settings)
    if cache_key in _FACTORY_CACHE:
        return _FACTORY_CACHE[cache_key]

    module_path, class_name, wrapped = ENCODER_MAP[encoding]
    cls = getattr(importlib.import_module(module_path), class_name)
    if wrapped is None:
        factory = cls(settings)
    else:
        factory = cls(get_encoder_factory(wrapped, settings), settings)

    _FACTORY_CACHE[cache_key] = factory
    return factory


def create_encoder(
    encoding: str,
    session: Session,
    columns: Sequence[OutputColumn],
    settings: Optional[EncoderSettings] = None,
):
    return get_encoder_factory(encoding, settings).create(session, list(columns))


def clear_cache():
    _FACTORY_CACHE.clear()
