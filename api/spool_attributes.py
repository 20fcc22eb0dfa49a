#!/usr/bin/env python3
"""
Spool Data Attributes
=====================
Metadata record returned alongside every encoded segment.

The encoders in this repo populate SEGMENT_SIZE only; the remaining
attribute names exist so records produced elsewhere in the spooling
protocol can travel through the same type.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

from spool_primitives import to_int_exact

T = TypeVar("T")


class DataAttribute(Enum):
    ROWS_COUNT = ("rowsCount", int)
    ROW_OFFSET = ("rowOffset", int)
    SEGMENT_SIZE = ("segmentSize", int)
    UNCOMPRESSED_SIZE = ("uncompressedSize", int)
    EXPIRES_AT = ("expiresAt", datetime)
    ENCRYPTION_KEY = ("encryptionKey", str)

    def __init__(self, attribute_name: str, value_type: type):
        self.attribute_name = attribute_name
        self.value_type = value_type

    def check(self, value: Any) -> Any:
        if self.value_type is int:
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"{self.name} expects int, got {type(value).__name__}")
            if self in (DataAttribute.SEGMENT_SIZE, DataAttribute.UNCOMPRESSED_SIZE):
                return to_int_exact(value)
            return value
        if not isinstance(value, self.value_type):
            raise TypeError(f"{self.name} expects {self.value_type.__name__}, got {type(value).__name__}")
        return value


class DataAttributes:
    """Immutable attribute record. Build with DataAttributes.builder()."""

    __slots__ = ("_values",)

    def __init__(self, values: Optional[Mapping[DataAttribute, Any]] = None):
        self._values = MappingProxyType(dict(values or {}))

    @staticmethod
    def builder() -> "DataAttributesBuilder":
        return DataAttributesBuilder()

    @staticmethod
    def empty() -> "DataAttributes":
        return DataAttributes()

    def to_builder(self) -> "DataAttributesBuilder":
        builder = DataAttributesBuilder()
        builder._values.update(self._values)
        return builder

    def get(self, attribute: DataAttribute, value_type: Type[T]) -> T:
        if attribute not in self._values:
            raise KeyError(f"Attribute {attribute.name} is not present")
        value = self._values[attribute]
        if not isinstance(value, value_type):
            raise TypeError(f"Attribute {attribute.name} is {type(value).__name__}, not {value_type.__name__}")
        return value

    def get_optional(self, attribute: DataAttribute, value_type: Type[T]) -> Optional[T]:
        if attribute not in self._values:
            return None
        return self.get(attribute, value_type)

    def to_dict(self) -> Dict[str, Any]:
        out = {}
        for attribute, value in self._values.items():
            out[attribute.attribute_name] = value.isoformat() if isinstance(value, datetime) else value
        return out

    def __contains__(self, attribute) -> bool:
        return attribute in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other) -> bool:
        if not isinstance(other, DataAttributes):
            return NotImplemented
        return dict(self._values) == dict(other._values)

    def __hash__(self):
        return hash(frozenset(self._values.items()))

    def __repr__(self) -> str:
        inner = ", ".join(f"{k.name}={v!r}" for k, v in self._values.items())
        return f"DataAttributes({inner})"


class DataAttributesBuilder:
    def __init__(self):
        self._values: Dict[DataAttribute, Any] = {}

    def set(self, attribute: DataAttribute, value: Any) -> "DataAttributesBuilder":
        self._values[attribute] = attribute.check(value)
        return self

    def build(self) -> DataAttributes:
        return DataAttributes(self._values)
