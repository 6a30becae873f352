"""
Custom column types.

- BitfieldType: arbitrary-precision non-negative int stored as a
  decimal string, so no dialect ever rounds a large bitfield to a
  float or overflows a BIGINT.
"""

from typing import Any

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

__all__ = ["BitfieldType"]


class BitfieldType(TypeDecorator):
    """int in Python, decimal string in the database."""

    impl = String(160)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect):
        if value is None:
            return None
        value = int(value)
        if value < 0:
            raise ValueError("bitfield cannot be negative")
        return str(value)

    def process_result_value(self, value: Any, dialect):
        if value is None:
            return None
        return int(value)

    @property
    def python_type(self) -> type[int]:
        return int
