from __future__ import annotations

from enum import Enum


def enum_values(enum_cls: type[Enum]) -> list[str]:
    """``values_callable`` for SQLAlchemy ``Enum`` columns: persist member values, not member names."""
    return [member.value for member in enum_cls]
