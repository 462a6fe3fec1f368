"""Typed query filters interpreted by the store implementations."""
from dataclasses import dataclass
from enum import Enum
from typing import Any


class Comparator(str, Enum):
    EQ = "eq"
    GT = "gt"
    LT = "lt"
    IN = "in"


@dataclass(frozen=True)
class Filter:
    """A single ``field <comparator> value`` constraint."""

    field: str
    comparator: Comparator
    value: Any


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


def eq(field: str, value: Any) -> Filter:
    return Filter(field, Comparator.EQ, value)


def gt(field: str, value: Any) -> Filter:
    return Filter(field, Comparator.GT, value)


def lt(field: str, value: Any) -> Filter:
    return Filter(field, Comparator.LT, value)


def in_(field: str, values) -> Filter:
    return Filter(field, Comparator.IN, tuple(values))
