"""Duplicate detection over a sequence of values."""

from collections.abc import Hashable, Iterable
from typing import TypeVar

T = TypeVar("T", bound=Hashable)


def find_duplicates(values: Iterable[T]) -> list[T]:
    """Return each value that occurs more than once, reported once.

    Values come back in the order their first repeat was seen.
    """
    seen: set[T] = set()
    reported: set[T] = set()
    duplicates: list[T] = []
    for value in values:
        if value not in seen:
            seen.add(value)
        elif value not in reported:
            reported.add(value)
            duplicates.append(value)
    return duplicates
