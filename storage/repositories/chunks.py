"""Split long IN (...) lists below SQLite's bound-parameter limit."""

from typing import Iterator, List, Sequence, TypeVar

T = TypeVar("T")

MAX_IN_PARAMS = 500


def chunked(items: Sequence[T], size: int = MAX_IN_PARAMS) -> Iterator[List[T]]:
    for start in range(0, len(items), size):
        yield list(items[start:start + size])
