"""
Shingling of normalized ad text.

Responsibilities:
- Turn normalized text into a set of overlapping fixed-size windows.

Non-Responsibilities:
- No text normalization (callers pass normalized text).
- No hashing.

Invariant:
Text shorter than the window yields exactly one shingle (the whole text);
empty text yields no shingles.
"""

from typing import FrozenSet

CHAR = "char"
TOKEN = "token"


def shingle(text: str, size: int, unit: str = CHAR) -> FrozenSet[str]:
    if size <= 0:
        raise ValueError("shingle size must be positive")

    if unit == CHAR:
        units = text
        join = "".join
    elif unit == TOKEN:
        units = text.split()
        join = " ".join
    else:
        raise ValueError(f"Unknown shingle unit: {unit}")

    if len(units) == 0:
        return frozenset()
    if len(units) < size:
        return frozenset([join(units)])

    return frozenset(join(units[i:i + size]) for i in range(len(units) - size + 1))
