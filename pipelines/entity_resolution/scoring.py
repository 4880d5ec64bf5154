"""
Canonical Election Order.

Responsibilities:
- Define the total order used to elect the canonical member of a stack:
  earliest date, then highest TF-IDF total, then lowest id.

Non-Responsibilities:
- No TF-IDF computation (scores are passed in).
- No clustering.

Invariant:
The key is a total order; no two distinct ads compare equal.
"""

from datetime import date
from typing import Tuple

from tgjobads.models import Ad

ElectionKey = Tuple[date, float, str]


def election_key(ad: Ad, score: float) -> ElectionKey:
    """Smaller key wins."""
    return (ad.date, -score, ad.id)


def dominates(challenger: ElectionKey, incumbent: ElectionKey) -> bool:
    return challenger < incumbent
