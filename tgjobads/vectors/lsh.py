"""
Locality-sensitive hashing over MinHash signatures.

The signature is split into `lsh_band_count` contiguous bands of
`rows_per_band` values. Each band is hashed together with its band index,
so equal values in different bands never collide. Two ads are candidates
when they share at least one band key.
"""

import hashlib
from typing import Dict, Iterable, Sequence, Set, Tuple

import numpy as np

from ..models import VectorizationModelParams
from .minhash import WIRE_DTYPE


def band_keys(signature: Sequence[int], params: VectorizationModelParams) -> Tuple[str, ...]:
    if len(signature) != params.hash_function_count:
        raise ValueError(
            f"Signature length {len(signature)} does not match "
            f"hash_function_count {params.hash_function_count}"
        )

    rows = params.rows_per_band
    values = np.asarray(signature, dtype=WIRE_DTYPE)
    keys = []
    for band in range(params.lsh_band_count):
        digest = hashlib.blake2b(digest_size=8)
        digest.update(band.to_bytes(4, "little"))
        digest.update(values[band * rows:(band + 1) * rows].tobytes())
        keys.append(f"{band:02d}:{digest.hexdigest()}")
    return tuple(keys)


def collision_probability(jaccard: float, params: VectorizationModelParams) -> float:
    """Probability that two sets with the given similarity share a band key."""
    return 1.0 - (1.0 - jaccard ** params.rows_per_band) ** params.lsh_band_count


class LshIndex:
    """In-memory band key -> first indexed ad id."""

    def __init__(self):
        self._first: Dict[str, str] = {}
        self._stored: Set[str] = set()

    def __len__(self) -> int:
        return len(self._stored)

    def __contains__(self, ad_id: str) -> bool:
        return ad_id in self._stored

    def add(self, ad_id: str, keys: Iterable[str]) -> None:
        if ad_id in self._stored:
            raise ValueError(f"Ad {ad_id} is already indexed")
        self._stored.add(ad_id)
        for key in keys:
            self._first.setdefault(key, ad_id)

    def representatives(self, keys: Iterable[str]) -> Set[str]:
        """First indexed id of every matching bucket."""
        return {self._first[key] for key in keys if key in self._first}
