"""
MinHash signatures over shingle sets.

Built on datasketch: each of the `hash_function_count` permutations is
h_i(x) = (a_i * sha1_32(x) + b_i) mod (2^61 - 1), truncated to 32 bits,
with (a_i, b_i) drawn from a numpy RNG seeded by `min_hash_seed`. The
signature is therefore a pure function of (shingles, params) and is
byte-identical across processes.
"""

import hashlib
from typing import Iterable, Sequence, Tuple

import numpy as np
from datasketch import MinHash

from ..models import VectorizationModelParams

Signature = Tuple[int, ...]

# Signature dtype on disk: little-endian uint32 (datasketch keeps values below 2^32)
WIRE_DTYPE = np.dtype("<u4")


class MinHashSigner:
    """Computes fixed-length MinHash signatures for one model version."""

    def __init__(self, params: VectorizationModelParams):
        self.params = params
        template = MinHash(num_perm=params.hash_function_count, seed=params.min_hash_seed)
        self._permutations = template.permutations

    @property
    def hash_function_count(self) -> int:
        return self.params.hash_function_count

    def sign(self, shingles: Iterable[str]) -> Signature:
        """Return the signature; an empty set gives the all-max "empty" signature."""
        mh = MinHash(
            num_perm=self.params.hash_function_count,
            seed=self.params.min_hash_seed,
            permutations=self._permutations,
        )
        encoded = [s.encode("utf-8") for s in sorted(shingles)]
        if encoded:
            mh.update_batch(encoded)
        return tuple(int(v) for v in mh.hashvalues)


def estimated_jaccard(a: Sequence[int], b: Sequence[int]) -> float:
    """Fraction of agreeing components; 0.0 for empty or mismatched signatures."""
    if len(a) == 0 or len(b) == 0 or len(a) != len(b):
        return 0.0
    left = np.asarray(a, dtype=np.uint64)
    right = np.asarray(b, dtype=np.uint64)
    return float(np.count_nonzero(left == right)) / len(left)


def signature_to_bytes(signature: Sequence[int]) -> bytes:
    return np.asarray(signature, dtype=WIRE_DTYPE).tobytes()


def signature_from_bytes(data: bytes) -> Signature:
    usable = len(data) - len(data) % WIRE_DTYPE.itemsize
    return tuple(int(v) for v in np.frombuffer(data[:usable], dtype=WIRE_DTYPE))


def signature_digest(signature: Sequence[int]) -> str:
    """SHA-256 hex of the serialized signature, stored for auditing."""
    return hashlib.sha256(signature_to_bytes(signature)).hexdigest()
