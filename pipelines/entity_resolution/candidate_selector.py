"""
Candidate Selection Logic.

Responsibilities:
- Look up the band keys of incoming ads against the existing
  key -> ads index.
- Return one representative per matching bucket.

Non-Responsibilities:
- No scoring.
- No union decisions.

Invariant:
Every ad already in a bucket is in the same component as the bucket's
representative, so one representative per bucket never loses a match.
Ads with an empty shingle set are never indexed.
"""

from typing import Set

from tgjobads.models import VectorArtifact
from tgjobads.vectors.lsh import LshIndex


class CandidateSelector:

    def __init__(self, index: LshIndex = None):
        self.index = index if index is not None else LshIndex()

    def __len__(self) -> int:
        return len(self.index)

    def select(self, artifact: VectorArtifact) -> Set[str]:
        if artifact.is_empty:
            return set()
        return self.index.representatives(artifact.band_keys)

    def register(self, artifact: VectorArtifact) -> None:
        if artifact.is_empty:
            return
        self.index.add(artifact.ad_id, artifact.band_keys)
