"""
Duplicate Clusterer.

Responsibilities:
- Union ads that share an LSH band key into connected components.
- Turn every multi-member component into a stack with exactly one
  canonical member.
- Keep existing canonicals stable across incremental batches.

Non-Responsibilities:
- No database access (callers persist the touched ads and stacks).
- No vectorization.

Invariant:
Stacks are the connected components of the band-key graph, whatever the
arrival order. Each stack has exactly one `is_unique` member; singletons
carry no stack id and are unique.
"""

import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set

from tgjobads.logger import get_logger
from tgjobads.models import Ad, Stack, VectorArtifact

from .candidate_selector import CandidateSelector
from .scoring import dominates, election_key
from .union_find import UnionFind

logger = get_logger()

STACK_NAMESPACE = uuid.UUID("6f1c3d52-8f0e-4a53-9d39-2b1f4e7a9c10")


class ClusteringInvariantError(RuntimeError):
    """Persisted or in-memory clustering state is inconsistent. Fatal."""

    def __init__(self, message: str, diagnostics: Optional[List[str]] = None):
        self.diagnostics = diagnostics or []
        details = "; ".join(self.diagnostics[:10])
        super().__init__(f"{message}: {details}" if details else message)


@dataclass
class ClusteringResult:
    added: int = 0
    created: int = 0
    merged: int = 0
    transferred: int = 0
    joined: int = 0
    touched_stacks: List[Stack] = field(default_factory=list)
    dissolved_stack_ids: List[str] = field(default_factory=list)
    touched_ads: List[Ad] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "added": self.added,
            "created": self.created,
            "merged": self.merged,
            "transferred": self.transferred,
            "joined": self.joined,
        }


def new_stack_id(canonical_id: str) -> str:
    return str(uuid.uuid5(STACK_NAMESPACE, canonical_id))


class DuplicateClusterer:

    def __init__(self, scorer: Optional[Callable[[Ad], float]] = None):
        """
        Args:
            scorer: TF-IDF total of an ad, used only to break date ties
                during elections. Missing scores count as 0.0.
        """
        self.scorer = scorer
        self._uf = UnionFind()
        self._index_of: Dict[str, int] = {}
        self._ids: List[str] = []
        self._ads: Dict[str, Ad] = {}
        self._scores: Dict[str, float] = {}
        self._selector = CandidateSelector()
        self.stacks: Dict[str, Stack] = {}

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, ad_id: str) -> bool:
        return ad_id in self._index_of

    def get_ad(self, ad_id: str) -> Ad:
        return self._ads[ad_id]

    def _score(self, ad: Ad) -> float:
        if ad.id not in self._scores:
            self._scores[ad.id] = self.scorer(ad) if self.scorer else 0.0
        return self._scores[ad.id]

    def _key(self, ad: Ad):
        return election_key(ad, self._score(ad))

    def _insert(self, ad: Ad, artifact: VectorArtifact) -> int:
        if artifact.ad_id != ad.id:
            raise ValueError(f"Artifact of {artifact.ad_id} passed for ad {ad.id}")
        index = self._uf.add()
        self._index_of[ad.id] = index
        self._ids.append(ad.id)
        self._ads[ad.id] = ad
        for other in sorted(self._selector.select(artifact)):
            self._uf.union(index, self._index_of[other])
        self._selector.register(artifact)
        return index

    @staticmethod
    def _ordered(ads: Iterable[Ad]) -> List[Ad]:
        return sorted(ads, key=lambda a: (a.date, a.id))

    def restore(self, ads: Iterable[Ad], artifacts: Mapping[str, VectorArtifact]) -> None:
        """
        Seed from persisted state without re-electing.

        Raises:
            ClusteringInvariantError: If persisted stacks disagree with the
                band-key components
        """
        restored = [ad for ad in self._ordered(ads) if ad.id not in self._index_of]
        for ad in restored:
            self._insert(ad, artifacts[ad.id])

        for ad in restored:
            if ad.stack_id is None:
                continue
            stack = self.stacks.get(ad.stack_id)
            if stack is None:
                stack = Stack(id=ad.stack_id, canonical_id="")
                self.stacks[ad.stack_id] = stack
            stack.member_ids.add(ad.id)
            if ad.is_unique:
                if stack.canonical_id:
                    raise ClusteringInvariantError(
                        "Stack has more than one canonical member",
                        [f"stack {stack.id}: {stack.canonical_id}, {ad.id}"],
                    )
                stack.canonical_id = ad.id

        problems = [f"stack {s.id} has no canonical member" for s in self.stacks.values() if not s.canonical_id]
        groups = self._uf.components()
        for members in groups.values():
            labels = {self._ads[self._ids[i]].stack_id or f"single:{self._ids[i]}" for i in members}
            if len(labels) > 1:
                problems.append(f"component of {len(members)} ads spans {sorted(labels)}")
        if problems:
            raise ClusteringInvariantError("Restored stacks overlap in one component", problems)

        logger.debug("Clusterer restored", ads=len(restored), stacks=len(self.stacks))

    def add_batch(
        self,
        ads: Iterable[Ad],
        artifacts: Mapping[str, VectorArtifact],
        scores: Optional[Mapping[str, float]] = None,
    ) -> ClusteringResult:
        """Index new ads and update the stacks they touch."""
        if scores:
            self._scores.update(scores)

        result = ClusteringResult()
        new_ads = [ad for ad in self._ordered(ads) if ad.id not in self._index_of]
        if not new_ads:
            return result

        new_ids: Set[str] = set()
        for ad in new_ads:
            self._insert(ad, artifacts[ad.id])
            new_ids.add(ad.id)
        result.added = len(new_ads)

        affected_roots = {self._uf.find(self._index_of[ad.id]) for ad in new_ads}
        groups = self._uf.components()

        for root in sorted(affected_roots):
            members = [self._ads[self._ids[i]] for i in groups[root]]
            self._elect(members, new_ids, result)

        logger.record_stack_event("created", result.created)
        logger.record_stack_event("merged", result.merged)
        logger.record_stack_event("transferred", result.transferred)
        logger.record_stack_event("joined", result.joined)
        logger.info("Batch clustered", **result.as_dict())
        return result

    def _elect(self, members: List[Ad], new_ids: Set[str], result: ClusteringResult) -> None:
        if len(members) == 1:
            ad = members[0]
            ad.stack_id = None
            ad.is_unique = True
            result.touched_ads.append(ad)
            return

        old = [m for m in members if m.id not in new_ids]
        new = [m for m in members if m.id in new_ids]

        # Only previous canonicals (stacked or singleton) and new ads compete
        previous_canonicals = [m for m in old if m.is_unique]
        incumbent = min(previous_canonicals, key=self._key) if previous_canonicals else None
        challenger = min(new, key=self._key)
        if incumbent is None or dominates(self._key(challenger), self._key(incumbent)):
            winner = challenger
        else:
            winner = incumbent

        old_stack_ids = sorted({m.stack_id for m in old if m.stack_id is not None})
        if winner.stack_id is not None and winner.id not in new_ids:
            stack_id = winner.stack_id
        elif old_stack_ids:
            # Winner is new or was a singleton; the best previous stack carries on
            stacked = [m for m in previous_canonicals if m.stack_id is not None]
            stack_id = min(stacked, key=self._key).stack_id if stacked else old_stack_ids[0]
        else:
            stack_id = new_stack_id(winner.id)
            result.created += 1

        for sid in old_stack_ids:
            if sid == stack_id:
                continue
            self.stacks.pop(sid, None)
            result.dissolved_stack_ids.append(sid)
            result.merged += 1

        previous = self.stacks.get(stack_id)
        if previous is not None and previous.canonical_id != winner.id:
            result.transferred += 1
        if previous is not None:
            result.joined += sum(1 for m in members if m.id not in previous.member_ids)

        for m in members:
            m.stack_id = stack_id
            m.is_unique = m.id == winner.id
        stack = Stack(id=stack_id, canonical_id=winner.id, member_ids={m.id for m in members})
        self.stacks[stack_id] = stack

        result.touched_stacks.append(stack)
        result.touched_ads.extend(members)

    def verify(self) -> None:
        """
        Check every clustering invariant.

        Raises:
            ClusteringInvariantError: With one diagnostic line per violation
        """
        problems: List[str] = []
        seen: Dict[str, str] = {}

        for stack in self.stacks.values():
            uniques = [i for i in stack.member_ids if self._ads[i].is_unique]
            if len(uniques) != 1:
                problems.append(f"stack {stack.id} has {len(uniques)} canonical members")
            if stack.canonical_id not in stack.member_ids:
                problems.append(f"stack {stack.id} canonical {stack.canonical_id} is not a member")
            elif not self._ads[stack.canonical_id].is_unique:
                problems.append(f"stack {stack.id} canonical {stack.canonical_id} is not unique")
            for ad_id in stack.member_ids:
                if self._ads[ad_id].stack_id != stack.id:
                    problems.append(f"ad {ad_id} in stack {stack.id} points to {self._ads[ad_id].stack_id}")
                if ad_id in seen:
                    problems.append(f"ad {ad_id} is in stacks {seen[ad_id]} and {stack.id}")
                seen[ad_id] = stack.id

        for members in self._uf.components().values():
            ids = [self._ids[i] for i in members]
            if len(ids) == 1:
                ad = self._ads[ids[0]]
                if ad.stack_id is not None or not ad.is_unique:
                    problems.append(f"singleton {ad.id} has stack {ad.stack_id}, unique={ad.is_unique}")
                continue
            stack_ids = {self._ads[i].stack_id for i in ids}
            if len(stack_ids) != 1 or None in stack_ids:
                problems.append(f"component {sorted(ids)[:5]} maps to stacks {sorted(map(str, stack_ids))}")
                continue
            stack = self.stacks.get(next(iter(stack_ids)))
            if stack is None or stack.member_ids != set(ids):
                problems.append(f"component {sorted(ids)[:5]} does not match its stack")

        if problems:
            logger.critical("Clustering invariants violated", count=len(problems))
            raise ClusteringInvariantError("Clustering invariants violated", problems)

    def stack_of(self, ad_id: str) -> Optional[Stack]:
        sid = self._ads[ad_id].stack_id
        return self.stacks.get(sid) if sid else None

    def canonical_ids(self) -> List[str]:
        return sorted(ad_id for ad_id, ad in self._ads.items() if ad.is_unique)
