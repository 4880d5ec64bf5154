"""
Stale Artifact Backfill Pipeline.

Responsibilities:
- Recompute vector artifacts of ads that lack one for the active version.
- Dissolve the stacks those ads belong to and re-cluster their members.
- Restore only the settled components whose band keys collide with the
  re-clustered ads; the rest of the corpus is never loaded.
- Ensure deterministic, ordered replay by (date, id).

Non-Responsibilities:
- No persistence (the runner writes the touched ads and stacks).
- No enrichment.

Invariant:
A rebuild must be idempotent and reproducible. Ads outside the affected
stacks keep their stack and canonical status. Ads without a current
artifact are always clustered as new, never restored as settled.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Set

from tgjobads.logger import get_logger
from tgjobads.models import Ad, Stack

from pipelines.entity_resolution.features import vectorize_ads
from pipelines.entity_resolution.resolver import ClusteringResult, DuplicateClusterer
from pipelines.versioning.version_decider import ModelVersionManager

logger = get_logger()


class ClusterSource(Protocol):
    def get_many(self, ad_ids: Iterable[str]) -> List[Ad]:
        ...

    def members_of(self, stack_ids: Iterable[str]) -> List[Ad]:
        ...


class BucketSource(Protocol):
    def ad_ids_sharing_keys(self, keys: Iterable[str], version: int) -> Set[str]:
        ...


@dataclass
class RebuildResult:
    clusterer: DuplicateClusterer
    clustering: ClusteringResult
    affected_ad_ids: List[str] = field(default_factory=list)
    dissolved_stack_ids: List[str] = field(default_factory=list)
    restored_ad_ids: List[str] = field(default_factory=list)

    @property
    def touched_ads(self) -> List[Ad]:
        seen: Dict[str, Ad] = {}
        for ad_id in self.affected_ad_ids:
            seen[ad_id] = self.clusterer.get_ad(ad_id)
        for ad in self.clustering.touched_ads:
            seen[ad.id] = ad
        return [seen[k] for k in sorted(seen)]

    @property
    def touched_stacks(self) -> List[Stack]:
        return list(self.clustering.touched_stacks)


def _merge(first: Iterable[Ad], then: Iterable[Ad]) -> List[Ad]:
    """Union by id, keeping the first object seen, in replay order."""
    merged: Dict[str, Ad] = {}
    for ad in list(first) + list(then):
        merged.setdefault(ad.id, ad)
    return sorted(merged.values(), key=lambda a: (a.date, a.id))


def rebuild_stale(
    candidates: Iterable[Ad],
    manager: ModelVersionManager,
    ads: ClusterSource,
    buckets: BucketSource,
    scorer: Optional[Callable[[Ad], float]] = None,
    workers: int = 4,
) -> RebuildResult:
    """
    Re-cluster the ads among `candidates` that lack a current artifact.

    Args:
        candidates: Ads that may be stale, usually every ad without a
            vector row for the active version
        manager: Active model version
        ads: Loads stack members and ads by id
        buckets: Finds settled ads sharing a band key
        scorer: TF-IDF total used to break election ties
        workers: Vectorization threads

    Raises:
        ClusteringInvariantError: If a restored neighborhood is inconsistent
    """
    candidates = list(candidates)
    stale_ids = set(manager.stale_ad_ids(candidates))
    stale = [ad for ad in candidates if ad.id in stale_ids]

    affected_stacks = {ad.stack_id for ad in stale if ad.stack_id}
    affected = _merge(stale, ads.members_of(affected_stacks))
    affected_ids = {ad.id for ad in affected}
    for ad in affected:
        ad.stack_id = None
        ad.is_unique = True

    artifacts = vectorize_ads(affected, manager, workers=workers)

    keys = {key for artifact in artifacts.values() for key in artifact.band_keys}
    neighbor_ids = buckets.ad_ids_sharing_keys(keys, manager.version) - affected_ids if keys else set()
    neighbors = ads.get_many(neighbor_ids)
    restored = [
        ad for ad in _merge(neighbors, ads.members_of({ad.stack_id for ad in neighbors if ad.stack_id}))
        if ad.id not in affected_ids
    ]
    artifacts.update(vectorize_ads(restored, manager, workers=workers))

    clusterer = DuplicateClusterer(scorer=scorer)
    clusterer.restore(restored, artifacts)
    clustering = clusterer.add_batch(affected, artifacts)
    clusterer.verify()

    dissolved = sorted((affected_stacks | set(clustering.dissolved_stack_ids)) - set(clusterer.stacks))
    logger.info(
        "Stale ads re-clustered",
        version=manager.version,
        stale=len(stale),
        affected=len(affected),
        restored=len(restored),
        dissolved_stacks=len(dissolved),
    )
    return RebuildResult(
        clusterer=clusterer,
        clustering=clustering,
        affected_ad_ids=sorted(affected_ids),
        dissolved_stack_ids=dissolved,
        restored_ad_ids=sorted(ad.id for ad in restored),
    )
