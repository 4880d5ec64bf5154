"""
Feature Extraction for Entity Resolution.

Responsibilities:
- Produce the current-version vector artifact of every ad
  (shingle, MinHash sign, LSH band).
- Fan the pure per-ad work out over a thread pool.

Non-Responsibilities:
- No clustering decisions.
- No persistence beyond handing artifacts to the version manager.

Invariant:
Per-ad work shares no mutable state; artifacts are accepted (cached and
saved) on the calling thread only.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Sequence

from tgjobads.logger import get_logger
from tgjobads.models import Ad, VectorArtifact

from pipelines.versioning.version_decider import ModelVersionManager

logger = get_logger()


def vectorize_ads(ads: Sequence[Ad], manager: ModelVersionManager, workers: int = 4) -> Dict[str, VectorArtifact]:
    """Return ad id -> current artifact, computing only the stale ones."""
    result: Dict[str, VectorArtifact] = manager.lookup_many(ad.id for ad in ads)
    pending: List[Ad] = [ad for ad in ads if ad.id not in result]

    if not pending:
        return result

    if workers > 1 and len(pending) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            computed = list(executor.map(manager.compute_artifact, pending))
        manager.accept(computed)
    else:
        computed = [manager.get_artifact(ad) for ad in pending]

    for artifact in computed:
        result[artifact.ad_id] = artifact

    empty = sum(1 for a in computed if a.is_empty)
    logger.record_vectorized(len(computed))
    logger.info("Ads vectorized", computed=len(computed), reused=len(ads) - len(computed), empty=empty)
    return result
