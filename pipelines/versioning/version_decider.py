"""
Model Version Management.

Responsibilities:
- Hold the active vectorization parameters and classifier version.
- Decide whether a stored artifact or classification is stale.
- Recompute stale vector artifacts lazily, on first access.

Non-Responsibilities:
- No clustering (see pipelines.backfill.full_rebuild for re-clustering).
- No classification calls.

Invariant:
An artifact is current iff its version equals the active version.
Artifacts of different versions are never compared.
"""

import threading
from typing import Dict, Iterable, List, Optional, Protocol, Set

from tgjobads.logger import get_logger
from tgjobads.models import (
    Ad,
    ProcessingStatus,
    SalaryRecord,
    VectorArtifact,
    VectorizationModelParams,
)
from tgjobads.normalize import normalize_ad_text
from tgjobads.vectors.lsh import band_keys
from tgjobads.vectors.minhash import MinHashSigner
from tgjobads.vectors.shingles import shingle

logger = get_logger()

NORMALIZATION_VERSION = "nfc-lower-ws-1"
DUPLICATE_THRESHOLD = 0.92
SIMILAR_THRESHOLD = 0.80


class ArtifactStore(Protocol):
    def load_artifact(self, ad_id: str, version: int) -> Optional[VectorArtifact]:
        ...

    def load_artifacts(self, ad_ids: Iterable[str], version: int) -> Dict[str, VectorArtifact]:
        ...

    def save_artifact(self, artifact: VectorArtifact) -> None:
        ...


class ModelVersionManager:

    def __init__(
        self,
        params: VectorizationModelParams,
        classifier_version: int = 1,
        store: Optional[ArtifactStore] = None,
    ):
        self.params = params
        self.classifier_version = classifier_version
        self.store = store
        self._signer = MinHashSigner(params)
        self._cache: Dict[str, VectorArtifact] = {}
        self._recomputed: Set[str] = set()
        self._lock = threading.Lock()

    @property
    def version(self) -> int:
        return self.params.version

    @property
    def recomputed(self) -> Set[str]:
        """Ad ids whose artifacts were recomputed by this manager."""
        return set(self._recomputed)

    def is_stale(self, artifact: Optional[VectorArtifact]) -> bool:
        return artifact is None or artifact.version != self.params.version

    def compute_artifact(self, ad: Ad) -> VectorArtifact:
        """Pure function of (ad text, params); safe to call from worker threads."""
        shingles = shingle(normalize_ad_text(ad.text), self.params.shingle_size, self.params.shingle_unit)
        signature = self._signer.sign(shingles)
        keys = band_keys(signature, self.params) if shingles else ()
        return VectorArtifact(
            ad_id=ad.id,
            version=self.params.version,
            signature=signature,
            band_keys=keys,
            shingle_count=len(shingles),
        )

    def lookup(self, ad_id: str) -> Optional[VectorArtifact]:
        """Current artifact from cache or store, without recomputing."""
        with self._lock:
            cached = self._cache.get(ad_id)
        if cached is not None:
            return cached
        if self.store is None:
            return None

        stored = self.store.load_artifact(ad_id, self.params.version)
        if stored is None or self.is_stale(stored):
            return None
        with self._lock:
            self._cache[ad_id] = stored
        return stored

    def lookup_many(self, ad_ids: Iterable[str]) -> Dict[str, VectorArtifact]:
        """Bulk form of lookup: one store round trip for the cache misses."""
        found: Dict[str, VectorArtifact] = {}
        missing: List[str] = []
        with self._lock:
            for ad_id in ad_ids:
                cached = self._cache.get(ad_id)
                if cached is not None:
                    found[ad_id] = cached
                else:
                    missing.append(ad_id)
        if not missing or self.store is None:
            return found

        loaded = {
            ad_id: artifact
            for ad_id, artifact in self.store.load_artifacts(missing, self.params.version).items()
            if not self.is_stale(artifact)
        }
        with self._lock:
            self._cache.update(loaded)
        found.update(loaded)
        return found

    def accept(self, artifacts: Iterable[VectorArtifact]) -> None:
        """Cache and persist freshly computed artifacts."""
        for artifact in artifacts:
            if self.is_stale(artifact):
                raise ValueError(
                    f"Artifact of ad {artifact.ad_id} has version {artifact.version}, "
                    f"active version is {self.params.version}"
                )
            with self._lock:
                self._cache[artifact.ad_id] = artifact
                self._recomputed.add(artifact.ad_id)
            if self.store is not None:
                self.store.save_artifact(artifact)

    def get_artifact(self, ad: Ad) -> VectorArtifact:
        """Current artifact, recomputed and saved on first access if stale."""
        artifact = self.lookup(ad.id)
        if artifact is not None:
            return artifact

        artifact = self.compute_artifact(ad)
        self.accept([artifact])
        logger.debug("Artifact recomputed", ad_id=ad.id, version=self.params.version)
        return artifact

    def stale_ad_ids(self, ads: Iterable[Ad]) -> List[str]:
        ads = list(ads)
        current = self.lookup_many(ad.id for ad in ads)
        return [ad.id for ad in ads if ad.id not in current]

    def needs_classification(self, record: SalaryRecord) -> bool:
        if record.level_status in (
            ProcessingStatus.NOT_STARTED,
            ProcessingStatus.FAILED,
            ProcessingStatus.IN_PROGRESS,
        ):
            return True
        return record.classifier_version != self.classifier_version

    def describe(self) -> dict:
        """Model version row for the active parameters."""
        p = self.params
        return {
            "version": p.version,
            "normalization_version": NORMALIZATION_VERSION,
            "shingle_size": p.shingle_size,
            "shingle_unit": p.shingle_unit,
            "hash_function_count": p.hash_function_count,
            "min_hash_seed": p.min_hash_seed,
            "lsh_band_count": p.lsh_band_count,
            "lsh_rows_per_band": p.rows_per_band,
            "vocabulary_size": p.vocabulary_size,
            "duplicate_threshold": DUPLICATE_THRESHOLD,
            "similar_threshold": SIMILAR_THRESHOLD,
        }
