"""
Vectors Repository.

Responsibilities:
- Store MinHash signatures and LSH band keys per (ad, version).
- Store model version rows and mark the active one.

Non-Responsibilities:
- No vectorization.
- No staleness decisions (see pipelines.versioning).

Invariant:
At most one artifact per (ad, version); at most one active model version.
"""

from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from tgjobads.database import AdVectorRow, LshBucketRow, VectorModelVersionRow
from tgjobads.models import VectorArtifact
from tgjobads.vectors.minhash import signature_digest, signature_from_bytes, signature_to_bytes

from .chunks import chunked


class VectorRepository:
    """SQLAlchemy-backed ArtifactStore."""

    def __init__(self, session: Session):
        self.session = session

    def load_artifact(self, ad_id: str, version: int) -> Optional[VectorArtifact]:
        row = (
            self.session.query(AdVectorRow)
            .filter(AdVectorRow.ad_id == ad_id, AdVectorRow.version == version)
            .one_or_none()
        )
        if row is None:
            return None

        keys = [
            k for (k,) in self.session.query(LshBucketRow.key)
            .filter(LshBucketRow.ad_id == ad_id, LshBucketRow.version == version)
            .order_by(LshBucketRow.band)
        ]
        return VectorArtifact(
            ad_id=ad_id,
            version=version,
            signature=signature_from_bytes(row.signature),
            band_keys=tuple(keys),
            shingle_count=row.shingle_count,
        )

    def load_artifacts(self, ad_ids: Iterable[str], version: int) -> Dict[str, VectorArtifact]:
        """Bulk form of load_artifact; ads without a row are left out."""
        result: Dict[str, VectorArtifact] = {}
        for chunk in chunked(sorted(set(ad_ids))):
            rows = {
                r.ad_id: r for r in self.session.query(AdVectorRow)
                .filter(AdVectorRow.ad_id.in_(chunk), AdVectorRow.version == version)
            }
            keys: Dict[str, List[str]] = {}
            for ad_id, key in (
                self.session.query(LshBucketRow.ad_id, LshBucketRow.key)
                .filter(LshBucketRow.ad_id.in_(chunk), LshBucketRow.version == version)
                .order_by(LshBucketRow.ad_id, LshBucketRow.band)
            ):
                keys.setdefault(ad_id, []).append(key)
            for ad_id, row in rows.items():
                result[ad_id] = VectorArtifact(
                    ad_id=ad_id,
                    version=version,
                    signature=signature_from_bytes(row.signature),
                    band_keys=tuple(keys.get(ad_id, ())),
                    shingle_count=row.shingle_count,
                )
        return result

    def ad_ids_sharing_keys(self, keys: Iterable[str], version: int) -> Set[str]:
        """Ads holding any of the band keys under `version`."""
        found: Set[str] = set()
        for chunk in chunked(sorted(set(keys))):
            found.update(
                a for (a,) in self.session.query(LshBucketRow.ad_id)
                .filter(LshBucketRow.version == version, LshBucketRow.key.in_(chunk))
                .distinct()
            )
        return found

    def save_artifact(self, artifact: VectorArtifact) -> None:
        existing = (
            self.session.query(AdVectorRow)
            .filter(AdVectorRow.ad_id == artifact.ad_id, AdVectorRow.version == artifact.version)
            .one_or_none()
        )
        if existing is not None:
            self.session.delete(existing)
            self.session.query(LshBucketRow).filter(
                LshBucketRow.ad_id == artifact.ad_id,
                LshBucketRow.version == artifact.version,
            ).delete(synchronize_session=False)
            self.session.flush()

        self.session.add(AdVectorRow(
            ad_id=artifact.ad_id,
            version=artifact.version,
            dim=len(artifact.signature),
            signature=signature_to_bytes(artifact.signature),
            signature_hash=signature_digest(artifact.signature),
            shingle_count=artifact.shingle_count,
        ))
        for band, key in enumerate(artifact.band_keys):
            self.session.add(LshBucketRow(version=artifact.version, band=band, key=key, ad_id=artifact.ad_id))

    def ad_ids_with_version(self, version: int) -> Set[str]:
        return {a for (a,) in self.session.query(AdVectorRow.ad_id).filter(AdVectorRow.version == version)}

    def ad_ids_with_outdated_vectors(self, version: int) -> Set[str]:
        """Ads vectorized under another version and not yet under `version`."""
        outdated = {a for (a,) in self.session.query(AdVectorRow.ad_id).filter(AdVectorRow.version != version)}
        return outdated - self.ad_ids_with_version(version)

    def delete_versions_except(self, version: int) -> int:
        self.session.query(LshBucketRow).filter(LshBucketRow.version != version).delete(synchronize_session=False)
        return self.session.query(AdVectorRow).filter(AdVectorRow.version != version).delete(synchronize_session=False)

    def ensure_model_version(self, description: dict) -> VectorModelVersionRow:
        """Insert the model version row if missing and make it the only active one."""
        row = self.session.get(VectorModelVersionRow, description["version"])
        if row is None:
            row = VectorModelVersionRow(**description)
            self.session.add(row)
        self.session.query(VectorModelVersionRow).filter(
            VectorModelVersionRow.version != description["version"]
        ).update({VectorModelVersionRow.is_active: False}, synchronize_session=False)
        row.is_active = True
        return row

    def active_version(self) -> Optional[int]:
        row = self.session.query(VectorModelVersionRow).filter(VectorModelVersionRow.is_active.is_(True)).one_or_none()
        return row.version if row else None

    def list_versions(self) -> List[int]:
        return [v for (v,) in self.session.query(VectorModelVersionRow.version).order_by(VectorModelVersionRow.version)]
