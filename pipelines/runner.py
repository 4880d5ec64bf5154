"""
Batch Runner.

Runs the named, idempotent stages in order against one database:

    init-vectors     seed the model version row, re-vectorize and
                     re-cluster ads whose artifacts are outdated
    distinct-ads     cluster ads that have no artifact yet
    update-salaries  normalize salaries of canonical ads
    update-levels    classify position levels of canonical ads

A failing stage is logged and recorded; only a clustering invariant
violation aborts the run.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from sqlalchemy.orm import Session

from tgjobads.config import Settings
from tgjobads.levels.resolver import RuleBasedClassifier
from tgjobads.logger import get_logger
from tgjobads.models import Ad
from tgjobads.salaries.normalizer import SalaryNormalizer
from tgjobads.salaries.rates import RateProvider, RateTable
from tgjobads.vectors.tfidf import TfidfScorer

from pipelines.backfill.full_rebuild import RebuildResult, rebuild_stale
from pipelines.enrichment.level_classification import LevelClassificationOrchestrator, PositionClassifier
from pipelines.enrichment.salary_normalization import canonical_ads, normalize_salaries
from pipelines.entity_resolution.resolver import ClusteringInvariantError, ClusteringResult
from pipelines.versioning.version_decider import ModelVersionManager
from storage.repositories import AdRepository, SalaryRepository, VectorRepository

logger = get_logger()

STAGES = ("init-vectors", "distinct-ads", "update-salaries", "update-levels")


@dataclass
class BatchSummary:
    stages: Dict[str, Dict[str, int]] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def as_dict(self) -> dict:
        return {"stages": dict(self.stages), "failed": dict(self.failed)}


def load_rates(settings: Settings) -> RateTable:
    """Rate table for the reporting currency, seeded from the CSV cache."""
    table = RateTable(settings.reporting_currency, max_gap_days=settings.rate_max_gap_days)
    loaded = table.load_csv(settings.rate_cache_path)
    logger.debug("Rate cache loaded", path=str(settings.rate_cache_path), rows=loaded)
    return table


class BatchRunner:

    def __init__(
        self,
        settings: Settings,
        session: Session,
        classifier: Optional[PositionClassifier] = None,
        rates: Optional[RateProvider] = None,
    ):
        self.settings = settings
        self.session = session
        self.ads = AdRepository(session)
        self.vectors = VectorRepository(session)
        self.salaries = SalaryRepository(session)
        self.manager = ModelVersionManager(
            settings.vectorization,
            classifier_version=settings.classifier_version,
            store=self.vectors,
        )
        self.tfidf = TfidfScorer(settings.vectorization.vocabulary_size, drift=settings.tfidf_drift)
        self.normalizer = SalaryNormalizer(
            settings.reporting_currency,
            rates if rates is not None else load_rates(settings),
        )
        self.orchestrator = LevelClassificationOrchestrator(
            classifier or RuleBasedClassifier(),
            self.manager,
            max_concurrency=settings.llm_max_concurrency,
            timeout=settings.llm_timeout,
            max_attempts=settings.llm_max_attempts,
            base_delay=settings.llm_base_delay,
        )

    def cancel(self) -> None:
        self.orchestrator.cancel()

    def _score(self, ad: Ad) -> float:
        return self.tfidf.score(ad.text)

    def _refit_tfidf(self) -> None:
        corpus = self.ads.count()
        if self.tfidf.needs_refit(corpus):
            self.tfidf.fit(self.ads.texts(), workers=self.settings.workers)
            logger.debug("TF-IDF refit", corpus=corpus, vocabulary=len(self.tfidf.idf))

    def _persist(self, rebuild: RebuildResult) -> None:
        self.ads.save_stacks(rebuild.touched_stacks)
        self.ads.save_assignments(rebuild.touched_ads)
        self.ads.delete_stacks(rebuild.dissolved_stack_ids)

    def _recluster(self) -> Dict[str, int]:
        """Cluster every ad without a current-version artifact."""
        pending = self.ads.list_unvectorized(self.manager.version)
        if not pending:
            return dict(ClusteringResult().as_dict(), affected=0, dissolved=0, restored=0)
        self._refit_tfidf()
        rebuild = rebuild_stale(
            pending,
            self.manager,
            self.ads,
            self.vectors,
            scorer=self._score,
            workers=self.settings.workers,
        )
        self._persist(rebuild)
        counts = rebuild.clustering.as_dict()
        counts["affected"] = len(rebuild.affected_ad_ids)
        counts["dissolved"] = len(rebuild.dissolved_stack_ids)
        counts["restored"] = len(rebuild.restored_ad_ids)
        return counts

    def init_vectors(self) -> Dict[str, int]:
        self.vectors.ensure_model_version(self.manager.describe())
        outdated = self.vectors.ad_ids_with_outdated_vectors(self.manager.version)
        if not outdated:
            return {"outdated": 0}
        # Never-vectorized ads are clustered in the same pass as the outdated ones
        counts = self._recluster()
        counts["outdated"] = len(outdated)
        counts["purged"] = self.vectors.delete_versions_except(self.manager.version)
        return counts

    def distinct_ads(self) -> Dict[str, int]:
        return self._recluster()

    def update_salaries(self) -> Dict[str, int]:
        ads = canonical_ads(self.ads.list_all())
        records = self.salaries.load_all()
        counts = normalize_salaries(ads, records, self.normalizer, workers=self.settings.workers)
        self.salaries.save(records[a.id] for a in ads)
        return counts

    def update_levels(self) -> Dict[str, int]:
        ads = canonical_ads(self.ads.list_all())
        records = self.salaries.load_all()
        try:
            counts = self.orchestrator.run(ads, records)
        finally:
            self.salaries.save(records[a.id] for a in ads if a.id in records)
        return counts

    def run(self, stages: Iterable[str] = STAGES) -> BatchSummary:
        """
        Run the given stages in order.

        Raises:
            ClusteringInvariantError: Persisted clustering state is inconsistent
        """
        handlers = {
            "init-vectors": self.init_vectors,
            "distinct-ads": self.distinct_ads,
            "update-salaries": self.update_salaries,
            "update-levels": self.update_levels,
        }
        summary = BatchSummary()

        for stage in stages:
            if stage not in handlers:
                raise ValueError(f"Unknown stage: {stage}")
            logger.info("Stage started", stage=stage)
            try:
                summary.stages[stage] = handlers[stage]()
                self.session.commit()
            except ClusteringInvariantError as e:
                self.session.rollback()
                logger.critical("Clustering invariant violated, aborting run", stage=stage, error=str(e))
                raise
            except Exception as e:
                self.session.rollback()
                summary.failed[stage] = f"{type(e).__name__}: {e}"
                logger.record_error(type(e).__name__)
                logger.error("Stage failed", stage=stage, error=str(e))
                continue
            logger.info("Stage finished", stage=stage, **summary.stages[stage])

        logger.log_metrics_summary()
        return summary
