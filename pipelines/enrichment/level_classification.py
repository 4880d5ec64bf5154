"""
Position Level Classification Stage.

Responsibilities:
- Select salary records that need (re-)classification.
- Call the external classifier with bounded concurrency, a per-call
  timeout and exponential backoff.
- Apply every status transition on the orchestrating thread.

Non-Responsibilities:
- No salary normalization.
- No prompt or model logic (PositionClassifier collaborator).

Invariant:
A record is IN_PROGRESS only while its call is in flight. Records never
submitted (cancellation, open circuit) keep their previous status.
COMPLETED records under the current classifier version are never
re-submitted.
"""

import threading
from collections import Counter, deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Deque, Dict, Optional, Protocol, Sequence

from tgjobads.logger import get_logger
from tgjobads.models import STATUS_TO_WIRE, Ad, PositionLevel, ProcessingStatus, SalaryRecord
from tgjobads.retry import CircuitBreaker, RetryError, exponential_backoff, is_transient_error

from pipelines.versioning.version_decider import ModelVersionManager

logger = get_logger()

STAGE = "update-levels"


class PositionClassifier(Protocol):
    def classify(self, text: str) -> PositionLevel:
        ...


@dataclass(frozen=True)
class ClassificationOutcome:
    ad_id: str
    level: Optional[PositionLevel] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.level is not None


class LevelClassificationOrchestrator:

    def __init__(
        self,
        classifier: PositionClassifier,
        versions: ModelVersionManager,
        max_concurrency: int = 5,
        timeout: Optional[float] = 30.0,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        """
        Args:
            classifier: External level classifier
            versions: Decides which records need (re-)classification and
                supplies the version stamped on completed records
            max_concurrency: Maximum calls in flight
            timeout: Seconds per call attempt (None waits indefinitely)
            max_attempts: Attempts per record and run, including the first
            base_delay: Initial backoff delay in seconds
            circuit_breaker: Stops submissions after repeated failed records
        """
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        self.classifier = classifier
        self.versions = versions
        self.max_concurrency = max_concurrency
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.breaker = circuit_breaker or CircuitBreaker(failure_threshold=10, recovery_timeout=60)
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Stop submitting; in-flight calls finish and are applied."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def classifier_version(self) -> int:
        return self.versions.classifier_version

    def _classify(self, calls: ThreadPoolExecutor, ad_id: str, text: str) -> ClassificationOutcome:
        attempts = 0

        def on_retry(attempt, exc, delay):
            logger.warning(
                "Classification retry",
                ad_id=ad_id,
                attempt=attempt,
                delay=delay,
                transient=is_transient_error(exc),
                error=str(exc),
            )

        @exponential_backoff(max_retries=self.max_attempts - 1, base_delay=self.base_delay, on_retry=on_retry)
        def attempt() -> PositionLevel:
            nonlocal attempts
            attempts += 1
            future = calls.submit(self.classifier.classify, text)
            try:
                return future.result(timeout=self.timeout)
            except FutureTimeoutError:
                future.cancel()
                raise TimeoutError(f"Classification of {ad_id} timed out after {self.timeout}s")

        try:
            level = attempt()
        except RetryError as e:
            cause = e.__cause__ or e
            return ClassificationOutcome(
                ad_id=ad_id,
                error=str(cause),
                error_type=type(cause).__name__,
                attempts=attempts,
            )
        return ClassificationOutcome(ad_id=ad_id, level=level, attempts=attempts)

    def _apply(self, record: SalaryRecord, outcome: ClassificationOutcome) -> None:
        record.level_attempts += outcome.attempts
        if outcome.ok:
            record.level = outcome.level
            record.level_status = ProcessingStatus.COMPLETED
            record.classifier_version = self.classifier_version
            self.breaker.record_success()
            return

        record.level_status = ProcessingStatus.FAILED
        self.breaker.record_failure()
        logger.record_error(outcome.error_type or "ClassificationError")
        logger.warning(
            "Classification failed",
            ad_id=record.ad_id,
            attempts=outcome.attempts,
            error=outcome.error,
        )

    def run(self, ads: Sequence[Ad], records: Dict[str, SalaryRecord]) -> Dict[str, int]:
        """
        Classify canonical ads whose records need it.

        Args:
            ads: Candidate ads; non-canonical ones are skipped
            records: ad id -> salary record; missing records are created

        Returns:
            Status name -> count, plus "Skipped" for eligible records
            that were not submitted
        """
        queue: Deque[Ad] = deque()
        for ad in sorted(ads, key=lambda a: (a.date, a.id)):
            if not ad.is_unique:
                continue
            record = records.get(ad.id)
            if record is None:
                record = SalaryRecord(ad_id=ad.id, date=ad.date)
                records[ad.id] = record
            # Left over by an interrupted run
            if record.level_status is ProcessingStatus.IN_PROGRESS:
                record.level_status = ProcessingStatus.FAILED
            if self.versions.needs_classification(record):
                queue.append(ad)

        counts: Counter = Counter()
        in_flight: Dict[Future, str] = {}

        # Timed-out calls may still be running; never wait on them
        calls = ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix="classify-call")
        try:
            with ThreadPoolExecutor(max_workers=self.max_concurrency) as workers:
                while queue or in_flight:
                    while queue and len(in_flight) < self.max_concurrency and not self._stopped():
                        ad = queue.popleft()
                        records[ad.id].level_status = ProcessingStatus.IN_PROGRESS
                        in_flight[workers.submit(self._classify, calls, ad.id, ad.text)] = ad.id

                    if not in_flight:
                        break

                    done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                    for future in done:
                        ad_id = in_flight.pop(future)
                        record = records[ad_id]
                        self._apply(record, future.result())
                        counts[STATUS_TO_WIRE[record.level_status]] += 1
        finally:
            calls.shutdown(wait=False, cancel_futures=True)

        if queue:
            counts["Skipped"] += len(queue)
            reason = "cancelled" if self.cancelled else "circuit open"
            logger.warning("Classification stopped early", reason=reason, skipped=len(queue))

        for status, count in counts.items():
            logger.record_status(STAGE, status, count)
        logger.info("Levels classified", **dict(counts))
        return dict(counts)

    def _stopped(self) -> bool:
        return self._cancelled.is_set() or self.breaker.is_open
