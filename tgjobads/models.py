"""
Domain types shared by the deduplication and enrichment pipelines.

Enumerations are closed. Their wire representations (database strings,
LLM integer codes) live in the explicit mapping tables at the bottom of
this module and are only used at the persistence and LLM boundaries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, Optional, Tuple


class Currency(Enum):
    USD = "usd"
    EUR = "eur"
    RUB = "rub"
    GBP = "gbp"
    KZT = "kzt"
    UAH = "uah"
    BYN = "byn"


class Period(Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    PROJECT = "project"


class ProcessingStatus(Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class PositionLevel(Enum):
    """Seniority tiers, ordered by rank (higher wins when several match)."""

    UNKNOWN = 0
    INTERN = 1
    JUNIOR = 2
    MIDDLE = 3
    SENIOR = 4
    LEAD = 5
    ARCHITECT = 6
    MANAGER = 7

    @property
    def rank(self) -> int:
        return self.value


@dataclass(frozen=True)
class VectorizationModelParams:
    """
    Immutable parameter set of the active vectorization model.

    Every MinHash/LSH/TF-IDF artifact is tagged with `version`; bump it
    whenever any other field changes.
    """

    version: int = 1
    shingle_size: int = 5
    shingle_unit: str = "char"
    hash_function_count: int = 100
    min_hash_seed: int = 1000
    lsh_band_count: int = 20
    vocabulary_size: int = 1_000_000

    def __post_init__(self):
        if self.version <= 0:
            raise ValueError("version must be positive")
        if self.shingle_size <= 0:
            raise ValueError("shingle_size must be positive")
        if self.shingle_unit not in ("char", "token"):
            raise ValueError("shingle_unit must be 'char' or 'token'")
        if self.hash_function_count <= 0 or self.lsh_band_count <= 0:
            raise ValueError("hash_function_count and lsh_band_count must be positive")
        if self.hash_function_count % self.lsh_band_count != 0:
            raise ValueError("hash_function_count must be divisible by lsh_band_count")
        if self.vocabulary_size <= 0:
            raise ValueError("vocabulary_size must be positive")

    @property
    def rows_per_band(self) -> int:
        return self.hash_function_count // self.lsh_band_count

    @property
    def threshold(self) -> float:
        """Approximate Jaccard similarity at which a band collision becomes likely."""
        return (1.0 / self.lsh_band_count) ** (1.0 / self.rows_per_band)


@dataclass
class Ad:
    id: str
    date: date
    text: str
    message_ref: Optional[str] = None
    is_unique: bool = True
    stack_id: Optional[str] = None


@dataclass
class Stack:
    id: str
    canonical_id: str
    member_ids: set = field(default_factory=set)


@dataclass(frozen=True)
class VectorArtifact:
    """MinHash signature and LSH keys of one ad under one model version."""

    ad_id: str
    version: int
    signature: Tuple[int, ...]
    band_keys: Tuple[str, ...]
    shingle_count: int

    @property
    def is_empty(self) -> bool:
        return self.shingle_count == 0


@dataclass
class SalaryRecord:
    ad_id: str
    date: date
    lower_bound: Optional[float] = None
    upper_bound: Optional[float] = None
    currency: Optional[Currency] = None
    period: Optional[Period] = None
    lower_bound_normalized: Optional[float] = None
    upper_bound_normalized: Optional[float] = None
    currency_normalized: Optional[Currency] = None
    status: ProcessingStatus = ProcessingStatus.NOT_STARTED
    failure_reason: Optional[str] = None
    level: PositionLevel = PositionLevel.UNKNOWN
    level_status: ProcessingStatus = ProcessingStatus.NOT_STARTED
    classifier_version: Optional[int] = None
    level_attempts: int = 0


# Wire mapping tables (persistence / LLM boundary only)

CURRENCY_TO_WIRE: Dict[Currency, str] = {c: c.name for c in Currency}
CURRENCY_FROM_WIRE: Dict[str, Currency] = {v: k for k, v in CURRENCY_TO_WIRE.items()}

PERIOD_TO_WIRE: Dict[Period, str] = {p: p.name for p in Period}
PERIOD_FROM_WIRE: Dict[str, Period] = {v: k for k, v in PERIOD_TO_WIRE.items()}

STATUS_TO_WIRE: Dict[ProcessingStatus, str] = {
    ProcessingStatus.NOT_STARTED: "NotStarted",
    ProcessingStatus.IN_PROGRESS: "InProgress",
    ProcessingStatus.COMPLETED: "Completed",
    ProcessingStatus.FAILED: "Failed",
}
STATUS_FROM_WIRE: Dict[str, ProcessingStatus] = {v: k for k, v in STATUS_TO_WIRE.items()}

LEVEL_TO_WIRE: Dict[PositionLevel, int] = {lvl: lvl.value for lvl in PositionLevel}
LEVEL_FROM_WIRE: Dict[int, PositionLevel] = {v: k for k, v in LEVEL_TO_WIRE.items()}


def currency_from_code(code: Optional[str]) -> Optional[Currency]:
    if not code:
        return None
    return CURRENCY_FROM_WIRE.get(code.strip().upper())
