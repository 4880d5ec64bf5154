"""
Salary Normalization Stage.

Responsibilities:
- Find and parse the salary fragment of every canonical ad (in parallel).
- Normalize parsed salaries and drive the record state machine.

Non-Responsibilities:
- No rate fetching.
- No persistence (records are mutated in place for the caller to save).

Invariant:
Only NOT_STARTED and FAILED records are processed; COMPLETED ones are
left untouched, so re-runs are free.
"""

from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Sequence

from tgjobads.logger import get_logger
from tgjobads.models import STATUS_TO_WIRE, Ad, ProcessingStatus, SalaryRecord
from tgjobads.salaries.normalizer import SalaryNormalizer
from tgjobads.salaries.parser import ParsedSalary, find_salary_fragment, parse_salary

logger = get_logger()

STAGE = "update-salaries"


def _parse_ad(ad: Ad) -> Optional[ParsedSalary]:
    fragment = find_salary_fragment(ad.text)
    return parse_salary(fragment) if fragment else None


def normalize_salaries(
    ads: Sequence[Ad],
    records: Dict[str, SalaryRecord],
    normalizer: SalaryNormalizer,
    workers: int = 4,
) -> Dict[str, int]:
    """
    Normalize salaries of canonical ads.

    Args:
        ads: Ads to consider; non-canonical ones are skipped
        records: ad id -> salary record; missing records are created
        normalizer: Configured normalizer
        workers: Parsing threads

    Returns:
        Status name -> count of records processed in this run
    """
    pending: List[Ad] = []
    for ad in ads:
        if not ad.is_unique:
            continue
        record = records.get(ad.id)
        if record is None:
            record = SalaryRecord(ad_id=ad.id, date=ad.date)
            records[ad.id] = record
        if record.status in (ProcessingStatus.NOT_STARTED, ProcessingStatus.FAILED, ProcessingStatus.IN_PROGRESS):
            pending.append(ad)

    if workers > 1 and len(pending) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            parsed = list(executor.map(_parse_ad, pending))
    else:
        parsed = [_parse_ad(ad) for ad in pending]

    counts: Counter = Counter()
    for ad, salary in zip(pending, parsed):
        record = normalizer.apply(records[ad.id], salary, ad.date)
        counts[STATUS_TO_WIRE[record.status]] += 1
        if record.failure_reason:
            logger.record_error(f"salary_{record.failure_reason}")

    for status, count in counts.items():
        logger.record_status(STAGE, status, count)
    logger.info("Salaries normalized", processed=len(pending), **dict(counts))
    return dict(counts)


def canonical_ads(ads: Iterable[Ad]) -> List[Ad]:
    return [ad for ad in ads if ad.is_unique]
