"""
Salaries Repository.

Responsibilities:
- Convert salary rows to and from SalaryRecord using the wire tables.

Non-Responsibilities:
- No parsing, normalization or classification.

Invariant:
Repositories must not encode domain decisions.
"""

from typing import Dict, Iterable, Optional

from sqlalchemy.orm import Session

from tgjobads.database import SalaryRow
from tgjobads.models import (
    CURRENCY_FROM_WIRE,
    CURRENCY_TO_WIRE,
    LEVEL_FROM_WIRE,
    LEVEL_TO_WIRE,
    PERIOD_FROM_WIRE,
    PERIOD_TO_WIRE,
    STATUS_FROM_WIRE,
    STATUS_TO_WIRE,
    PositionLevel,
    ProcessingStatus,
    SalaryRecord,
)


def _from_wire(table: dict, value):
    return table[value] if value is not None else None


def _to_wire(table: dict, value):
    return table[value] if value is not None else None


def record_from_row(row: SalaryRow) -> SalaryRecord:
    return SalaryRecord(
        ad_id=row.ad_id,
        date=row.date,
        lower_bound=row.lower_bound,
        upper_bound=row.upper_bound,
        currency=_from_wire(CURRENCY_FROM_WIRE, row.currency),
        period=_from_wire(PERIOD_FROM_WIRE, row.period),
        lower_bound_normalized=row.lower_bound_normalized,
        upper_bound_normalized=row.upper_bound_normalized,
        currency_normalized=_from_wire(CURRENCY_FROM_WIRE, row.currency_normalized),
        status=STATUS_FROM_WIRE.get(row.status, ProcessingStatus.NOT_STARTED),
        failure_reason=row.failure_reason,
        level=LEVEL_FROM_WIRE.get(row.level, PositionLevel.UNKNOWN),
        level_status=STATUS_FROM_WIRE.get(row.level_status, ProcessingStatus.NOT_STARTED),
        classifier_version=row.classifier_version,
        level_attempts=row.level_attempts or 0,
    )


def _copy_to_row(record: SalaryRecord, row: SalaryRow) -> None:
    row.date = record.date
    row.lower_bound = record.lower_bound
    row.upper_bound = record.upper_bound
    row.currency = _to_wire(CURRENCY_TO_WIRE, record.currency)
    row.period = _to_wire(PERIOD_TO_WIRE, record.period)
    row.lower_bound_normalized = record.lower_bound_normalized
    row.upper_bound_normalized = record.upper_bound_normalized
    row.currency_normalized = _to_wire(CURRENCY_TO_WIRE, record.currency_normalized)
    row.status = STATUS_TO_WIRE[record.status]
    row.failure_reason = record.failure_reason
    row.level = LEVEL_TO_WIRE[record.level]
    row.level_status = STATUS_TO_WIRE[record.level_status]
    row.classifier_version = record.classifier_version
    row.level_attempts = record.level_attempts


class SalaryRepository:

    def __init__(self, session: Session):
        self.session = session

    def get(self, ad_id: str) -> Optional[SalaryRecord]:
        row = self.session.get(SalaryRow, ad_id)
        return record_from_row(row) if row else None

    def load_all(self) -> Dict[str, SalaryRecord]:
        return {r.ad_id: record_from_row(r) for r in self.session.query(SalaryRow).all()}

    def save(self, records: Iterable[SalaryRecord]) -> int:
        count = 0
        for record in records:
            row = self.session.get(SalaryRow, record.ad_id)
            if row is None:
                row = SalaryRow(ad_id=record.ad_id)
                self.session.add(row)
            _copy_to_row(record, row)
            count += 1
        return count
