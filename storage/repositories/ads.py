"""
Ads Repository.

Responsibilities:
- Load and store ads and duplicate stacks.
- Transaction-safe writes (callers commit).

Non-Responsibilities:
- No business logic.
- No clustering.

Invariant:
Repositories must not encode domain decisions.
"""

from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import and_, exists
from sqlalchemy.orm import Session

from tgjobads.database import AdRow, AdVectorRow, StackRow
from tgjobads.models import Ad, Stack

from .chunks import chunked


def _coerce_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def ad_from_row(row: AdRow) -> Ad:
    return Ad(
        id=row.id,
        date=row.date,
        text=row.text,
        message_ref=row.message_ref,
        is_unique=bool(row.is_unique),
        stack_id=row.stack_id,
    )


class AdRepository:

    def __init__(self, session: Session):
        self.session = session

    def add_from_dict(self, data: dict) -> Ad:
        """Insert an ingested ad (already validated with schema.validate_ad)."""
        row = AdRow(
            id=data["id"],
            date=_coerce_date(data["date"]),
            text=data["text"],
            message_ref=data.get("message_ref"),
            is_unique=True,
            stack_id=None,
        )
        self.session.add(row)
        return ad_from_row(row)

    def get(self, ad_id: str) -> Optional[Ad]:
        row = self.session.get(AdRow, ad_id)
        return ad_from_row(row) if row else None

    def list_all(self) -> List[Ad]:
        rows = self.session.query(AdRow).order_by(AdRow.date, AdRow.id).all()
        return [ad_from_row(r) for r in rows]

    def count(self) -> int:
        return self.session.query(AdRow).count()

    def get_many(self, ad_ids: Iterable[str]) -> List[Ad]:
        rows: List[AdRow] = []
        for chunk in chunked(sorted(set(ad_ids))):
            rows.extend(self.session.query(AdRow).filter(AdRow.id.in_(chunk)))
        return [ad_from_row(r) for r in sorted(rows, key=lambda r: (r.date, r.id))]

    def members_of(self, stack_ids: Iterable[str]) -> List[Ad]:
        """All ads assigned to the given stacks."""
        rows: List[AdRow] = []
        for chunk in chunked(sorted(set(stack_ids))):
            rows.extend(self.session.query(AdRow).filter(AdRow.stack_id.in_(chunk)))
        return [ad_from_row(r) for r in sorted(rows, key=lambda r: (r.date, r.id))]

    def list_unvectorized(self, version: int) -> List[Ad]:
        """Ads with no vector row for `version`, in replay order."""
        has_vector = exists().where(and_(AdVectorRow.ad_id == AdRow.id, AdVectorRow.version == version))
        rows = self.session.query(AdRow).filter(~has_vector).order_by(AdRow.date, AdRow.id).all()
        return [ad_from_row(r) for r in rows]

    def texts(self) -> List[str]:
        return [t for (t,) in self.session.query(AdRow.text).order_by(AdRow.date, AdRow.id)]

    def save_assignments(self, ads: Iterable[Ad]) -> int:
        """Persist stack_id / is_unique of the given ads."""
        count = 0
        for ad in ads:
            row = self.session.get(AdRow, ad.id)
            if row is None:
                continue
            row.stack_id = ad.stack_id
            row.is_unique = ad.is_unique
            count += 1
        return count

    def save_stacks(self, stacks: Iterable[Stack]) -> None:
        for stack in stacks:
            row = self.session.get(StackRow, stack.id)
            if row is None:
                self.session.add(StackRow(id=stack.id, canonical_id=stack.canonical_id))
            else:
                row.canonical_id = stack.canonical_id

    def delete_stacks(self, stack_ids: Iterable[str]) -> int:
        ids = list(stack_ids)
        if not ids:
            return 0
        return self.session.query(StackRow).filter(StackRow.id.in_(ids)).delete(synchronize_session=False)

    def load_stacks(self) -> Dict[str, Stack]:
        stacks = {r.id: Stack(id=r.id, canonical_id=r.canonical_id) for r in self.session.query(StackRow).all()}
        for ad_id, stack_id in self.session.query(AdRow.id, AdRow.stack_id).filter(AdRow.stack_id.isnot(None)):
            if stack_id in stacks:
                stacks[stack_id].member_ids.add(ad_id)
        return stacks
