# Overview: Service-layer operations for the balance sheet; append-only manual fund movements.

"""
Balance Ledger

INVARIANTS:
- Entries are append-only: there is no update and no delete.
- amount > 0 in whole currency; the sign comes from entry_type.
- total_balance = SUM(additions) - SUM(subtractions), aggregated in SQL.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import case, func

from ..exceptions import ValidationError
from ..extensions import db
from ..models import BalanceEntry
from ..models.ledger import ENTRY_ADDITION, ENTRY_SUBTRACTION, ENTRY_TYPES
from ..money import parse_money
from ..time_utils import parse_iso_date, today as utc_today
from .activity_service import log_activity
from .concurrency import run_with_retry


def _parse_entry_date(value, field: str = "date") -> Optional[date]:
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(field, "must be an ISO-8601 date")


def add_entry(amount, entry_date=None, remarks=None, entry_type=None, created_by=None) -> BalanceEntry:
    """
    Record an addition to or subtraction from the balance.

    Raises:
        ValidationError: amount not > 0, blank remarks, unknown entry_type
    """
    value = parse_money(amount, "amount", positive=True)
    text = str(remarks).strip() if remarks is not None else ""
    if not text:
        raise ValidationError("remarks", "is required")
    kind = str(entry_type or "").strip().lower()
    if kind not in ENTRY_TYPES:
        raise ValidationError("type", f"must be one of {', '.join(ENTRY_TYPES)}")
    when = _parse_entry_date(entry_date) or utc_today()

    def _op():
        entry = BalanceEntry(
            amount=value,
            entry_date=when,
            remarks=text,
            entry_type=kind,
            created_by_user_id=created_by.id if created_by is not None else None,
        )
        db.session.add(entry)
        db.session.flush()
        log_activity(created_by, "balance.entry_added", {
            "id": entry.id,
            "type": kind,
            "amount": value,
            "remarks": text,
        })
        db.session.commit()
        return entry

    return run_with_retry(_op)


def total_balance() -> int:
    signed = case(
        (BalanceEntry.entry_type == ENTRY_ADDITION, BalanceEntry.amount),
        (BalanceEntry.entry_type == ENTRY_SUBTRACTION, -BalanceEntry.amount),
        else_=0,
    )
    return int(db.session.query(func.coalesce(func.sum(signed), 0)).scalar() or 0)


def list_entries(entry_date=None, remarks: Optional[str] = None, page: int = 1, page_size: int = 10) -> dict:
    """
    Newest entries first.

    entry_date matches the whole calendar day; remarks is a
    case-insensitive substring filter.
    """
    page = max(int(page or 1), 1)
    page_size = min(max(int(page_size or 10), 1), 500)

    query = db.session.query(BalanceEntry)
    day = _parse_entry_date(entry_date)
    if day is not None:
        query = query.filter(BalanceEntry.entry_date == day)
    term = (remarks or "").strip()
    if term:
        query = query.filter(BalanceEntry.remarks.ilike(f"%{term}%"))

    total = query.count()
    rows = (
        query.order_by(BalanceEntry.entry_date.desc(), BalanceEntry.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "entries": [r.to_dict() for r in rows],
        "total_balance": total_balance(),
        "pagination": {
            "total": total,
            "page": page,
            "pages": (total + page_size - 1) // page_size,
        },
    }
