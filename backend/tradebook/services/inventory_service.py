# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/tradebook/services/inventory_service.py

from __future__ import annotations

from typing import Mapping, Optional

from sqlalchemy import func, or_

from ..exceptions import ConflictError, InsufficientStock, NotFound, StockShortfall, ValidationError
from ..extensions import db
from ..models import InvoiceLine, Item
from ..money import parse_quantity
from ..stock import BUCKETS, BUCKET_COLD, BUCKET_SHOP, STOCK_FIELDS, StockDelta, counter_column, validate_bucket
from .activity_service import log_activity
from .concurrency import lock_for_update, run_with_retry
"""
Inventory Ledger Invariants (authoritative)

Stock model:
- Each Item carries six counters: quantity, net weight and gross weight in
  the "shop" bucket and in the "cold" (cold storage) bucket.
- Every counter is >= 0 at all times.

Applying deltas:
- A batch of deltas is keyed by (item_id, bucket). All affected item rows
  are locked first, every resulting counter is checked, and only then is
  anything written. One negative result rejects the whole batch with
  InsufficientStock listing every shortfall.
- Deltas are not idempotent. Callers (invoice_service) guarantee
  at-most-once application by diffing against persisted lines.

Transfers:
- A transfer is a debit of one bucket and a credit of the other for the
  same item, applied as one batch, so both happen or neither does.

Audit:
- Public write operations append an ActivityLog row in the same transaction.
"""


FIRST_ITEM_ID = 10000
LAST_ITEM_ID = 99999


# =============================================================================
# LOOKUPS
# =============================================================================

def get_item(item_id: int) -> Item:
    item = db.session.query(Item).filter_by(item_id=item_id).first()
    if not item:
        raise NotFound("item", item_id)
    return item


def list_items(search: Optional[str] = None) -> list[Item]:
    """All items ordered by item number; optional name substring / exact number filter."""
    query = db.session.query(Item)
    term = (search or "").strip()
    if term:
        conditions = [Item.item_name.ilike(f"%{term}%")]
        if term.isdigit():
            conditions.append(Item.item_id == int(term))
        query = query.filter(or_(*conditions))
    return query.order_by(Item.item_id).all()


def get_inventory_summary() -> dict:
    """Stock totals per bucket across every item."""
    columns = [func.coalesce(func.sum(getattr(Item, counter_column(b, f))), 0) for b in BUCKETS for f in STOCK_FIELDS]
    row = db.session.query(func.count(Item.id), *columns).one()
    summary = {"item_count": row[0]}
    values = iter(row[1:])
    for bucket in BUCKETS:
        summary[bucket] = {f: float(next(values)) for f in STOCK_FIELDS}
    return summary


# =============================================================================
# ITEM MASTER DATA
# =============================================================================

def _next_item_id() -> int:
    current = db.session.query(func.max(Item.item_id)).scalar()
    next_id = FIRST_ITEM_ID if current is None else current + 1
    if next_id > LAST_ITEM_ID:
        raise ConflictError("Item numbers exhausted (max 99999)")
    return next_id


def _clean_name(name) -> str:
    if name is None or not str(name).strip():
        raise ValidationError("item_name", "is required")
    name = str(name).strip()
    if len(name) > 255:
        raise ValidationError("item_name", "exceeds max length 255")
    return name


def _parse_counters(payload: Mapping) -> dict[str, object]:
    counters = {}
    for bucket in BUCKETS:
        for field in STOCK_FIELDS:
            key = counter_column(bucket, field)
            if key in payload:
                counters[key] = parse_quantity(payload.get(key), key)
    return counters


def create_item(*, item_name: str, item_id: Optional[int] = None, counters: Optional[Mapping] = None, user=None) -> Item:
    """
    Create an item, assigning the next free 5-digit number when item_id is omitted.

    Raises:
        ValidationError: bad name, number or counter
        ConflictError: duplicate name or number
    """
    def _op():
        name = _clean_name(item_name)
        if db.session.query(Item).filter(func.lower(Item.item_name) == name.lower()).first():
            raise ConflictError(f"Item '{name}' already exists")

        if item_id is None:
            number = _next_item_id()
        else:
            if isinstance(item_id, bool) or not isinstance(item_id, int):
                raise ValidationError("item_id", "must be an integer")
            if not FIRST_ITEM_ID <= item_id <= LAST_ITEM_ID:
                raise ValidationError("item_id", "must be a 5-digit number (10000-99999)")
            if db.session.query(Item).filter_by(item_id=item_id).first():
                raise ConflictError(f"Item number {item_id} already exists")
            number = item_id

        item = Item(item_id=number, item_name=name)
        for bucket in BUCKETS:
            item.set_bucket_levels(bucket, StockDelta())
        for key, value in _parse_counters(counters or {}).items():
            setattr(item, key, value)

        db.session.add(item)
        db.session.flush()
        log_activity(user, "item.created", {"item_id": item.item_id, "item_name": item.item_name})
        db.session.commit()
        return item

    return run_with_retry(_op)


def update_item(item_id: int, *, item_name: Optional[str] = None, counters: Optional[Mapping] = None, user=None) -> Item:
    """
    Rename an item and/or correct its counters directly (stock count fix).

    Counter corrections are validated non-negative like any other write.
    """
    def _op():
        item = lock_for_update(db.session.query(Item).filter_by(item_id=item_id)).first()
        if not item:
            raise NotFound("item", item_id)

        changes: dict = {}
        if item_name is not None:
            name = _clean_name(item_name)
            clash = db.session.query(Item).filter(
                func.lower(Item.item_name) == name.lower(),
                Item.id != item.id,
            ).first()
            if clash:
                raise ConflictError(f"Item '{name}' already exists")
            if name != item.item_name:
                changes["item_name"] = name
                item.item_name = name

        for key, value in _parse_counters(counters or {}).items():
            changes[key] = str(value)
            setattr(item, key, value)

        if changes:
            log_activity(user, "item.updated", {"item_id": item.item_id, "changes": changes})
        db.session.commit()
        return item

    return run_with_retry(_op)


def delete_item(item_id: int, user=None) -> None:
    """Delete an item no invoice line refers to."""
    def _op():
        item = lock_for_update(db.session.query(Item).filter_by(item_id=item_id)).first()
        if not item:
            raise NotFound("item", item_id)
        referenced = db.session.query(InvoiceLine.id).filter_by(item_id=item_id).first()
        if referenced:
            raise ConflictError(f"Item {item_id} is used on invoices and cannot be deleted")
        log_activity(user, "item.deleted", {"item_id": item.item_id, "item_name": item.item_name})
        db.session.delete(item)
        db.session.commit()

    return run_with_retry(_op)


# =============================================================================
# DELTAS
# =============================================================================

def _lock_items(item_ids) -> dict[int, Item]:
    ids = sorted(set(item_ids))
    if not ids:
        return {}
    rows = lock_for_update(db.session.query(Item).filter(Item.item_id.in_(ids)).order_by(Item.item_id)).all()
    found = {row.item_id: row for row in rows}
    for item_id in ids:
        if item_id not in found:
            raise NotFound("item", item_id)
    return found


def apply_deltas_locked(movements: Mapping[tuple[int, str], StockDelta]) -> dict[int, Item]:
    """
    Validate and apply a batch of deltas inside the caller's transaction.

    Locks the affected rows, checks every resulting counter, and writes
    only if none would go negative. Does not commit.

    Raises:
        NotFound: an item_id does not exist
        InsufficientStock: with every (item, bucket, field) that would go negative
    """
    for (_, bucket) in movements:
        validate_bucket(bucket)
    items = _lock_items(item_id for item_id, _ in movements)

    shortfalls: list[StockShortfall] = []
    results: dict[tuple[int, str], StockDelta] = {}
    for key in sorted(movements, key=lambda k: (k[0], BUCKETS.index(k[1]))):
        item_id, bucket = key
        item = items[item_id]
        after = item.bucket_levels(bucket) + movements[key]
        for field, value in after.items():
            if value < 0:
                shortfalls.append(StockShortfall(
                    item_id=item_id,
                    bucket=bucket,
                    field=field,
                    shortfall=-value,
                    item_name=item.item_name,
                ))
        results[key] = after

    if shortfalls:
        raise InsufficientStock(shortfalls)

    for (item_id, bucket), levels in results.items():
        items[item_id].set_bucket_levels(bucket, levels)
    db.session.flush()
    return items


def apply_delta(item_id: int, bucket: str, delta: StockDelta, user=None) -> Item:
    """
    Apply one signed delta to one bucket of one item, all-or-nothing.

    Raises InsufficientStock if any of the three counters would go negative.
    """
    def _op():
        key = (item_id, validate_bucket(bucket))
        items = apply_deltas_locked({key: delta})
        log_activity(user, "inventory.adjusted", {"item_id": item_id, "bucket": key[1], "delta": delta.to_dict()})
        db.session.commit()
        return items[item_id]

    return run_with_retry(_op)


def transfer(item_id: int, from_bucket: str, to_bucket: str, amounts: StockDelta, user=None) -> Item:
    """
    Move stock between buckets of the same item in one atomic batch.

    Amounts must be non-negative and not all zero; the buckets must differ.
    """
    def _op():
        source = validate_bucket(from_bucket, "from_bucket")
        target = validate_bucket(to_bucket, "to_bucket")
        if source == target:
            raise ValidationError("to_bucket", "must differ from from_bucket")
        if not amounts.is_non_negative():
            raise ValidationError("quantity", "transfer amounts must not be negative")
        if amounts.is_zero():
            raise ValidationError("quantity", "nothing to transfer")

        items = apply_deltas_locked({
            (item_id, source): -amounts,
            (item_id, target): amounts,
        })
        log_activity(user, "inventory.transferred", {
            "item_id": item_id,
            "from": source,
            "to": target,
            "amounts": amounts.to_dict(),
        })
        db.session.commit()
        return items[item_id]

    return run_with_retry(_op)


def transfer_to_cold(item_id: int, amounts: StockDelta, user=None) -> Item:
    return transfer(item_id, BUCKET_SHOP, BUCKET_COLD, amounts, user=user)


def transfer_to_shop(item_id: int, amounts: StockDelta, user=None) -> Item:
    return transfer(item_id, BUCKET_COLD, BUCKET_SHOP, amounts, user=user)
