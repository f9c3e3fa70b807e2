from __future__ import annotations

from ..extensions import db
from ..money import as_number
from ..stock import BUCKETS, STOCK_FIELDS, StockDelta, counter_column
from ..time_utils import to_utc_z


class Item(db.Model):
    """
    Stock-keeping item with two storage buckets.

    IDENTITY:
    - id is the storage key.
    - item_id is the 5-digit number staff use on invoices (10000 upward).
      Invoice lines reference items by item_id.

    INVARIANT: all six counters are >= 0 at all times. Only
    inventory_service mutates them, and only after validating the whole
    batch of deltas against the locked rows.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.CheckConstraint("item_id >= 10000 AND item_id <= 99999", name="ck_items_item_id_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, nullable=False, unique=True, index=True)
    item_name = db.Column(db.String(255), nullable=False, unique=True)

    shop_quantity = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    shop_net_weight = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    shop_gross_weight = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    cold_quantity = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    cold_net_weight = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    cold_gross_weight = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Item item_id={self.item_id} name={self.item_name!r}>"

    def bucket_levels(self, bucket: str) -> StockDelta:
        """Current counters of one bucket as a StockDelta."""
        return StockDelta(*(getattr(self, counter_column(bucket, f)) or 0 for f in STOCK_FIELDS))

    def set_bucket_levels(self, bucket: str, levels: StockDelta) -> None:
        for field, value in levels.items():
            setattr(self, counter_column(bucket, field), value)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        for bucket in BUCKETS:
            for field in STOCK_FIELDS:
                key = counter_column(bucket, field)
                data[key] = as_number(getattr(self, key) or 0)
        return data
