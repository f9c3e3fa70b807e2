from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z


ENTRY_ADDITION = "addition"
ENTRY_SUBTRACTION = "subtraction"
ENTRY_TYPES = (ENTRY_ADDITION, ENTRY_SUBTRACTION)


class BalanceEntry(db.Model):
    """
    Manual fund movement on the balance sheet.

    Append-only: rows are never updated or deleted. The overall balance is
    SUM(additions) - SUM(subtractions), computed in SQL.
    """
    __tablename__ = "balance_entries"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_balance_entries_amount_positive"),
        db.Index("ix_balance_entries_date", "entry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    amount = db.Column(db.Integer, nullable=False)
    entry_date = db.Column(db.Date, nullable=False)
    remarks = db.Column(db.Text, nullable=False)
    entry_type = db.Column(db.String(16), nullable=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    created_by = db.relationship("User", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": self.amount,
            "date": to_iso_date(self.entry_date),
            "remarks": self.remarks,
            "type": self.entry_type,
            "created_by_user_id": self.created_by_user_id,
            "created_by": self.created_by.username if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
        }


class ActivityLog(db.Model):
    """
    Append-only audit trail of user actions.

    Written inside the same DB transaction as the change it records.
    username is copied so the trail survives user deletion.
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_logs_occurred_at", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    username = db.Column(db.String(64), nullable=False)
    action = db.Column(db.String(64), nullable=False, index=True)
    details = db.Column(db.Text, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "username": self.username,
            "action": self.action,
            "details": json.loads(self.details) if self.details else None,
            "occurred_at": to_utc_z(self.occurred_at),
        }
