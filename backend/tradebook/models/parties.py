from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z


class _PartyColumns:
    """Contact columns shared by every trading counterparty."""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(64), nullable=True)
    city = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "city": self.city,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Vendor(_PartyColumns, db.Model):
    """Supplier. Vendor invoices are purchases that put stock in."""
    __tablename__ = "vendors"
    __table_args__ = {"sqlite_autoincrement": True}


class Customer(_PartyColumns, db.Model):
    """Buyer. Customer invoices are sales that take stock out of the shop."""
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}


class Commissioner(_PartyColumns, db.Model):
    """
    Agent who sells on our behalf. Commissioner sheets record the sale and
    the commission owed to us; they never move stock.
    """
    __tablename__ = "commissioners"
    __table_args__ = {"sqlite_autoincrement": True}


class Broker(_PartyColumns, db.Model):
    """
    Middleman on customer sales.

    total_commission is the sum of broker_commission_amount over the
    broker's customer invoices. It is cached here and recomputed by
    broker_service whenever one of those invoices or a broker payment
    changes; reads recompute it anyway.
    """
    __tablename__ = "brokers"
    __table_args__ = {"sqlite_autoincrement": True}

    due_date = db.Column(db.Date, nullable=True)
    total_commission = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="unpaid")

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    payments = db.relationship(
        "Payment",
        backref=db.backref("broker", lazy=True),
        lazy=True,
        order_by="Payment.id",
        cascade="all, delete-orphan",
        foreign_keys="Payment.broker_id",
    )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "broker_name": self.name,
            "due_date": to_iso_date(self.due_date),
            "version_id": self.version_id,
        })
        return data
