from __future__ import annotations

from ..extensions import db
from ..money import as_number
from ..time_utils import to_iso_date, to_utc_z


INVOICE_VENDOR = "VENDOR"
INVOICE_CUSTOMER = "CUSTOMER"
INVOICE_COMMISSIONER = "COMMISSIONER"
INVOICE_TYPES = (INVOICE_VENDOR, INVOICE_CUSTOMER, INVOICE_COMMISSIONER)

# Line price key per invoice type, as sent and returned by the API
PRICE_FIELDS = {
    INVOICE_VENDOR: "purchase_price",
    INVOICE_CUSTOMER: "selling_price",
    INVOICE_COMMISSIONER: "sale_price",
}


class Invoice(db.Model):
    """
    Vendor purchase, customer sale or commissioner sheet.

    One table for all three kinds; invoice_type selects which party column
    and which commission columns are meaningful.

    DERIVED COLUMNS (never taken from the client):
    subtotal, total, broker_commission_amount, commissioner_amount are
    recomputed from the lines on every create/edit. total_paid_amount,
    remaining_amount and status are a cache of the payment history;
    to_dict() re-derives them from the payment rows on every read.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_type_status", "invoice_type", "status"),
        db.Index("ix_invoices_type_date", "invoice_type", "invoice_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_type = db.Column(db.String(16), nullable=False, index=True)

    # e.g. "VIN0001" - unique across all invoice kinds
    invoice_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    commissioner_id = db.Column(db.Integer, db.ForeignKey("commissioners.id"), nullable=True, index=True)
    # Denormalized party name (kept as printed on the invoice)
    party_name = db.Column(db.String(255), nullable=False)

    invoice_date = db.Column(db.Date, nullable=False, index=True)
    due_date = db.Column(db.Date, nullable=True, index=True)

    labour_transport_cost = db.Column(db.Integer, nullable=False, default=0)
    subtotal = db.Column(db.Integer, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False, default=0)

    # Customer invoices only
    broker_id = db.Column(db.Integer, db.ForeignKey("brokers.id"), nullable=True, index=True)
    broker_name = db.Column(db.String(255), nullable=True)
    broker_commission_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    broker_commission_amount = db.Column(db.Integer, nullable=False, default=0)

    # Commissioner sheets only
    commissioner_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    commissioner_amount = db.Column(db.Integer, nullable=False, default=0)
    buyer_name = db.Column(db.String(255), nullable=True)

    total_paid_amount = db.Column(db.Integer, nullable=False, default=0)
    remaining_amount = db.Column(db.Integer, nullable=False, default=0)
    # unpaid, partial, paid, overdue
    status = db.Column(db.String(16), nullable=False, default="unpaid")

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    vendor = db.relationship("Vendor", backref=db.backref("invoices", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    commissioner = db.relationship("Commissioner", backref=db.backref("invoices", lazy=True))
    broker = db.relationship("Broker", backref=db.backref("invoices", lazy=True))

    lines = db.relationship(
        "InvoiceLine",
        backref="invoice",
        lazy=True,
        order_by="InvoiceLine.position",
        cascade="all, delete-orphan",
    )
    payments = db.relationship(
        "Payment",
        backref=db.backref("invoice", lazy=True),
        lazy=True,
        order_by="Payment.id",
        cascade="all, delete-orphan",
        foreign_keys="Payment.invoice_id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} type={self.invoice_type} total={self.total}>"

    @property
    def amount_due(self) -> int:
        """What payments settle: the commission for commissioner sheets, the total otherwise."""
        if self.invoice_type == INVOICE_COMMISSIONER:
            return self.commissioner_amount or 0
        return self.total or 0

    @property
    def party_id(self):
        return {
            INVOICE_VENDOR: self.vendor_id,
            INVOICE_CUSTOMER: self.customer_id,
            INVOICE_COMMISSIONER: self.commissioner_id,
        }.get(self.invoice_type)

    def to_dict(self, include_lines: bool = True, today=None) -> dict:
        # Imported here to keep models free of service imports at module load
        from ..services.reconciliation import payment_position

        position = payment_position(
            amount_due=self.amount_due,
            payments=[p.amount for p in self.payments],
            due_date=self.due_date,
            today=today,
        )
        data = {
            "id": self.id,
            "invoice_type": self.invoice_type,
            "invoice_number": self.invoice_number,
            "party_id": self.party_id,
            "party_name": self.party_name,
            "invoice_date": to_iso_date(self.invoice_date),
            "due_date": to_iso_date(self.due_date),
            "subtotal": self.subtotal,
            "total": self.total,
            "amount_due": self.amount_due,
            "total_paid_amount": position.total_paid,
            "remaining_amount": position.remaining,
            "status": position.status,
            "version_id": self.version_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if self.invoice_type in (INVOICE_VENDOR, INVOICE_CUSTOMER):
            data["labour_transport_cost"] = self.labour_transport_cost
        if self.invoice_type == INVOICE_VENDOR:
            data["vendor_id"] = self.vendor_id
            data["vendor_name"] = self.party_name
        elif self.invoice_type == INVOICE_CUSTOMER:
            data.update({
                "customer_id": self.customer_id,
                "customer_name": self.party_name,
                "broker_id": self.broker_id,
                "broker_name": self.broker_name,
                "broker_commission_percentage": as_number(self.broker_commission_percentage or 0),
                "broker_commission_amount": self.broker_commission_amount,
            })
        elif self.invoice_type == INVOICE_COMMISSIONER:
            data.update({
                "commissioner_id": self.commissioner_id,
                "commissioner_name": self.party_name,
                "commissioner_percentage": as_number(self.commissioner_percentage or 0),
                "commissioner_amount": self.commissioner_amount,
                "buyer_name": self.buyer_name,
            })
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
            data["payments"] = [p.to_dict() for p in self.payments]
        return data


class InvoiceLine(db.Model):
    """
    One priced line of an invoice.

    item_id is nullable: free-text lines are priced but never move stock.
    total_price is always recomputed server-side.
    """
    __tablename__ = "invoice_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    item_id = db.Column(db.Integer, db.ForeignKey("items.item_id"), nullable=True, index=True)
    item_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    gross_weight = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    net_weight = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    packaging_cost = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    unit_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_price = db.Column(db.Integer, nullable=False, default=0)

    # shop | cold (vendor invoices only)
    storage_type = db.Column(db.String(8), nullable=True)

    item = db.relationship("Item", foreign_keys=[item_id], lazy=True)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "quantity": as_number(self.quantity),
            "gross_weight": as_number(self.gross_weight),
            "net_weight": as_number(self.net_weight),
            "packaging_cost": as_number(self.packaging_cost),
            "unit_price": as_number(self.unit_price),
            "total_price": self.total_price,
        }
        invoice_type = self.invoice.invoice_type if self.invoice is not None else None
        if invoice_type in PRICE_FIELDS:
            data[PRICE_FIELDS[invoice_type]] = data["unit_price"]
        if invoice_type == INVOICE_VENDOR:
            data["storage_type"] = self.storage_type or "shop"
        return data


class Payment(db.Model):
    """
    Append-only payment record.

    Belongs to exactly one invoice or one broker account. Never edited or
    deleted by the application; payments leave only with their invoice.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        db.CheckConstraint(
            "(invoice_id IS NOT NULL AND broker_id IS NULL) OR (invoice_id IS NULL AND broker_id IS NOT NULL)",
            name="ck_payments_single_target",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    broker_id = db.Column(db.Integer, db.ForeignKey("brokers.id"), nullable=True, index=True)

    amount = db.Column(db.Integer, nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    # cash, online, cheque, bank, other
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "broker_id": self.broker_id,
            "amount": self.amount,
            "payment_date": to_iso_date(self.payment_date),
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-type invoice number sequences.

    WHY: Prevent race conditions when generating invoice numbers.
    """
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, unique=True, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
