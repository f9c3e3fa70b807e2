# Overview: Service-layer operations for document numbering; allocates invoice numbers atomically.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..exceptions import ConflictError
from ..extensions import db
from ..models import DocumentSequence, Invoice
from ..models.invoices import INVOICE_COMMISSIONER, INVOICE_CUSTOMER, INVOICE_VENDOR


# Invoice number prefixes, e.g. VIN0001
INVOICE_PREFIXES = {
    INVOICE_VENDOR: "VIN",
    INVOICE_CUSTOMER: "CIN",
    INVOICE_COMMISSIONER: "CMS",
}


class DocumentSequenceError(ConflictError):
    """Raised when document sequence operations fail."""
    error_type = "document_sequence_error"


def highest_issued(document_type: str) -> int:
    """
    Largest number already used by invoices of this type (0 if none).

    Deleted invoices leave gaps, so the row count is not enough; the
    numeric suffix after the prefix is what must never repeat.
    """
    prefix = INVOICE_PREFIXES[document_type]
    numbers = db.session.query(Invoice.invoice_number).filter(Invoice.invoice_type == document_type).all()
    suffixes = [int(n[len(prefix):]) for (n,) in numbers if n and n.startswith(prefix) and n[len(prefix):].isdigit()]
    return max(suffixes, default=0)


def _current_next_number(document_type: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )


def _allocate(document_type: str) -> int:
    """
    Bump the sequence row for document_type and return the number taken.

    Runs inside the caller's transaction: the UPDATE holds the row lock
    until the caller commits, so two invoices never share a number.
    """
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        return _current_next_number(document_type) - 1

    # First number of this type. Sequences are normally seeded by
    # ensure_sequences(); a concurrent first allocation fails on the
    # unique constraint instead of issuing a duplicate number.
    first = highest_issued(document_type) + 1 if document_type in INVOICE_PREFIXES else 1
    seq = DocumentSequence(document_type=document_type, next_number=first + 1)
    db.session.add(seq)
    db.session.flush()
    return first


def ensure_sequences() -> int:
    """
    Create the sequence row of every invoice type (idempotent).

    Returns the number of rows created.
    """
    created = 0
    for document_type in INVOICE_PREFIXES:
        if db.session.query(DocumentSequence).filter_by(document_type=document_type).first():
            continue
        db.session.add(DocumentSequence(document_type=document_type, next_number=highest_issued(document_type) + 1))
        created += 1
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DocumentSequenceError("Sequences were created concurrently; run again")
    return created


def next_document_number(*, document_type: str, prefix: str, pad: int = 4) -> str:
    """
    Allocate the next document number for a type, e.g. ("VENDOR", "VIN") -> "VIN0001".

    Does not commit; the number is only consumed if the caller commits.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    next_num = _allocate(document_type)
    return f"{prefix}{next_num:0{pad}d}"


def next_invoice_number(invoice_type: str) -> str:
    prefix = INVOICE_PREFIXES.get(invoice_type)
    if prefix is None:
        raise DocumentSequenceError(f"No number prefix for invoice type {invoice_type}")
    return next_document_number(document_type=invoice_type, prefix=prefix)
