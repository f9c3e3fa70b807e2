# Overview: Service-layer operations for vendors, customers and commissioners.

from __future__ import annotations

from typing import Mapping, Optional

from sqlalchemy import or_

from ..exceptions import ConflictError, NotFound, ValidationError
from ..extensions import db
from ..models import Commissioner, Customer, Invoice, Vendor
from .activity_service import log_activity
from .concurrency import run_with_retry


PARTY_VENDOR = "vendor"
PARTY_CUSTOMER = "customer"
PARTY_COMMISSIONER = "commissioner"

PARTY_MODELS = {
    PARTY_VENDOR: Vendor,
    PARTY_CUSTOMER: Customer,
    PARTY_COMMISSIONER: Commissioner,
}

# Invoice column pointing at each party kind
PARTY_INVOICE_COLUMNS = {
    PARTY_VENDOR: Invoice.vendor_id,
    PARTY_CUSTOMER: Invoice.customer_id,
    PARTY_COMMISSIONER: Invoice.commissioner_id,
}


def _model(kind: str):
    try:
        return PARTY_MODELS[kind]
    except KeyError:
        raise ValidationError("kind", f"unknown party kind {kind!r}")


def clean_contact(payload: Mapping, *, name_field: str = "name", partial: bool = False) -> dict:
    """
    Normalize name / phone / city from a request payload.

    name is required on create and may not be blanked on update.
    """
    cleaned: dict = {}
    if not partial or name_field in payload:
        name = payload.get(name_field)
        if name is None or not str(name).strip():
            raise ValidationError(name_field, "is required")
        name = str(name).strip()
        if len(name) > 255:
            raise ValidationError(name_field, "exceeds max length 255")
        cleaned["name"] = name
    for key, limit in (("phone", 64), ("city", 128)):
        if key in payload:
            value = payload.get(key)
            value = str(value).strip() if value is not None else None
            if value and len(value) > limit:
                raise ValidationError(key, f"exceeds max length {limit}")
            cleaned[key] = value or None
    return cleaned


def create_party(kind: str, payload: Mapping, user=None):
    """
    Create a vendor, customer or commissioner.

    Raises:
        ValidationError: missing name (e.g. vendor name)
    """
    model = _model(kind)

    def _op():
        fields = clean_contact(payload)
        party = model(**fields)
        db.session.add(party)
        db.session.flush()
        log_activity(user, f"{kind}.created", {"id": party.id, "name": party.name})
        db.session.commit()
        return party

    return run_with_retry(_op)


def get_party(kind: str, party_id: int):
    party = db.session.query(_model(kind)).filter_by(id=party_id).first()
    if not party:
        raise NotFound(kind, party_id)
    return party


def list_parties(kind: str, search: Optional[str] = None) -> list:
    model = _model(kind)
    query = db.session.query(model)
    term = (search or "").strip()
    if term:
        like = f"%{term}%"
        query = query.filter(or_(model.name.ilike(like), model.city.ilike(like), model.phone.ilike(like)))
    return query.order_by(model.name).all()


def update_party(kind: str, party_id: int, payload: Mapping, user=None):
    """
    Update contact details. A rename is copied onto the party's invoices so
    listings and searches by name stay consistent.
    """
    model = _model(kind)

    def _op():
        party = db.session.query(model).filter_by(id=party_id).first()
        if not party:
            raise NotFound(kind, party_id)
        fields = clean_contact(payload, partial=True)
        for key, value in fields.items():
            setattr(party, key, value)
        if "name" in fields:
            db.session.query(Invoice).filter(PARTY_INVOICE_COLUMNS[kind] == party.id).update(
                {Invoice.party_name: fields["name"]}, synchronize_session=False
            )
        log_activity(user, f"{kind}.updated", {"id": party.id, "changes": fields})
        db.session.commit()
        return party

    return run_with_retry(_op)


def delete_party(kind: str, party_id: int, user=None) -> None:
    """Delete a party that has no invoices."""
    model = _model(kind)

    def _op():
        party = db.session.query(model).filter_by(id=party_id).first()
        if not party:
            raise NotFound(kind, party_id)
        has_invoices = db.session.query(Invoice.id).filter(PARTY_INVOICE_COLUMNS[kind] == party.id).first()
        if has_invoices:
            raise ConflictError(f"{kind.capitalize()} '{party.name}' has invoices and cannot be deleted")
        log_activity(user, f"{kind}.deleted", {"id": party.id, "name": party.name})
        db.session.delete(party)
        db.session.commit()

    return run_with_retry(_op)


def party_invoices(kind: str, party_id: int) -> list[Invoice]:
    get_party(kind, party_id)
    return (
        db.session.query(Invoice)
        .filter(PARTY_INVOICE_COLUMNS[kind] == party_id)
        .order_by(Invoice.invoice_date.desc(), Invoice.id.desc())
        .all()
    )
