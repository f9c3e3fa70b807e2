# Overview: Request payload and query-string helpers shared by the API routes.

from __future__ import annotations

from typing import Any

from flask import request

from .exceptions import ValidationError
from .money import to_decimal
from .stock import STOCK_FIELDS, StockDelta
from .time_utils import parse_iso_date


def json_body() -> dict[str, Any]:
    """The request body as a JSON object; anything else is a 400."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("body", "must be a JSON object")
    return data


def query_date(name: str):
    try:
        return parse_iso_date(request.args.get(name))
    except ValueError:
        raise ValidationError(name, "must be an ISO-8601 date")


def query_int(name: str, default: int, *, minimum: int = 0, maximum: int | None = None) -> int:
    raw = request.args.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(name, "must be an integer")
    value = max(value, minimum)
    if maximum is not None:
        value = min(value, maximum)
    return value


def signed_delta(payload: dict) -> StockDelta:
    """
    Signed adjustment for one bucket (manual stock correction).

    Missing measures count as zero; at least one must be non-zero.
    """
    delta = StockDelta(*(
        to_decimal(payload.get(field), field) if payload.get(field) not in (None, "") else 0
        for field in STOCK_FIELDS
    ))
    if delta.is_zero():
        raise ValidationError("quantity", "adjustment must change at least one measure")
    return delta
