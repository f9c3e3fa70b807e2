# Overview: Stock buckets, measures and the StockDelta value type used by the inventory ledger.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from .exceptions import ValidationError
from .money import parse_quantity, quantize_quantity


BUCKET_SHOP = "shop"
BUCKET_COLD = "cold"
BUCKETS = (BUCKET_SHOP, BUCKET_COLD)

# Measures tracked per bucket, in the order they are reported
STOCK_FIELDS = ("quantity", "net_weight", "gross_weight")

ZERO = Decimal("0.000")


def validate_bucket(bucket, field: str = "bucket") -> str:
    value = (bucket or "").strip().lower() if isinstance(bucket, str) else bucket
    if value not in BUCKETS:
        raise ValidationError(field, f"must be one of {', '.join(BUCKETS)}")
    return value


def counter_column(bucket: str, field: str) -> str:
    """Item attribute holding one counter, e.g. ("cold", "net_weight") -> "cold_net_weight"."""
    return f"{bucket}_{field}"


@dataclass(frozen=True)
class StockDelta:
    """Signed change to the three measures of one bucket."""
    quantity: Decimal = ZERO
    net_weight: Decimal = ZERO
    gross_weight: Decimal = ZERO

    def __post_init__(self):
        for name in STOCK_FIELDS:
            object.__setattr__(self, name, quantize_quantity(getattr(self, name)))

    @classmethod
    def from_payload(cls, payload: dict) -> "StockDelta":
        """Non-negative amounts from a transfer payload."""
        return cls(
            quantity=parse_quantity(payload.get("quantity"), "quantity"),
            net_weight=parse_quantity(payload.get("net_weight"), "net_weight"),
            gross_weight=parse_quantity(payload.get("gross_weight"), "gross_weight"),
        )

    def __add__(self, other: "StockDelta") -> "StockDelta":
        return StockDelta(*(getattr(self, f) + getattr(other, f) for f in STOCK_FIELDS))

    def __sub__(self, other: "StockDelta") -> "StockDelta":
        return StockDelta(*(getattr(self, f) - getattr(other, f) for f in STOCK_FIELDS))

    def __neg__(self) -> "StockDelta":
        return StockDelta(*(-getattr(self, f) for f in STOCK_FIELDS))

    def is_zero(self) -> bool:
        return all(getattr(self, f) == 0 for f in STOCK_FIELDS)

    def is_non_negative(self) -> bool:
        return all(getattr(self, f) >= 0 for f in STOCK_FIELDS)

    def items(self):
        return ((f, getattr(self, f)) for f in STOCK_FIELDS)

    def to_dict(self) -> dict:
        return {f: float(v) for f, v in self.items()}
