# Overview: Pure line-item calculator shared by invoices, quotes, proformas and credit notes.

"""
Document Totals Calculator

CONTRACT:
- line total    = max(0, quantity * unit_price - discount)
- subtotal      = sum(quantity * unit_price)                (pre-discount, pre-VAT)
- vat_amount    = sum(quantity * unit_price * vat_rate)     (on the gross line value)
- discount      = sum(line discount)                        (flat amounts)
- total         = max(0, subtotal + vat_amount - discount)

NUMERIC SEMANTICS:
- Money is integer centimes, rates are integer basis points.
- VAT is accumulated exactly in centime-basis-points and rounded half-up to
  the centime once, after summing every line. No intermediate rounding.

The calculator is pure: no session access, no clock, no config. Running it
twice on the same input yields the same Totals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from .errors import ValidationError

BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class LineInput:
    quantity: int
    unit_price_cents: int
    vat_rate_bps: int = 0
    discount_cents: int = 0
    product_id: Optional[int] = None
    description: Optional[str] = None

    @classmethod
    def from_value(cls, value) -> "LineInput":
        if isinstance(value, LineInput):
            return value
        if isinstance(value, Mapping):
            get = value.get
        else:
            def get(key, default=None):
                return getattr(value, key, default)
        return cls(
            quantity=get("quantity"),
            unit_price_cents=get("unit_price_cents"),
            vat_rate_bps=get("vat_rate_bps") or 0,
            discount_cents=get("discount_cents") or 0,
            product_id=get("product_id"),
            description=get("description"),
        )

    @property
    def gross_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @property
    def total_cents(self) -> int:
        return max(0, self.gross_cents - self.discount_cents)


@dataclass(frozen=True)
class Totals:
    subtotal_cents: int
    vat_amount_cents: int
    discount_cents: int
    total_cents: int

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "vat_amount_cents": self.vat_amount_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
        }


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_line(line: LineInput, index: int = 0) -> None:
    """Reject malformed lines before any arithmetic happens."""
    if not _is_int(line.quantity) or line.quantity <= 0:
        raise ValidationError("quantity must be a positive integer", field=f"items[{index}].quantity")
    if not _is_int(line.unit_price_cents) or line.unit_price_cents < 0:
        raise ValidationError("unit_price_cents must be a non-negative integer", field=f"items[{index}].unit_price_cents")
    if not _is_int(line.vat_rate_bps) or line.vat_rate_bps < 0:
        raise ValidationError("vat_rate_bps must be a non-negative integer", field=f"items[{index}].vat_rate_bps")
    if not _is_int(line.discount_cents) or line.discount_cents < 0:
        raise ValidationError("discount_cents must be a non-negative integer", field=f"items[{index}].discount_cents")


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounded half away from zero (inputs here are never negative)."""
    return (numerator + denominator // 2) // denominator


def calculate_totals(items: Iterable) -> Totals:
    """
    Compute document totals for an ordered sequence of lines.

    Accepts LineInput instances, mappings, or objects exposing the same
    attribute names (e.g. LineItem rows). An empty sequence yields zero totals;
    document services reject empty documents before calling this.
    """
    subtotal = 0
    discount = 0
    vat_exact = 0  # centimes * basis points

    for index, raw in enumerate(items):
        line = LineInput.from_value(raw)
        validate_line(line, index)
        gross = line.gross_cents
        subtotal += gross
        discount += line.discount_cents
        vat_exact += gross * line.vat_rate_bps

    vat_amount = round_half_up(vat_exact, BPS_DENOMINATOR)
    total = max(0, subtotal + vat_amount - discount)

    return Totals(
        subtotal_cents=subtotal,
        vat_amount_cents=vat_amount,
        discount_cents=discount,
        total_cents=total,
    )


def calculate_line_total(item) -> int:
    line = LineInput.from_value(item)
    validate_line(line)
    return line.total_cents


def percentage_of(amount_cents: int, percentage_bps: int) -> int:
    """Share of an amount expressed in basis points, rounded half-up to the centime."""
    return round_half_up(amount_cents * percentage_bps, BPS_DENOMINATOR)


def format_amount(amount_cents: int, currency: str = "MAD") -> str:
    """
    Display boundary: 123456 -> "1 234,56 MAD" (Moroccan/French grouping).
    """
    sign = "-" if amount_cents < 0 else ""
    units, cents = divmod(abs(amount_cents), 100)
    grouped = f"{units:,}".replace(",", " ")
    return f"{sign}{grouped},{cents:02d} {currency}"
