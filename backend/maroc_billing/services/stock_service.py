# Overview: Service-layer operations for the stock ledger; the only writer of Product.current_stock.

# backend/maroc_billing/services/stock_service.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, StockLocation, StockMovement
from .concurrency import lock_for_update
from .errors import (
    InsufficientStockError,
    NotFoundError,
    NotStockManagedError,
    ValidationError,
)
"""
Stock Ledger Invariants (authoritative)

- StockMovement rows are append-only: never updated, never deleted.
- Every movement stores previous_stock and new_stock with
  new_stock = previous_stock + quantity.
- Product.current_stock always equals new_stock of the product's latest
  movement, and equals the sum of all its movement quantities.
- A movement and the product's stock update are written in the same
  transaction with the product row locked.
- Stock may never go negative: any negative movement larger than the
  available stock is rejected with InsufficientStock and nothing is written.
- Services and products with manage_stock=False never touch the ledger.
"""

logger = logging.getLogger(__name__)

MOVEMENT_PURCHASE = "purchase"
MOVEMENT_SALE = "sale"
MOVEMENT_RETURN_CUSTOMER = "return_customer"
MOVEMENT_RETURN_SUPPLIER = "return_supplier"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_TRANSFER = "transfer"
MOVEMENT_INVENTORY = "inventory"

VALID_MOVEMENT_TYPES = (
    MOVEMENT_PURCHASE,
    MOVEMENT_SALE,
    MOVEMENT_RETURN_CUSTOMER,
    MOVEMENT_RETURN_SUPPLIER,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TRANSFER,
    MOVEMENT_INVENTORY,
)

# Sign each movement type must carry; None means either sign is allowed.
MOVEMENT_SIGNS = {
    MOVEMENT_PURCHASE: 1,
    MOVEMENT_RETURN_CUSTOMER: 1,
    MOVEMENT_SALE: -1,
    MOVEMENT_RETURN_SUPPLIER: -1,
    MOVEMENT_ADJUSTMENT: None,
    MOVEMENT_TRANSFER: None,
    MOVEMENT_INVENTORY: None,
}


@dataclass(frozen=True)
class StockShortage:
    product_id: int
    product_name: str
    requested: int
    available: int

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "requested": self.requested,
            "available": self.available,
        }


@dataclass(frozen=True)
class StockCheck:
    """Outcome of a pre-flight check: ok is False when any line is short."""

    insufficient_items: list[StockShortage]

    @property
    def ok(self) -> bool:
        return not self.insufficient_items

    def to_dict(self) -> dict:
        return {"ok": self.ok, "insufficient_items": [s.to_dict() for s in self.insufficient_items]}


def _get_product(company_id: int, product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id, company_id=company_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("product", product_id)
    return product


def ensure_location(company_id: int, location_id: int | None) -> None:
    if location_id is None:
        return
    exists = db.session.query(StockLocation.id).filter_by(id=location_id, company_id=company_id).first()
    if exists is None:
        raise NotFoundError("stock_location", location_id)


def _validate_movement(movement_type: str, quantity) -> None:
    if movement_type not in VALID_MOVEMENT_TYPES:
        raise ValidationError(
            f"Invalid movement type: {movement_type}. Must be one of {VALID_MOVEMENT_TYPES}",
            field="type",
        )
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity == 0:
        raise ValidationError("quantity must be a non-zero integer", field="quantity")
    sign = MOVEMENT_SIGNS[movement_type]
    if sign is not None and (quantity > 0) != (sign > 0):
        expected = "positive" if sign > 0 else "negative"
        raise ValidationError(f"{movement_type} movements must have a {expected} quantity", field="quantity")


def _append_movement(
    product: Product,
    *,
    movement_type: str,
    quantity: int,
    location_id: int | None,
    reason: str | None,
    reference_id: int | None,
    reference_type: str | None,
) -> StockMovement:
    """Write one movement against an already locked, already validated product."""
    previous_stock = product.current_stock or 0
    new_stock = previous_stock + quantity

    if new_stock < 0:
        raise InsufficientStockError([
            StockShortage(
                product_id=product.id,
                product_name=product.name,
                requested=abs(quantity),
                available=previous_stock,
            ).to_dict()
        ])

    movement = StockMovement(
        company_id=product.company_id,
        product_id=product.id,
        location_id=location_id if location_id is not None else product.location_id,
        type=movement_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        reason=reason,
        reference_id=reference_id,
        reference_type=reference_type,
    )
    db.session.add(movement)
    product.current_stock = new_stock
    db.session.flush()

    logger.info(
        "Stock movement %s: product=%s type=%s qty=%s %s -> %s",
        movement.id, product.id, movement_type, quantity, previous_stock, new_stock,
    )
    if quantity < 0 and current_app.config.get("LOW_STOCK_ALERT_ENABLED"):
        threshold = product.alert_stock if product.alert_stock is not None else product.min_stock
        if threshold is not None and new_stock <= threshold < previous_stock:
            logger.warning("Low stock: product=%s (%s) at %s, threshold %s",
                           product.id, product.name, new_stock, threshold)
    return movement


def record_movement(
    company_id: int,
    product_id: int,
    movement_type: str,
    quantity: int,
    location_id: int | None = None,
    reason: str | None = None,
    reference_id: int | None = None,
    reference_type: str | None = None,
) -> StockMovement:
    """
    Append one movement to the ledger and update the product's stock.

    Raises:
        ValidationError: unknown type, zero quantity, or sign not matching type
        NotFoundError: product or location missing in this company
        NotStockManagedError: service or manage_stock=False
        InsufficientStockError: negative movement larger than available stock
    """
    _validate_movement(movement_type, quantity)
    product = _get_product(company_id, product_id, lock=True)
    if not product.is_stock_managed:
        raise NotStockManagedError(product.id, bool(product.is_service))
    ensure_location(company_id, location_id)

    return _append_movement(
        product,
        movement_type=movement_type,
        quantity=quantity,
        location_id=location_id,
        reason=reason,
        reference_id=reference_id,
        reference_type=reference_type,
    )


def _requested_quantities(items: Iterable) -> dict[int, int]:
    """Sum requested quantities per stock-managed product across lines."""
    requested: dict[int, int] = {}
    for item in items:
        if isinstance(item, dict):
            product_id, quantity = item.get("product_id"), item.get("quantity")
        else:
            product_id, quantity = getattr(item, "product_id", None), getattr(item, "quantity", None)
        if product_id is None:
            continue
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError("quantity must be a positive integer", field="quantity")
        requested[product_id] = requested.get(product_id, 0) + quantity
    return requested


def check_stock_for_invoice_items(
    company_id: int,
    items: Iterable,
    location_id: int | None = None,
) -> list[StockShortage]:
    """
    Read-only pre-flight: list every line whose product lacks stock.

    Quantities of the same product on several lines are added up before the
    comparison. Free-text lines and non-stock-managed products are ignored.
    location_id only validates the location; stock is held per product.
    """
    ensure_location(company_id, location_id)
    shortages: list[StockShortage] = []
    for product_id, quantity in _requested_quantities(items).items():
        product = _get_product(company_id, product_id)
        if not product.is_stock_managed:
            continue
        available = product.current_stock or 0
        if available < quantity:
            shortages.append(StockShortage(
                product_id=product.id,
                product_name=product.name,
                requested=quantity,
                available=available,
            ))
    return shortages


def check_stock(company_id: int, items: Iterable, location_id: int | None = None) -> StockCheck:
    return StockCheck(check_stock_for_invoice_items(company_id, items, location_id))


def create_stock_movements_for_invoice(
    company_id: int,
    invoice,
    location_id: int | None = None,
    skip_check: bool = False,
    movement_type: str = MOVEMENT_SALE,
    reference_type: str = "invoice",
) -> list[StockMovement]:
    """
    Consume stock for every stock-managed line of a document.

    All-or-nothing: the read-only check runs first (unless skip_check) and any
    shortage aborts before a single movement is written. Even with skip_check,
    record-level checks still raise InsufficientStock, and the caller's
    transaction rollback discards movements already flushed.
    """
    lines = list(invoice.lines)
    if not skip_check:
        shortages = check_stock_for_invoice_items(company_id, lines, location_id)
        if shortages:
            logger.warning(
                "Stock check failed for %s %s: %s", reference_type, invoice.id, [s.product_id for s in shortages]
            )
            raise InsufficientStockError([s.to_dict() for s in shortages])

    sign = MOVEMENT_SIGNS.get(movement_type) or -1
    movements = []
    # Lock products in id order so concurrent documents cannot deadlock
    for line in sorted(lines, key=lambda l: (l.product_id or 0, l.position)):
        if line.product_id is None:
            continue
        product = _get_product(company_id, line.product_id, lock=True)
        if not product.is_stock_managed:
            continue
        movements.append(_append_movement(
            product,
            movement_type=movement_type,
            quantity=sign * line.quantity,
            location_id=location_id,
            reason=f"{reference_type} {getattr(invoice, 'number', invoice.id)}",
            reference_id=invoice.id,
            reference_type=reference_type,
        ))
    return movements


def transfer_stock(
    company_id: int,
    product_id: int,
    quantity: int,
    from_location_id: int,
    to_location_id: int,
    reason: str | None = None,
) -> tuple[StockMovement, StockMovement]:
    """
    Move stock between locations as two linked `transfer` movements.

    The product's total stock is unchanged (net zero); per-location quantities
    are derived from the movements by get_stock_by_location.
    """
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", field="quantity")
    if from_location_id == to_location_id:
        raise ValidationError("source and destination locations must differ", field="to_location_id")
    ensure_location(company_id, from_location_id)
    ensure_location(company_id, to_location_id)

    product = _get_product(company_id, product_id, lock=True)
    if not product.is_stock_managed:
        raise NotStockManagedError(product.id, bool(product.is_service))

    available_here = get_stock_by_location(company_id, product_id).get(from_location_id, 0)
    if available_here < quantity:
        raise InsufficientStockError([
            StockShortage(product.id, product.name, quantity, available_here).to_dict()
        ])

    out_movement = _append_movement(
        product,
        movement_type=MOVEMENT_TRANSFER,
        quantity=-quantity,
        location_id=from_location_id,
        reason=reason or f"transfer to location {to_location_id}",
        reference_id=to_location_id,
        reference_type="stock_location",
    )
    in_movement = _append_movement(
        product,
        movement_type=MOVEMENT_TRANSFER,
        quantity=quantity,
        location_id=to_location_id,
        reason=reason or f"transfer from location {from_location_id}",
        reference_id=from_location_id,
        reference_type="stock_location",
    )
    return out_movement, in_movement


def get_product_movements(company_id: int, product_id: int, limit: int | None = None) -> list[StockMovement]:
    _get_product(company_id, product_id)
    query = (
        db.session.query(StockMovement)
        .filter_by(company_id=company_id, product_id=product_id)
        .order_by(StockMovement.id.desc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def get_movements_for_reference(company_id: int, reference_type: str, reference_id: int) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(company_id=company_id, reference_type=reference_type, reference_id=reference_id)
        .order_by(StockMovement.id.asc())
        .all()
    )


def get_stock_by_location(company_id: int, product_id: int) -> dict[int | None, int]:
    rows = (
        db.session.query(StockMovement.location_id, func.coalesce(func.sum(StockMovement.quantity), 0))
        .filter_by(company_id=company_id, product_id=product_id)
        .group_by(StockMovement.location_id)
        .all()
    )
    return {location_id: int(total) for location_id, total in rows}


def verify_ledger(company_id: int, product_id: int) -> dict:
    """
    Check the ledger invariants for one product.

    Returns a report instead of raising so the CLI and tests can inspect it.
    """
    product = _get_product(company_id, product_id)
    movements = (
        db.session.query(StockMovement)
        .filter_by(company_id=company_id, product_id=product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )

    problems = []
    running = 0
    for movement in movements:
        if movement.previous_stock != running:
            problems.append(f"movement {movement.id}: previous_stock {movement.previous_stock} != {running}")
        if movement.new_stock != movement.previous_stock + movement.quantity:
            problems.append(f"movement {movement.id}: new_stock does not equal previous_stock + quantity")
        running = movement.new_stock

    if running != (product.current_stock or 0):
        problems.append(f"current_stock {product.current_stock} != ledger {running}")

    return {
        "product_id": product.id,
        "current_stock": product.current_stock,
        "ledger_stock": running,
        "movement_count": len(movements),
        "ok": not problems,
        "problems": problems,
    }


def get_low_stock_products(company_id: int) -> list[dict]:
    """Stock-managed products at or below their alert (or minimum) threshold."""
    products = (
        db.session.query(Product)
        .filter_by(company_id=company_id, manage_stock=True, is_service=False, is_active=True)
        .order_by(Product.name.asc())
        .all()
    )
    result = []
    for product in products:
        threshold = product.alert_stock if product.alert_stock is not None else product.min_stock
        if threshold is None or (product.current_stock or 0) > threshold:
            continue
        result.append({
            "product_id": product.id,
            "name": product.name,
            "current_stock": product.current_stock,
            "alert_stock": product.alert_stock,
            "min_stock": product.min_stock,
            "below_minimum": product.min_stock is not None and product.current_stock < product.min_stock,
        })
    return result
