# backend/maroc_billing/services/count_service.py
"""
Physical inventory count service.

Regular physical counts keep the system stock honest. A session snapshots the
expected (system) quantity of every stock-managed product, collects the
actual (physical) counts, and posts each difference as an `inventory`
movement through the stock ledger.

LIFECYCLE:
1. draft: session created, nothing snapshotted yet
2. in_progress: items snapshotted, counts being entered
3. completed: differences posted (unless adjustments were skipped)
4. cancelled: abandoned before completion, no stock effect
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..models import Inventory, InventoryItem, Product
from maroc_billing.time_utils import utcnow
from . import lifecycle_service as lc
from .document_service import get_document, touch
from .errors import NotAllItemsCountedError, NotFoundError, ValidationError
from .sequence_service import next_document_number
from .stock_service import MOVEMENT_INVENTORY, ensure_location, record_movement

logger = logging.getLogger(__name__)

ENTITY = "inventory"


def get_inventory(company_id: int, inventory_id: int, *, lock: bool = False) -> Inventory:
    return get_document(Inventory, ENTITY, company_id, inventory_id, lock=lock)


def list_inventories(company_id: int, status: str | None = None) -> list[Inventory]:
    query = db.session.query(Inventory).filter_by(company_id=company_id)
    if status:
        query = query.filter(Inventory.status == status)
    return query.order_by(Inventory.created_at.desc(), Inventory.id.desc()).all()


def create_inventory(company_id: int, location_id: int | None = None, notes: str | None = None) -> Inventory:
    """Create a draft count session, optionally limited to one location."""
    ensure_location(company_id, location_id)
    inventory = Inventory(
        company_id=company_id,
        location_id=location_id,
        number=next_document_number(company_id=company_id, document_type=ENTITY),
        status=lc.INVENTORY_DRAFT,
        notes=notes,
    )
    db.session.add(inventory)
    db.session.flush()
    logger.info("Inventory %s created", inventory.number)
    return inventory


def start_inventory(company_id: int, inventory_id: int) -> Inventory:
    """
    draft -> in_progress.

    Snapshots one item per active, stock-managed, non-service product with
    expected_quantity = current_stock and nothing counted yet.
    """
    inventory = get_inventory(company_id, inventory_id, lock=True)
    target = lc.require_transition(ENTITY, inventory, "start")

    query = db.session.query(Product).filter(
        Product.company_id == company_id,
        Product.manage_stock.is_(True),
        Product.is_service.is_(False),
        Product.is_active.is_(True),
    )
    if inventory.location_id is not None:
        query = query.filter(Product.location_id == inventory.location_id)

    for product in query.order_by(Product.id).all():
        inventory.items.append(InventoryItem(
            product_id=product.id,
            expected_quantity=product.current_stock or 0,
            actual_quantity=0,
            is_counted=False,
        ))

    inventory.status = target
    inventory.started_at = utcnow()
    touch(inventory)
    db.session.flush()
    logger.info("Inventory %s started with %s items", inventory.number, len(inventory.items))
    return inventory


def record_count(company_id: int, inventory_id: int, product_id: int, actual_quantity: int) -> InventoryItem:
    """Set the physical count of one product. Counting again overwrites the previous count."""
    inventory = get_inventory(company_id, inventory_id, lock=True)
    lc.require_transition(ENTITY, inventory, "record_count")

    if not isinstance(actual_quantity, int) or isinstance(actual_quantity, bool) or actual_quantity < 0:
        raise ValidationError("actual_quantity must be a non-negative integer", field="actual_quantity")

    item = (
        db.session.query(InventoryItem)
        .filter_by(inventory_id=inventory.id, product_id=product_id)
        .first()
    )
    if item is None:
        raise NotFoundError("inventory_item", product_id)

    item.actual_quantity = actual_quantity
    item.is_counted = True
    item.counted_at = utcnow()
    touch(inventory)
    db.session.flush()
    return item


def complete_inventory(company_id: int, inventory_id: int, apply_adjustments: bool = True) -> Inventory:
    """
    in_progress -> completed.

    Every item must be counted. With apply_adjustments, each difference is
    written as one `inventory` movement, so stock and ledger stay consistent.
    """
    inventory = get_inventory(company_id, inventory_id, lock=True)
    target = lc.require_transition(ENTITY, inventory, "complete")

    uncounted = [item.product_id for item in inventory.items if not item.is_counted]
    if uncounted:
        logger.warning("Inventory %s cannot complete: %s uncounted items", inventory.number, len(uncounted))
        raise NotAllItemsCountedError(inventory.id, uncounted)

    adjusted = 0
    if apply_adjustments:
        for item in sorted(inventory.items, key=lambda i: i.product_id):
            difference = item.difference
            if difference == 0:
                continue
            movement = record_movement(
                company_id,
                item.product_id,
                MOVEMENT_INVENTORY,
                difference,
                location_id=inventory.location_id,
                reason=f"Inventaire {inventory.number}",
                reference_id=inventory.id,
                reference_type=ENTITY,
            )
            item.movement_id = movement.id
            adjusted += 1

    inventory.adjustments_applied = bool(apply_adjustments)
    inventory.status = target
    inventory.completed_at = utcnow()
    touch(inventory)
    db.session.flush()
    logger.info("Inventory %s completed (%s adjustments)", inventory.number, adjusted)
    return inventory


def cancel_inventory(company_id: int, inventory_id: int) -> Inventory:
    inventory = get_inventory(company_id, inventory_id, lock=True)
    inventory.status = lc.require_transition(ENTITY, inventory, "cancel")
    inventory.cancelled_at = utcnow()
    touch(inventory)
    db.session.flush()
    logger.info("Inventory %s cancelled", inventory.number)
    return inventory
