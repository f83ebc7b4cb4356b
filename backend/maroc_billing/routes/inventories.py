# backend/maroc_billing/routes/inventories.py
"""
Physical inventory count API routes.
"""
from flask import Blueprint, g

from ..decorators import require_company
from .common import handle_payload_errors, read_payload, result_response

inventories_bp = Blueprint("inventories", __name__, url_prefix="/api/inventories")


@inventories_bp.route("", methods=["POST"])
@require_company
@handle_payload_errors
def create_inventory():
    """
    Create a draft count session.

    Request body:
    {
        "location_id": int (optional),
        "notes": str (optional)
    }
    """
    data = read_payload(optional=("location_id", "notes"))
    return result_response(g.engine.create_inventory(**data), 201)


@inventories_bp.get("/<int:inventory_id>")
@require_company
def get_inventory(inventory_id: int):
    return result_response(g.engine.get_inventory(inventory_id))


@inventories_bp.route("/<int:inventory_id>/start", methods=["POST"])
@require_company
def start_inventory(inventory_id: int):
    """Snapshot expected quantities. 409 unless the session is a draft."""
    return result_response(g.engine.start_inventory(inventory_id))


@inventories_bp.route("/<int:inventory_id>/counts", methods=["POST"])
@require_company
@handle_payload_errors
def record_count(inventory_id: int):
    """
    Record a physical count.

    Request body:
    {
        "product_id": int,
        "actual_quantity": int
    }
    """
    data = read_payload(required=("product_id", "actual_quantity"))
    return result_response(g.engine.record_count(inventory_id, data["product_id"], data["actual_quantity"]))


@inventories_bp.route("/<int:inventory_id>/complete", methods=["POST"])
@require_company
@handle_payload_errors
def complete_inventory(inventory_id: int):
    """
    Post differences as inventory movements.

    Returns:
        200: Completed
        409: Items still uncounted, or wrong status
    """
    data = read_payload(optional=("apply_adjustments",))
    return result_response(g.engine.complete_inventory(inventory_id, bool(data.get("apply_adjustments", True))))


@inventories_bp.route("/<int:inventory_id>/cancel", methods=["POST"])
@require_company
def cancel_inventory(inventory_id: int):
    return result_response(g.engine.transition("inventory", inventory_id, "cancel"))
