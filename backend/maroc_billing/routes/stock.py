# backend/maroc_billing/routes/stock.py
"""
Stock ledger API routes.
"""
from flask import Blueprint, g, request

from ..decorators import require_company
from ..validation import coerce_int
from .common import handle_payload_errors, read_payload, result_response

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.route("/movements", methods=["POST"])
@require_company
@handle_payload_errors
def record_movement():
    """
    Append one stock movement.

    Request body:
    {
        "product_id": int,
        "type": str,          // purchase, sale, return_customer, return_supplier, adjustment, transfer, inventory
        "quantity": int,      // signed
        "location_id": int (optional),
        "reason": str (optional)
    }

    Returns:
        201: Movement recorded
        400: Invalid request
        409: Insufficient stock
        422: Product not stock managed
    """
    data = read_payload(required=("product_id", "type", "quantity"), optional=("location_id", "reason"))
    result = g.engine.record_stock_movement(
        data["product_id"],
        data["type"],
        data["quantity"],
        location_id=data.get("location_id"),
        reason=data.get("reason"),
    )
    return result_response(result, 201)


@stock_bp.route("/check", methods=["POST"])
@require_company
@handle_payload_errors
def check_stock():
    data = read_payload(required=("items",), optional=("location_id",))
    result = g.engine.check_stock(data["items"], data.get("location_id"))
    return result_response(result)


@stock_bp.route("/transfers", methods=["POST"])
@require_company
@handle_payload_errors
def transfer():
    data = read_payload(
        required=("product_id", "quantity", "from_location_id", "to_location_id"),
        optional=("reason",),
    )
    result = g.engine.transfer_stock(
        data["product_id"], data["quantity"], data["from_location_id"], data["to_location_id"], data.get("reason"),
    )
    return result_response(result, 201, serialize=lambda pair: {"movements": [m.to_dict() for m in pair]})


@stock_bp.get("/products/<int:product_id>/movements")
@require_company
@handle_payload_errors
def product_movements(product_id: int):
    limit = request.args.get("limit")
    limit = coerce_int("limit", limit) if limit else None
    result = g.engine.get_product_movements(product_id, limit)
    return result_response(result, serialize=lambda rows: {"items": [m.to_dict() for m in rows]})


@stock_bp.get("/products/<int:product_id>/by-location")
@require_company
def stock_by_location(product_id: int):
    result = g.engine.get_stock_by_location(product_id)
    return result_response(result, serialize=lambda by_loc: {
        "product_id": product_id,
        "locations": [{"location_id": k, "quantity": v} for k, v in by_loc.items()],
    })


@stock_bp.get("/products/<int:product_id>/verify")
@require_company
def verify_ledger(product_id: int):
    return result_response(g.engine.verify_ledger(product_id))


@stock_bp.get("/low")
@require_company
def low_stock():
    return result_response(g.engine.get_low_stock_products(), serialize=lambda rows: {"items": rows})
