# backend/maroc_billing/routes/taxes.py
"""
Tax and tax rule API routes.
"""
from flask import Blueprint, g, request

from ..decorators import require_company
from ..validation import coerce_int
from .common import handle_payload_errors, read_payload, result_response

taxes_bp = Blueprint("taxes", __name__, url_prefix="/api/taxes")


@taxes_bp.route("", methods=["POST"])
@require_company
@handle_payload_errors
def create_tax():
    """
    Create a tax.

    Request body:
    {
        "name": str,
        "rate_bps": int,            // 2000 = 20%
        "type": str (optional),     // "vat" (default) or "other"
        "applies_to": str (optional),
        "is_default": bool (optional)
    }
    """
    data = read_payload(required=("name", "rate_bps"), optional=("type", "applies_to", "is_default"))
    return result_response(g.engine.create_tax(**data), 201)


@taxes_bp.route("/rules", methods=["POST"])
@require_company
@handle_payload_errors
def create_tax_rule():
    data = read_payload(
        required=("name", "tax_ids"),
        optional=("priority", "product_category_ids", "client_category_ids"),
    )
    data["tax_ids"] = [coerce_int("tax_ids", v) for v in data["tax_ids"]]
    return result_response(g.engine.create_tax_rule(**data), 201)


@taxes_bp.get("/resolve")
@require_company
@handle_payload_errors
def resolve_tax():
    """GET /api/taxes/resolve?product_id=1&client_id=2"""
    product_id = coerce_int("product_id", request.args.get("product_id"))
    client_id = request.args.get("client_id")
    client_id = coerce_int("client_id", client_id) if client_id else None
    return result_response(g.engine.resolve_tax(product_id, client_id))


@taxes_bp.route("/calculate", methods=["POST"])
@require_company
@handle_payload_errors
def calculate_totals():
    """Preview document totals for a list of lines without saving anything."""
    data = read_payload(required=("items",))
    return result_response(g.engine.calculate_totals(data["items"]))
