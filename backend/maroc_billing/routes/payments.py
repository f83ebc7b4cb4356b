# backend/maroc_billing/routes/payments.py
"""
Payment API routes.
"""
from flask import Blueprint, g, request

from ..decorators import require_company
from .common import handle_payload_errors, read_payload, result_response

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.route("", methods=["POST"])
@require_company
@handle_payload_errors
def create_payment():
    """
    Record a payment on a sent or partially paid invoice.

    Request body:
    {
        "invoice_id": int,
        "amount_cents": int,
        "method": str,        // cash, bank, check, online, other
        "date": str (optional),
        "reference": str (optional),
        "notes": str (optional)
    }

    Returns:
        201: Payment recorded
        400: Invalid amount or method
        404: Invoice not found
        409: Invoice not payable in its current status
    """
    data = read_payload(required=("invoice_id", "amount_cents", "method"), optional=("date", "reference", "notes"))
    result = g.engine.create_payment(
        data.pop("invoice_id"), data.pop("amount_cents"), data.pop("method"), **data,
    )
    return result_response(result, 201)


@payments_bp.route("/<int:payment_id>", methods=["DELETE"])
@require_company
def delete_payment(payment_id: int):
    """Cancel a payment; the invoice status is re-derived."""
    body = request.get_json(silent=True) or {}
    reason = body.get("reason") if isinstance(body, dict) else None
    return result_response(g.engine.delete_payment(payment_id, reason))
