# backend/maroc_billing/routes/invoices.py
"""
Invoice API routes.

Lifecycle actions are POSTs on the invoice resource; every call goes through
the company's BillingEngine so each request is one transaction.
"""
from flask import Blueprint, g, request

from ..decorators import require_company
from ..validation import coerce_int
from .common import handle_payload_errors, list_response, read_payload, result_response

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")

INVOICE_FIELDS = (
    "date", "due_date", "notes", "terms", "has_fiscal_stamp", "fiscal_stamp_amount_cents", "stock_location_id",
)


@invoices_bp.get("")
@require_company
@handle_payload_errors
def list_invoices():
    """GET /api/invoices?status=sent&client_id=3"""
    client_id = request.args.get("client_id")
    return list_response(g.engine.list_invoices(
        status=request.args.get("status"),
        client_id=coerce_int("client_id", client_id) if client_id else None,
    ))


@invoices_bp.route("", methods=["POST"])
@require_company
@handle_payload_errors
def create_invoice():
    """
    Create a draft invoice.

    Request body:
    {
        "client_id": int,
        "items": [{"product_id": int?, "description": str?, "quantity": int,
                   "unit_price_cents": int?, "vat_rate_bps": int?, "discount_cents": int?}],
        "date": str (optional, ISO-8601),
        "due_date": str (optional),
        "has_fiscal_stamp": bool (optional),
        ...
    }

    Returns:
        201: Invoice created
        400: Invalid request
        404: Client or product not found
    """
    data = read_payload(required=("client_id", "items"), optional=INVOICE_FIELDS)
    return result_response(g.engine.create_invoice(**data), 201)


@invoices_bp.get("/<int:invoice_id>")
@require_company
def get_invoice(invoice_id: int):
    return result_response(g.engine.get_invoice(invoice_id))


@invoices_bp.route("/<int:invoice_id>", methods=["PATCH"])
@require_company
@handle_payload_errors
def update_invoice(invoice_id: int):
    data = read_payload(optional=("client_id", "items") + INVOICE_FIELDS)
    return result_response(g.engine.update_invoice(invoice_id, **data))


@invoices_bp.route("/<int:invoice_id>", methods=["DELETE"])
@require_company
def delete_invoice(invoice_id: int):
    return result_response(g.engine.delete_invoice(invoice_id), serialize=lambda _: {"deleted": True})


@invoices_bp.route("/<int:invoice_id>/send", methods=["POST"])
@require_company
@handle_payload_errors
def send_invoice(invoice_id: int):
    data = read_payload(optional=("recipients", "subject", "location_id"))
    return result_response(g.engine.transition("invoice", invoice_id, "send", **data))


@invoices_bp.route("/<int:invoice_id>/cancel", methods=["POST"])
@require_company
@handle_payload_errors
def cancel_invoice(invoice_id: int):
    data = read_payload(optional=("reason",))
    return result_response(g.engine.transition("invoice", invoice_id, "cancel", **data))


@invoices_bp.route("/<int:invoice_id>/mark-overdue", methods=["POST"])
@require_company
def mark_overdue(invoice_id: int):
    return result_response(g.engine.transition("invoice", invoice_id, "mark_overdue"))


@invoices_bp.route("/<int:invoice_id>/mark-paid", methods=["POST"])
@require_company
@handle_payload_errors
def mark_paid(invoice_id: int):
    data = read_payload(optional=("method", "date", "reference"))
    return result_response(g.engine.transition("invoice", invoice_id, "mark_paid", **data), 201)


@invoices_bp.route("/<int:invoice_id>/deposit", methods=["POST"])
@require_company
@handle_payload_errors
def create_deposit(invoice_id: int):
    """Create the deposit (acompte) invoice: {"percentage_bps": 3000} or {"amount_cents": 50000}."""
    data = read_payload(optional=("percentage_bps", "amount_cents", "date"))
    return result_response(g.engine.create_deposit_invoice(invoice_id, **data), 201)


@invoices_bp.get("/<int:invoice_id>/payments")
@require_company
def payment_summary(invoice_id: int):
    return result_response(g.engine.get_payment_summary(invoice_id))
