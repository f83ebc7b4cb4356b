# backend/maroc_billing/routes/credit_notes.py
"""
Credit note (avoir) API routes.
"""
from flask import Blueprint, g, request

from ..decorators import require_company
from ..validation import coerce_int
from .common import handle_payload_errors, list_response, read_payload, result_response

credit_notes_bp = Blueprint("credit_notes", __name__, url_prefix="/api/credit-notes")


@credit_notes_bp.get("")
@require_company
@handle_payload_errors
def list_credit_notes():
    invoice_id = request.args.get("invoice_id")
    return list_response(g.engine.list_credit_notes(
        invoice_id=coerce_int("invoice_id", invoice_id) if invoice_id else None,
        status=request.args.get("status"),
    ))


@credit_notes_bp.route("", methods=["POST"])
@require_company
@handle_payload_errors
def create_credit_note():
    """
    Draft a credit note against an invoice.

    Request body:
    {
        "invoice_id": int,
        "items": [...] (optional, defaults to every invoice line),
        "reason": str (optional),   // defective, mistake, goodwill, return, other
        "reason_description": str (optional),
        "affects_stock": bool (optional)
    }
    """
    data = read_payload(
        required=("invoice_id",),
        optional=("items", "reason", "reason_description", "affects_stock", "notes", "date"),
    )
    return result_response(g.engine.create_credit_note(**data), 201)


@credit_notes_bp.get("/<int:credit_note_id>")
@require_company
def get_credit_note(credit_note_id: int):
    return result_response(g.engine.get_credit_note(credit_note_id))


@credit_notes_bp.route("/<int:credit_note_id>", methods=["PATCH"])
@require_company
@handle_payload_errors
def update_credit_note(credit_note_id: int):
    data = read_payload(optional=("items", "reason", "reason_description", "affects_stock", "notes"))
    return result_response(g.engine.update_credit_note(credit_note_id, **data))


@credit_notes_bp.route("/<int:credit_note_id>", methods=["DELETE"])
@require_company
def delete_credit_note(credit_note_id: int):
    return result_response(g.engine.delete_credit_note(credit_note_id), serialize=lambda _: {"deleted": True})


@credit_notes_bp.route("/<int:credit_note_id>/issue", methods=["POST"])
@require_company
def issue_credit_note(credit_note_id: int):
    return result_response(g.engine.transition("credit_note", credit_note_id, "issue"))


@credit_notes_bp.route("/<int:credit_note_id>/cancel", methods=["POST"])
@require_company
def cancel_credit_note(credit_note_id: int):
    return result_response(g.engine.transition("credit_note", credit_note_id, "cancel"))


@credit_notes_bp.route("/<int:credit_note_id>/apply", methods=["POST"])
@require_company
@handle_payload_errors
def apply_credit_note(credit_note_id: int):
    """
    Apply credit: {"amount_cents": int, "target_invoice_id": int}
    or refund it: {"amount_cents": int, "refund_method": "bank", "refund_reference": "..."}

    Returns:
        201: Application recorded
        409: Not enough credit remaining, or wrong status
    """
    data = read_payload(
        required=("amount_cents",),
        optional=("target_invoice_id", "refund_method", "refund_reference", "date"),
    )
    amount = data.pop("amount_cents")
    return result_response(g.engine.apply_credit_note(credit_note_id, amount, **data), 201)
