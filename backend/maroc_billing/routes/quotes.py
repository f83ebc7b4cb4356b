# backend/maroc_billing/routes/quotes.py
"""
Quote (devis) API routes.
"""
from flask import Blueprint, g, request

from ..decorators import require_company
from .common import handle_payload_errors, list_response, read_payload, result_response

quotes_bp = Blueprint("quotes", __name__, url_prefix="/api/quotes")

QUOTE_FIELDS = ("date", "expiry_date", "notes", "reminder_enabled", "reminder_days")

# URL segment -> (engine action, accepted body fields)
QUOTE_ACTIONS = {
    "submit": ("submit_for_validation", ()),
    "validate": ("validate", ("note",)),
    "reject-validation": ("reject_validation", ("note",)),
    "send": ("send", ("recipients", "subject", "reminder_enabled", "reminder_days")),
    "accept": ("accept", ()),
    "decline": ("decline", ()),
    "expire": ("expire", ()),
    "reminder": ("configure_reminder", ("enabled", "days")),
}


def _converted(pair):
    quote, invoice = pair
    return {"quote": quote.to_dict(), "invoice": invoice.to_dict()}


@quotes_bp.get("")
@require_company
def list_quotes():
    return list_response(g.engine.list_quotes(status=request.args.get("status")))


@quotes_bp.route("", methods=["POST"])
@require_company
@handle_payload_errors
def create_quote():
    data = read_payload(required=("client_id", "items"), optional=QUOTE_FIELDS)
    return result_response(g.engine.create_quote(**data), 201)


@quotes_bp.get("/<int:quote_id>")
@require_company
def get_quote(quote_id: int):
    return result_response(g.engine.get_quote(quote_id))


@quotes_bp.route("/<int:quote_id>", methods=["PATCH"])
@require_company
@handle_payload_errors
def update_quote(quote_id: int):
    data = read_payload(optional=("client_id", "items", "date", "expiry_date", "notes"))
    return result_response(g.engine.update_quote(quote_id, **data))


@quotes_bp.route("/<int:quote_id>", methods=["DELETE"])
@require_company
def delete_quote(quote_id: int):
    return result_response(g.engine.delete_quote(quote_id), serialize=lambda _: {"deleted": True})


@quotes_bp.route("/<int:quote_id>/convert", methods=["POST"])
@require_company
@handle_payload_errors
def convert_quote(quote_id: int):
    data = read_payload(optional=("date", "due_date", "notes", "terms", "has_fiscal_stamp", "stock_location_id"))
    return result_response(g.engine.transition("quote", quote_id, "convert", **data), 201, serialize=_converted)


@quotes_bp.route("/<int:quote_id>/<action>", methods=["POST"])
@require_company
@handle_payload_errors
def quote_action(quote_id: int, action: str):
    """POST /api/quotes/<id>/{submit,validate,reject-validation,send,accept,decline,expire,reminder}"""
    if action not in QUOTE_ACTIONS:
        return {"error": f"Unknown quote action: {action}"}, 404
    engine_action, fields = QUOTE_ACTIONS[action]
    data = read_payload(optional=fields)
    return result_response(g.engine.transition("quote", quote_id, engine_action, **data))
