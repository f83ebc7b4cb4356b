# backend/maroc_billing/routes/proformas.py
"""
Proforma invoice API routes.
"""
from flask import Blueprint, g, request

from ..decorators import require_company
from .common import handle_payload_errors, list_response, read_payload, result_response

proformas_bp = Blueprint("proformas", __name__, url_prefix="/api/proformas")


@proformas_bp.get("")
@require_company
def list_proformas():
    return list_response(g.engine.list_proformas(status=request.args.get("status")))


@proformas_bp.route("", methods=["POST"])
@require_company
@handle_payload_errors
def create_proforma():
    data = read_payload(required=("client_id", "items"), optional=("date", "valid_until", "notes"))
    return result_response(g.engine.create_proforma(**data), 201)


@proformas_bp.get("/<int:proforma_id>")
@require_company
def get_proforma(proforma_id: int):
    return result_response(g.engine.get_proforma(proforma_id))


@proformas_bp.route("/<int:proforma_id>", methods=["PATCH"])
@require_company
@handle_payload_errors
def update_proforma(proforma_id: int):
    data = read_payload(optional=("client_id", "items", "valid_until", "notes"))
    return result_response(g.engine.update_proforma(proforma_id, **data))


@proformas_bp.route("/<int:proforma_id>", methods=["DELETE"])
@require_company
def delete_proforma(proforma_id: int):
    return result_response(g.engine.delete_proforma(proforma_id), serialize=lambda _: {"deleted": True})


@proformas_bp.route("/<int:proforma_id>/send", methods=["POST"])
@require_company
@handle_payload_errors
def send_proforma(proforma_id: int):
    data = read_payload(optional=("recipients", "subject"))
    return result_response(g.engine.transition("proforma", proforma_id, "send", **data))


@proformas_bp.route("/<int:proforma_id>/cancel", methods=["POST"])
@require_company
def cancel_proforma(proforma_id: int):
    return result_response(g.engine.transition("proforma", proforma_id, "cancel"))


@proformas_bp.route("/<int:proforma_id>/expire", methods=["POST"])
@require_company
def expire_proforma(proforma_id: int):
    return result_response(g.engine.transition("proforma", proforma_id, "expire"))


@proformas_bp.route("/<int:proforma_id>/convert", methods=["POST"])
@require_company
@handle_payload_errors
def convert_proforma(proforma_id: int):
    data = read_payload(optional=("date", "due_date", "notes", "terms", "has_fiscal_stamp", "stock_location_id"))
    result = g.engine.transition("proforma", proforma_id, "convert", **data)
    return result_response(result, 201, serialize=lambda pair: {
        "proforma": pair[0].to_dict(),
        "invoice": pair[1].to_dict(),
    })
