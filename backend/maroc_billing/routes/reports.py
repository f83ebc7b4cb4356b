# backend/maroc_billing/routes/reports.py
"""
Reporting API routes. Read-only; no locks taken.
"""
from flask import Blueprint, g, request

from ..decorators import require_company
from ..validation import coerce_int
from .common import handle_payload_errors, result_response

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range_args() -> dict:
    return {"start": request.args.get("start"), "end": request.args.get("end")}


@reports_bp.get("/vat")
@require_company
def vat_report():
    """GET /api/reports/vat?start=2026-01-01&end=2026-03-31&group_by=month"""
    return result_response(g.engine.get_vat_report(group_by=request.args.get("group_by", "month"), **_range_args()))


@reports_bp.get("/top-clients")
@require_company
@handle_payload_errors
def top_clients():
    limit = coerce_int("limit", request.args.get("limit", "10"))
    result = g.engine.get_top_clients(limit=limit, **_range_args())
    return result_response(result, serialize=lambda rows: {"items": rows})


@reports_bp.get("/deposits")
@require_company
def deposits():
    return result_response(g.engine.get_advance_payment_report())


@reports_bp.get("/invoice-stats")
@require_company
def invoice_stats():
    return result_response(g.engine.get_invoice_stats(**_range_args()))


@reports_bp.get("/clients/<int:client_id>/statement")
@require_company
def client_statement(client_id: int):
    return result_response(g.engine.get_client_statement(client_id, **_range_args()))
