# Overview: Service-layer operations for proforma invoices; informational documents with no stock or ledger effect.

from __future__ import annotations

import logging

from flask import current_app

from ..extensions import db
from ..models import ProformaInvoice
from maroc_billing.time_utils import add_days, utcnow
from . import lifecycle_service as lc
from .document_service import (
    build_line_inputs,
    copy_lines,
    default_recipients,
    get_client,
    get_document,
    parse_date,
    record_email,
    replace_lines,
    touch,
)
from .errors import ValidationError
from .invoice_service import create_invoice
from .sequence_service import next_document_number

logger = logging.getLogger(__name__)

ENTITY = "proforma"


def get_proforma(company_id: int, proforma_id: int, *, lock: bool = False) -> ProformaInvoice:
    return get_document(ProformaInvoice, ENTITY, company_id, proforma_id, lock=lock)


def list_proformas(company_id: int, status: str | None = None) -> list[ProformaInvoice]:
    query = db.session.query(ProformaInvoice).filter_by(company_id=company_id)
    if status:
        query = query.filter(ProformaInvoice.status == status)
    return query.order_by(ProformaInvoice.date.desc(), ProformaInvoice.id.desc()).all()


def create_proforma(
    company_id: int,
    *,
    client_id: int,
    items,
    date=None,
    valid_until=None,
    notes: str | None = None,
) -> ProformaInvoice:
    get_client(company_id, client_id)
    lines = build_line_inputs(company_id, client_id, items)

    proforma_date = parse_date(date, "date") or utcnow()
    until = parse_date(valid_until, "valid_until")
    if until is None:
        until = add_days(proforma_date, current_app.config["QUOTE_VALIDITY_DAYS"])
    if until < proforma_date:
        raise ValidationError("valid_until cannot be before the proforma date", field="valid_until")

    proforma = ProformaInvoice(
        company_id=company_id,
        client_id=client_id,
        number=next_document_number(company_id=company_id, document_type=ENTITY, year=proforma_date.year),
        date=proforma_date,
        valid_until=until,
        status=lc.PROFORMA_DRAFT,
        notes=notes,
    )
    db.session.add(proforma)
    db.session.flush()
    replace_lines(proforma, ENTITY, lines)
    db.session.flush()
    logger.info("Proforma %s created for client %s", proforma.number, client_id)
    return proforma


def update_proforma(company_id: int, proforma_id: int, **changes) -> ProformaInvoice:
    proforma = get_proforma(company_id, proforma_id, lock=True)
    lc.require_transition(ENTITY, proforma, "edit")

    if changes.get("client_id") is not None:
        get_client(company_id, changes["client_id"])
        proforma.client_id = changes["client_id"]
    if "notes" in changes:
        proforma.notes = changes["notes"]
    if changes.get("valid_until") is not None:
        proforma.valid_until = parse_date(changes["valid_until"], "valid_until")
    if changes.get("items") is not None:
        replace_lines(proforma, ENTITY, build_line_inputs(company_id, proforma.client_id, changes["items"]))

    touch(proforma)
    db.session.flush()
    return proforma


def delete_proforma(company_id: int, proforma_id: int) -> None:
    proforma = get_proforma(company_id, proforma_id, lock=True)
    lc.require_transition(ENTITY, proforma, "delete")
    db.session.delete(proforma)
    db.session.flush()


def send_proforma(
    company_id: int,
    proforma_id: int,
    *,
    recipients: list[str] | None = None,
    subject: str | None = None,
) -> ProformaInvoice:
    proforma = get_proforma(company_id, proforma_id, lock=True)
    proforma.status = lc.require_transition(ENTITY, proforma, "send")
    proforma.sent_at = utcnow()
    touch(proforma)
    record_email(
        company_id, ENTITY, proforma.id,
        recipients=recipients if recipients is not None else default_recipients(proforma),
        subject=subject or f"Facture proforma {proforma.number}",
    )
    db.session.flush()
    logger.info("Proforma %s sent", proforma.number)
    return proforma


def _simple_transition(company_id: int, proforma_id: int, action: str) -> ProformaInvoice:
    proforma = get_proforma(company_id, proforma_id, lock=True)
    proforma.status = lc.require_transition(ENTITY, proforma, action)
    touch(proforma)
    db.session.flush()
    logger.info("Proforma %s -> %s", proforma.number, proforma.status)
    return proforma


def cancel_proforma(company_id: int, proforma_id: int) -> ProformaInvoice:
    return _simple_transition(company_id, proforma_id, "cancel")


def expire_proforma(company_id: int, proforma_id: int) -> ProformaInvoice:
    return _simple_transition(company_id, proforma_id, "expire")


def convert_proforma_to_invoice(company_id: int, proforma_id: int, **invoice_options):
    """sent -> converted. The new draft invoice copies the lines; stock moves only when it is sent."""
    proforma = get_proforma(company_id, proforma_id, lock=True)
    target = lc.require_transition(ENTITY, proforma, "convert")

    invoice = create_invoice(
        company_id,
        client_id=proforma.client_id,
        lines=copy_lines(proforma),
        notes=invoice_options.pop("notes", proforma.notes),
        proforma_id=proforma.id,
        **invoice_options,
    )
    proforma.status = target
    proforma.converted_invoice_id = invoice.id
    proforma.converted_at = utcnow()
    touch(proforma)
    db.session.flush()
    logger.info("Proforma %s converted to invoice %s", proforma.number, invoice.number)
    return proforma, invoice
