# Overview: Service-layer operations for invoices; creation, sending, cancellation, deposits and settlement status.

"""
Invoice Service

LIFECYCLE (see lifecycle_service.INVOICE_TRANSITIONS):
    draft -> sent -> {paid, partial, overdue, cancelled}

RULES:
- Only draft invoices are edited or deleted.
- Sending consumes stock for stock-managed lines, all-or-nothing.
- Cancelling an invoice whose stock was consumed puts it back through
  return_customer movements.
- total_cents = calculated total + fiscal stamp (when the invoice carries one).
- Settlement = completed payments + applied credit. Status is derived from it,
  never set directly by callers.

All functions flush but never commit; the engine owns the transaction.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import CreditNote, Invoice, Payment, ProformaInvoice, Quote
from maroc_billing.time_utils import add_days, utcnow
from . import lifecycle_service as lc
from .document_service import (
    build_line_inputs,
    default_recipients,
    get_client,
    get_company,
    get_document,
    parse_date,
    record_email,
    refresh_totals,
    replace_lines,
    touch,
)
from .errors import InvalidStateError, ValidationError
from .sequence_service import next_document_number
from .stock_service import MOVEMENT_RETURN_CUSTOMER, create_stock_movements_for_invoice
from .totals_service import LineInput, percentage_of

logger = logging.getLogger(__name__)

ENTITY = "invoice"


def get_invoice(company_id: int, invoice_id: int, *, lock: bool = False) -> Invoice:
    return get_document(Invoice, ENTITY, company_id, invoice_id, lock=lock)


def list_invoices(company_id: int, status: str | None = None, client_id: int | None = None) -> list[Invoice]:
    query = db.session.query(Invoice).filter_by(company_id=company_id)
    if status:
        query = query.filter(Invoice.status == status)
    if client_id:
        query = query.filter(Invoice.client_id == client_id)
    return query.order_by(Invoice.date.desc(), Invoice.id.desc()).all()


def _fiscal_stamp_amount(company_id: int, explicit: int | None) -> int:
    if explicit is not None:
        if not isinstance(explicit, int) or isinstance(explicit, bool) or explicit < 0:
            raise ValidationError("fiscal_stamp_amount_cents must be a non-negative integer",
                                  field="fiscal_stamp_amount_cents")
        return explicit
    company = get_company(company_id)
    if company.fiscal_stamp_cents is not None:
        return company.fiscal_stamp_cents
    return current_app.config["FISCAL_STAMP_DEFAULT_CENTS"]


def _stamp_cents(invoice: Invoice) -> int:
    return invoice.fiscal_stamp_amount_cents if invoice.has_fiscal_stamp else 0


def _write_lines(invoice: Invoice, lines: list[LineInput]) -> None:
    replace_lines(invoice, ENTITY, lines)
    refresh_totals(invoice, _stamp_cents(invoice))


def create_invoice(
    company_id: int,
    *,
    client_id: int,
    items=None,
    lines: list[LineInput] | None = None,
    date=None,
    due_date=None,
    notes: str | None = None,
    terms: str | None = None,
    has_fiscal_stamp: bool = False,
    fiscal_stamp_amount_cents: int | None = None,
    stock_location_id: int | None = None,
    quote_id: int | None = None,
    proforma_id: int | None = None,
) -> Invoice:
    """
    Create a draft invoice.

    Either raw `items` (API payloads) or already built `lines` (conversions
    from quotes and proformas) are accepted.
    """
    get_client(company_id, client_id)
    if lines is None:
        lines = build_line_inputs(company_id, client_id, items)
    elif not lines:
        raise ValidationError("At least one line item is required", field="items")

    invoice_date = parse_date(date, "date") or utcnow()
    due = parse_date(due_date, "due_date")
    if due is None:
        due = add_days(invoice_date, current_app.config["INVOICE_PAYMENT_TERMS_DAYS"])
    if due < invoice_date:
        raise ValidationError("due_date cannot be before the invoice date", field="due_date")

    invoice = Invoice(
        company_id=company_id,
        client_id=client_id,
        number=next_document_number(company_id=company_id, document_type=ENTITY, year=invoice_date.year),
        date=invoice_date,
        due_date=due,
        status=lc.INVOICE_DRAFT,
        notes=notes,
        terms=terms,
        has_fiscal_stamp=bool(has_fiscal_stamp),
        fiscal_stamp_amount_cents=_fiscal_stamp_amount(company_id, fiscal_stamp_amount_cents) if has_fiscal_stamp else 0,
        stock_location_id=stock_location_id,
        quote_id=quote_id,
        proforma_id=proforma_id,
        credit_note_ids=[],
    )
    db.session.add(invoice)
    db.session.flush()

    _write_lines(invoice, lines)
    db.session.flush()
    logger.info("Invoice %s created for client %s (total=%s)", invoice.number, client_id, invoice.total_cents)
    return invoice


def update_invoice(company_id: int, invoice_id: int, **changes) -> Invoice:
    """Edit a draft invoice. `items` replaces every line."""
    invoice = get_invoice(company_id, invoice_id, lock=True)
    lc.require_transition(ENTITY, invoice, "edit")

    if "client_id" in changes and changes["client_id"] is not None:
        get_client(company_id, changes["client_id"])
        invoice.client_id = changes["client_id"]
    for field in ("notes", "terms", "stock_location_id"):
        if field in changes:
            setattr(invoice, field, changes[field])
    if "date" in changes and changes["date"] is not None:
        invoice.date = parse_date(changes["date"], "date")
    if "due_date" in changes:
        invoice.due_date = parse_date(changes["due_date"], "due_date")
    if "has_fiscal_stamp" in changes:
        invoice.has_fiscal_stamp = bool(changes["has_fiscal_stamp"])
        invoice.fiscal_stamp_amount_cents = (
            _fiscal_stamp_amount(company_id, changes.get("fiscal_stamp_amount_cents"))
            if invoice.has_fiscal_stamp else 0
        )

    if changes.get("items") is not None:
        _write_lines(invoice, build_line_inputs(company_id, invoice.client_id, changes["items"]))
    else:
        refresh_totals(invoice, _stamp_cents(invoice))

    touch(invoice)
    db.session.flush()
    return invoice


def delete_invoice(company_id: int, invoice_id: int) -> None:
    invoice = get_invoice(company_id, invoice_id, lock=True)
    lc.require_transition(ENTITY, invoice, "delete")
    if invoice.deposit_invoice_id:
        raise ValidationError("Delete the deposit invoice first", field="deposit_invoice_id",
                              deposit_invoice_id=invoice.deposit_invoice_id)

    # A deleted deposit frees its main invoice for a new one
    if invoice.deposit_for_invoice_id:
        main = db.session.get(Invoice, invoice.deposit_for_invoice_id)
        if main is not None and main.deposit_invoice_id == invoice.id:
            main.deposit_invoice_id = None
            main.deposit_amount_cents = None
            main.deposit_percentage_bps = None
            db.session.flush()

    _release_origin(invoice)

    db.session.delete(invoice)
    db.session.flush()
    logger.info("Draft invoice %s deleted", invoice.number)


def _release_origin(invoice: Invoice) -> None:
    """A deleted conversion result puts its quote or proforma back to where it was converted from."""
    if invoice.quote_id:
        quote = db.session.get(Quote, invoice.quote_id)
        if quote is not None and quote.converted_invoice_id == invoice.id:
            quote.status = lc.QUOTE_ACCEPTED
            quote.converted_invoice_id = None
            touch(quote)
    if invoice.proforma_id:
        proforma = db.session.get(ProformaInvoice, invoice.proforma_id)
        if proforma is not None and proforma.converted_invoice_id == invoice.id:
            proforma.status = lc.PROFORMA_SENT
            proforma.converted_invoice_id = None
            proforma.converted_at = None
            touch(proforma)
    db.session.flush()


def send_invoice(
    company_id: int,
    invoice_id: int,
    *,
    recipients: list[str] | None = None,
    subject: str | None = None,
    location_id: int | None = None,
    skip_stock_check: bool = False,
) -> Invoice:
    """
    draft -> sent. Consumes stock for every stock-managed line.

    Raises InsufficientStock listing every short product; nothing is written
    in that case.
    """
    invoice = get_invoice(company_id, invoice_id, lock=True)
    target = lc.require_transition(ENTITY, invoice, "send")

    location_id = location_id if location_id is not None else invoice.stock_location_id
    movements = create_stock_movements_for_invoice(
        company_id, invoice, location_id=location_id, skip_check=skip_stock_check,
    )
    invoice.stock_consumed = bool(movements)
    invoice.stock_location_id = location_id

    now = utcnow()
    invoice.status = target
    invoice.sent_at = now
    touch(invoice)
    record_email(
        company_id, ENTITY, invoice.id,
        recipients=recipients if recipients is not None else default_recipients(invoice),
        subject=subject or f"Facture {invoice.number}",
    )
    db.session.flush()
    logger.info("Invoice %s sent (%s stock movements)", invoice.number, len(movements))
    return invoice


def cancel_invoice(company_id: int, invoice_id: int, reason: str | None = None) -> Invoice:
    """
    sent | overdue -> cancelled, restoring consumed stock.

    Refused while an issued or applied credit note stands against the invoice.
    """
    invoice = get_invoice(company_id, invoice_id, lock=True)
    target = lc.require_transition(ENTITY, invoice, "cancel")
    live_credit_note_ids = [
        row.id for row in db.session.query(CreditNote.id).filter(
            CreditNote.company_id == company_id,
            CreditNote.invoice_id == invoice.id,
            CreditNote.status.in_((lc.CREDIT_NOTE_ISSUED, lc.CREDIT_NOTE_APPLIED)),
        ).order_by(CreditNote.id)
    ]
    if live_credit_note_ids:
        raise InvalidStateError(ENTITY, invoice.id, invoice.status, "cancel",
                                credit_note_ids=live_credit_note_ids)

    if invoice.stock_consumed:
        create_stock_movements_for_invoice(
            company_id,
            invoice,
            location_id=invoice.stock_location_id,
            skip_check=True,
            movement_type=MOVEMENT_RETURN_CUSTOMER,
            reference_type="invoice_cancellation",
        )
        invoice.stock_consumed = False

    invoice.status = target
    invoice.cancelled_at = utcnow()
    if reason:
        invoice.notes = f"{invoice.notes}\n{reason}" if invoice.notes else reason
    touch(invoice)
    db.session.flush()
    logger.info("Invoice %s cancelled", invoice.number)
    return invoice


def mark_overdue(company_id: int, invoice_id: int) -> Invoice:
    invoice = get_invoice(company_id, invoice_id, lock=True)
    invoice.status = lc.require_transition(ENTITY, invoice, "mark_overdue")
    touch(invoice)
    db.session.flush()
    logger.info("Invoice %s marked overdue", invoice.number)
    return invoice


def sweep_overdue_invoices(company_id: int | None = None, now=None) -> list[int]:
    """Move every sent invoice whose due date has passed to overdue. Returns the ids."""
    now = parse_date(now, "now") or utcnow()
    query = db.session.query(Invoice).filter(
        Invoice.status == lc.INVOICE_SENT,
        Invoice.due_date.isnot(None),
        Invoice.due_date < now,
    )
    if company_id is not None:
        query = query.filter(Invoice.company_id == company_id)

    swept = []
    for invoice in query.order_by(Invoice.id).all():
        invoice.status = lc.INVOICE_OVERDUE
        touch(invoice)
        swept.append(invoice.id)
    db.session.flush()
    if swept:
        logger.info("Overdue sweep marked %s invoices", len(swept))
    return swept


def create_deposit_invoice(
    company_id: int,
    main_invoice_id: int,
    *,
    percentage_bps: int | None = None,
    amount_cents: int | None = None,
    date=None,
) -> Invoice:
    """
    Create a draft deposit (acompte) invoice for part of a main invoice.

    The deposit is one free-text line at 0% VAT since the VAT is carried by
    the main invoice. Both invoices are linked to each other.
    """
    main = get_invoice(company_id, main_invoice_id, lock=True)
    lc.require_transition(ENTITY, main, "create_deposit")
    if main.is_deposit:
        raise ValidationError("A deposit invoice cannot have its own deposit", field="main_invoice_id")
    if main.deposit_invoice_id:
        raise ValidationError("Invoice already has a deposit invoice", field="main_invoice_id",
                              deposit_invoice_id=main.deposit_invoice_id)

    if amount_cents is None:
        if percentage_bps is None:
            percentage_bps = current_app.config["DEFAULT_DEPOSIT_PERCENTAGE_BPS"]
        if not isinstance(percentage_bps, int) or isinstance(percentage_bps, bool) or not 0 < percentage_bps < 10_000:
            raise ValidationError("percentage_bps must be between 1 and 9999", field="percentage_bps")
        amount_cents = percentage_of(main.total_cents, percentage_bps)
    else:
        if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
            raise ValidationError("amount_cents must be a positive integer", field="amount_cents")
        percentage_bps = (amount_cents * 10_000) // main.total_cents if main.total_cents else 0

    if amount_cents <= 0 or amount_cents >= main.total_cents:
        raise ValidationError("Deposit must be greater than zero and less than the invoice total",
                              field="amount_cents", amount_cents=amount_cents, total_cents=main.total_cents)

    line = LineInput(
        quantity=1,
        unit_price_cents=amount_cents,
        vat_rate_bps=0,
        description=f"Acompte sur facture {main.number}",
    )
    deposit = create_invoice(
        company_id,
        client_id=main.client_id,
        lines=[line],
        date=date,
        notes=f"Acompte {percentage_bps / 100:g}% sur facture {main.number}",
    )
    deposit.is_deposit = True
    deposit.deposit_for_invoice_id = main.id
    deposit.deposit_amount_cents = amount_cents
    deposit.deposit_percentage_bps = percentage_bps

    main.deposit_invoice_id = deposit.id
    main.deposit_amount_cents = amount_cents
    main.deposit_percentage_bps = percentage_bps
    touch(main)
    db.session.flush()
    logger.info("Deposit invoice %s created for %s (%s)", deposit.number, main.number, amount_cents)
    return deposit


def completed_payments_total(invoice: Invoice) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.invoice_id == invoice.id, Payment.status == "completed")
        .scalar()
    )
    return int(total or 0)


def recompute_settlement(invoice: Invoice) -> Invoice:
    """
    Re-derive paid amount and status from payments and applied credit.

    - settled >= total            -> paid
    - 0 < settled < total         -> partial (an overdue invoice stays overdue)
    - nothing settled             -> sent (when it was partial or paid)
    """
    if invoice.status in (lc.INVOICE_DRAFT, lc.INVOICE_CANCELLED):
        raise InvalidStateError(ENTITY, invoice.id, invoice.status, "settle")

    invoice.paid_amount_cents = completed_payments_total(invoice)
    last = (
        db.session.query(func.max(Payment.date))
        .filter(Payment.invoice_id == invoice.id, Payment.status == "completed")
        .scalar()
    )
    invoice.last_payment_date = last

    settled = invoice.settled_amount_cents
    previous = invoice.status
    if settled >= invoice.total_cents and settled > 0:
        invoice.status = lc.INVOICE_PAID
        invoice.paid_at = invoice.paid_at or utcnow()
    elif settled > 0:
        if invoice.status != lc.INVOICE_OVERDUE:
            invoice.status = lc.INVOICE_PARTIAL
        invoice.paid_at = None
    else:
        if invoice.status in (lc.INVOICE_PARTIAL, lc.INVOICE_PAID):
            invoice.status = lc.INVOICE_SENT
        invoice.paid_at = None

    touch(invoice)
    db.session.flush()
    if previous != invoice.status:
        logger.info("Invoice %s status %s -> %s (settled %s/%s)",
                    invoice.number, previous, invoice.status, settled, invoice.total_cents)
    return invoice
