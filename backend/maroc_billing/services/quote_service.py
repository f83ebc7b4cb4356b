# Overview: Service-layer operations for quotes (devis); validation workflow, reminders, expiry and conversion.

"""
Quote Service

LIFECYCLE (see lifecycle_service.QUOTE_TRANSITIONS):
    draft -> pending_validation -> draft (validated or sent back)
    draft | pending_validation | awaiting_acceptance -> awaiting_acceptance (send)
    awaiting_acceptance -> {accepted, rejected, expired}
    accepted -> converted

REMINDERS:
- A quote sent with reminder_enabled gets
  next_reminder_date = expiry_date - reminder_days.
- process_quote_reminders(now) logs a reminder EmailHistoryEntry for every
  awaiting quote whose next_reminder_date has passed, then pushes the date by
  QUOTE_REMINDER_CADENCE_DAYS. Reminders stop at expiry.
"""

from __future__ import annotations

import logging

from flask import current_app

from ..extensions import db
from ..models import Quote
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

ENTITY = "quote"


def get_quote(company_id: int, quote_id: int, *, lock: bool = False) -> Quote:
    return get_document(Quote, ENTITY, company_id, quote_id, lock=lock)


def list_quotes(company_id: int, status: str | None = None) -> list[Quote]:
    query = db.session.query(Quote).filter_by(company_id=company_id)
    if status:
        query = query.filter(Quote.status == status)
    return query.order_by(Quote.date.desc(), Quote.id.desc()).all()


def _validate_reminder_days(value) -> int | None:
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValidationError("reminder_days must be a positive integer", field="reminder_days")
    return value


def _schedule_reminder(quote: Quote) -> None:
    if quote.reminder_enabled and quote.status == lc.QUOTE_AWAITING_ACCEPTANCE:
        days = quote.reminder_days or current_app.config["QUOTE_DEFAULT_REMINDER_DAYS"]
        quote.next_reminder_date = add_days(quote.expiry_date, -days)
    else:
        quote.next_reminder_date = None


def create_quote(
    company_id: int,
    *,
    client_id: int,
    items,
    date=None,
    expiry_date=None,
    notes: str | None = None,
    reminder_enabled: bool = False,
    reminder_days: int | None = None,
) -> Quote:
    get_client(company_id, client_id)
    lines = build_line_inputs(company_id, client_id, items)

    quote_date = parse_date(date, "date") or utcnow()
    expiry = parse_date(expiry_date, "expiry_date")
    if expiry is None:
        expiry = add_days(quote_date, current_app.config["QUOTE_VALIDITY_DAYS"])
    if expiry < quote_date:
        raise ValidationError("expiry_date cannot be before the quote date", field="expiry_date")

    quote = Quote(
        company_id=company_id,
        client_id=client_id,
        number=next_document_number(company_id=company_id, document_type=ENTITY, year=quote_date.year),
        date=quote_date,
        expiry_date=expiry,
        status=lc.QUOTE_DRAFT,
        notes=notes,
        reminder_enabled=bool(reminder_enabled),
        reminder_days=_validate_reminder_days(reminder_days),
    )
    db.session.add(quote)
    db.session.flush()
    replace_lines(quote, ENTITY, lines)
    db.session.flush()
    logger.info("Quote %s created for client %s (total=%s)", quote.number, client_id, quote.total_cents)
    return quote


def update_quote(company_id: int, quote_id: int, **changes) -> Quote:
    """Edit a quote that has not been answered yet. Editing drops any prior validation."""
    quote = get_quote(company_id, quote_id, lock=True)
    lc.require_transition(ENTITY, quote, "edit")

    if changes.get("client_id") is not None:
        get_client(company_id, changes["client_id"])
        quote.client_id = changes["client_id"]
    if "notes" in changes:
        quote.notes = changes["notes"]
    if changes.get("date") is not None:
        quote.date = parse_date(changes["date"], "date")
    if changes.get("expiry_date") is not None:
        quote.expiry_date = parse_date(changes["expiry_date"], "expiry_date")
    if changes.get("items") is not None:
        replace_lines(quote, ENTITY, build_line_inputs(company_id, quote.client_id, changes["items"]))
        quote.is_validated = False
        quote.validated_at = None

    _schedule_reminder(quote)
    touch(quote)
    db.session.flush()
    return quote


def delete_quote(company_id: int, quote_id: int) -> None:
    quote = get_quote(company_id, quote_id, lock=True)
    lc.require_transition(ENTITY, quote, "delete")
    db.session.delete(quote)
    db.session.flush()
    logger.info("Draft quote %s deleted", quote.number)


def submit_for_validation(company_id: int, quote_id: int) -> Quote:
    quote = get_quote(company_id, quote_id, lock=True)
    quote.status = lc.require_transition(ENTITY, quote, "submit_for_validation")
    quote.is_validated = False
    touch(quote)
    db.session.flush()
    logger.info("Quote %s submitted for validation", quote.number)
    return quote


def validate_quote(company_id: int, quote_id: int, note: str | None = None) -> Quote:
    """Internal approval. The quote returns to draft and is not sent."""
    quote = get_quote(company_id, quote_id, lock=True)
    quote.status = lc.require_transition(ENTITY, quote, "validate")
    quote.is_validated = True
    quote.validated_at = utcnow()
    quote.validation_note = note
    touch(quote)
    db.session.flush()
    logger.info("Quote %s validated", quote.number)
    return quote


def reject_validation(company_id: int, quote_id: int, note: str | None = None) -> Quote:
    quote = get_quote(company_id, quote_id, lock=True)
    quote.status = lc.require_transition(ENTITY, quote, "reject_validation")
    quote.is_validated = False
    quote.validated_at = None
    quote.validation_note = note
    touch(quote)
    db.session.flush()
    logger.info("Quote %s sent back to draft by validation", quote.number)
    return quote


def send_quote(
    company_id: int,
    quote_id: int,
    *,
    recipients: list[str] | None = None,
    subject: str | None = None,
    reminder_enabled: bool | None = None,
    reminder_days: int | None = None,
) -> Quote:
    quote = get_quote(company_id, quote_id, lock=True)
    quote.status = lc.require_transition(ENTITY, quote, "send")
    if reminder_enabled is not None:
        quote.reminder_enabled = bool(reminder_enabled)
    if reminder_days is not None:
        quote.reminder_days = _validate_reminder_days(reminder_days)

    quote.sent_at = utcnow()
    _schedule_reminder(quote)
    touch(quote)
    record_email(
        company_id, ENTITY, quote.id,
        recipients=recipients if recipients is not None else default_recipients(quote),
        subject=subject or f"Devis {quote.number}",
    )
    db.session.flush()
    logger.info("Quote %s sent (next reminder %s)", quote.number, quote.next_reminder_date)
    return quote


def configure_reminder(company_id: int, quote_id: int, *, enabled: bool, days: int | None = None) -> Quote:
    quote = get_quote(company_id, quote_id, lock=True)
    lc.require_transition(ENTITY, quote, "configure_reminder")
    quote.reminder_enabled = bool(enabled)
    if days is not None:
        quote.reminder_days = _validate_reminder_days(days)
    _schedule_reminder(quote)
    touch(quote)
    db.session.flush()
    return quote


def _answer(company_id: int, quote_id: int, action: str) -> Quote:
    quote = get_quote(company_id, quote_id, lock=True)
    quote.status = lc.require_transition(ENTITY, quote, action)
    quote.next_reminder_date = None
    if action == "accept":
        quote.accepted_at = utcnow()
    touch(quote)
    db.session.flush()
    logger.info("Quote %s -> %s", quote.number, quote.status)
    return quote


def accept_quote(company_id: int, quote_id: int) -> Quote:
    return _answer(company_id, quote_id, "accept")


def decline_quote(company_id: int, quote_id: int) -> Quote:
    return _answer(company_id, quote_id, "decline")


def expire_quote(company_id: int, quote_id: int) -> Quote:
    return _answer(company_id, quote_id, "expire")


def convert_quote_to_invoice(company_id: int, quote_id: int, **invoice_options):
    """accepted -> converted. Creates a draft invoice carrying the quote's lines."""
    quote = get_quote(company_id, quote_id, lock=True)
    target = lc.require_transition(ENTITY, quote, "convert")

    invoice = create_invoice(
        company_id,
        client_id=quote.client_id,
        lines=copy_lines(quote),
        notes=invoice_options.pop("notes", quote.notes),
        quote_id=quote.id,
        **invoice_options,
    )
    quote.status = target
    quote.converted_invoice_id = invoice.id
    touch(quote)
    db.session.flush()
    logger.info("Quote %s converted to invoice %s", quote.number, invoice.number)
    return quote, invoice


def expire_quotes(company_id: int | None = None, now=None) -> list[int]:
    """Awaiting quotes past their expiry date become expired. Returns the ids."""
    now = parse_date(now, "now") or utcnow()
    query = db.session.query(Quote).filter(
        Quote.status == lc.QUOTE_AWAITING_ACCEPTANCE,
        Quote.expiry_date < now,
    )
    if company_id is not None:
        query = query.filter(Quote.company_id == company_id)

    expired = []
    for quote in query.order_by(Quote.id).all():
        quote.status = lc.QUOTE_EXPIRED
        quote.next_reminder_date = None
        touch(quote)
        expired.append(quote.id)
    db.session.flush()
    if expired:
        logger.info("Quote expiry sweep expired %s quotes", len(expired))
    return expired


def process_quote_reminders(company_id: int | None = None, now=None) -> list[int]:
    """Log one reminder per due quote and reschedule it. Returns the reminded quote ids."""
    now = parse_date(now, "now") or utcnow()
    cadence = current_app.config["QUOTE_REMINDER_CADENCE_DAYS"]
    query = db.session.query(Quote).filter(
        Quote.status == lc.QUOTE_AWAITING_ACCEPTANCE,
        Quote.reminder_enabled.is_(True),
        Quote.next_reminder_date.isnot(None),
        Quote.next_reminder_date <= now,
    )
    if company_id is not None:
        query = query.filter(Quote.company_id == company_id)

    reminded = []
    for quote in query.order_by(Quote.id).all():
        if quote.expiry_date < now:
            quote.next_reminder_date = None
            continue
        record_email(
            quote.company_id, ENTITY, quote.id,
            kind="reminder",
            recipients=default_recipients(quote),
            subject=f"Rappel: devis {quote.number}",
        )
        quote.last_reminder_at = now
        next_date = add_days(now, cadence)
        quote.next_reminder_date = next_date if next_date <= quote.expiry_date else None
        touch(quote)
        reminded.append(quote.id)
    db.session.flush()
    if reminded:
        logger.info("Sent %s quote reminders", len(reminded))
    return reminded
