# Overview: Service-layer operations for credit notes (avoirs); issue, cancel and apply against invoices or refunds.

"""
Credit Note Service

LIFECYCLE (see lifecycle_service.CREDIT_NOTE_TRANSITIONS):
    draft -> issued -> applied
    draft | issued (nothing applied yet) -> cancelled

CREDIT CONSERVATION:
- Once issued: applied_amount_cents + remaining_amount_cents == total_cents.
- remaining_amount_cents never goes below zero; an application larger than
  the remaining credit fails with InsufficientCreditRemaining.
- Each application targets exactly one of: an invoice, or a refund.
- The credit note flips to applied exactly when remaining reaches zero.
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..extensions import db
from ..models import CreditNote, CreditNoteApplication, Invoice
from maroc_billing.time_utils import utcnow
from . import lifecycle_service as lc
from .document_service import (
    build_line_inputs,
    copy_lines,
    get_document,
    parse_date,
    replace_lines,
    touch,
)
from .errors import InsufficientCreditRemainingError, InvalidStateError, ValidationError
from .invoice_service import get_invoice, recompute_settlement
from .payment_service import VALID_PAYMENT_METHODS
from .sequence_service import next_document_number
from .stock_service import MOVEMENT_RETURN_CUSTOMER, MOVEMENT_SALE, create_stock_movements_for_invoice

logger = logging.getLogger(__name__)

ENTITY = "credit_note"

REASON_DEFECTIVE = "defective"
REASON_MISTAKE = "mistake"
REASON_GOODWILL = "goodwill"
REASON_RETURN = "return"
REASON_OTHER = "other"

VALID_REASONS = (REASON_DEFECTIVE, REASON_MISTAKE, REASON_GOODWILL, REASON_RETURN, REASON_OTHER)

# Invoices that can still receive credit
CREDITABLE_INVOICE_STATUSES = (lc.INVOICE_SENT, lc.INVOICE_PARTIAL, lc.INVOICE_OVERDUE, lc.INVOICE_PAID)
SETTLEABLE_INVOICE_STATUSES = (lc.INVOICE_SENT, lc.INVOICE_PARTIAL, lc.INVOICE_OVERDUE)


def get_credit_note(company_id: int, credit_note_id: int, *, lock: bool = False) -> CreditNote:
    return get_document(CreditNote, ENTITY, company_id, credit_note_id, lock=lock)


def list_credit_notes(company_id: int, invoice_id: int | None = None, status: str | None = None) -> list[CreditNote]:
    query = db.session.query(CreditNote).filter_by(company_id=company_id)
    if invoice_id:
        query = query.filter(CreditNote.invoice_id == invoice_id)
    if status:
        query = query.filter(CreditNote.status == status)
    return query.order_by(CreditNote.date.desc(), CreditNote.id.desc()).all()


def _validate_reason(reason: str) -> str:
    if reason not in VALID_REASONS:
        raise ValidationError(f"reason must be one of {VALID_REASONS}", field="reason")
    return reason


def _check_credit_ceiling(credit_note: CreditNote, invoice: Invoice) -> None:
    """All non-cancelled credit notes of an invoice together stay within its total."""
    other_cents = (
        db.session.query(func.coalesce(func.sum(CreditNote.total_cents), 0))
        .filter(
            CreditNote.company_id == invoice.company_id,
            CreditNote.invoice_id == invoice.id,
            CreditNote.id != credit_note.id,
            CreditNote.status != lc.CREDIT_NOTE_CANCELLED,
        )
        .scalar()
    )
    if credit_note.total_cents + other_cents > invoice.total_cents:
        raise ValidationError(
            "Credit notes cannot exceed the invoice total",
            field="items",
            total_cents=credit_note.total_cents,
            already_credited_cents=other_cents,
            invoice_total_cents=invoice.total_cents,
        )


def create_credit_note(
    company_id: int,
    *,
    invoice_id: int,
    items=None,
    reason: str = REASON_RETURN,
    reason_description: str | None = None,
    affects_stock: bool = False,
    notes: str | None = None,
    date=None,
) -> CreditNote:
    """
    Draft a credit note against an invoice. Without items, every invoice line
    is credited in full.
    """
    invoice = get_invoice(company_id, invoice_id)
    if invoice.status not in CREDITABLE_INVOICE_STATUSES:
        raise InvalidStateError("invoice", invoice.id, invoice.status, "credit")
    _validate_reason(reason)

    if items is None:
        lines = copy_lines(invoice)
    else:
        lines = build_line_inputs(company_id, invoice.client_id, items)

    credit_date = parse_date(date, "date") or utcnow()
    credit_note = CreditNote(
        company_id=company_id,
        client_id=invoice.client_id,
        invoice_id=invoice.id,
        number=next_document_number(company_id=company_id, document_type=ENTITY, year=credit_date.year),
        date=credit_date,
        status=lc.CREDIT_NOTE_DRAFT,
        reason=reason,
        reason_description=reason_description,
        affects_stock=bool(affects_stock),
        notes=notes,
    )
    db.session.add(credit_note)
    db.session.flush()
    replace_lines(credit_note, ENTITY, lines)

    _check_credit_ceiling(credit_note, invoice)
    db.session.flush()
    logger.info("Credit note %s drafted against invoice %s (total=%s)",
                credit_note.number, invoice.number, credit_note.total_cents)
    return credit_note


def update_credit_note(company_id: int, credit_note_id: int, **changes) -> CreditNote:
    credit_note = get_credit_note(company_id, credit_note_id, lock=True)
    lc.require_transition(ENTITY, credit_note, "edit")

    if "reason" in changes and changes["reason"] is not None:
        credit_note.reason = _validate_reason(changes["reason"])
    for field in ("reason_description", "notes"):
        if field in changes:
            setattr(credit_note, field, changes[field])
    if "affects_stock" in changes:
        credit_note.affects_stock = bool(changes["affects_stock"])
    if changes.get("items") is not None:
        replace_lines(credit_note, ENTITY, build_line_inputs(company_id, credit_note.client_id, changes["items"]))
        _check_credit_ceiling(credit_note, credit_note.invoice)

    touch(credit_note)
    db.session.flush()
    return credit_note


def delete_credit_note(company_id: int, credit_note_id: int) -> None:
    credit_note = get_credit_note(company_id, credit_note_id, lock=True)
    lc.require_transition(ENTITY, credit_note, "delete")
    db.session.delete(credit_note)
    db.session.flush()


def issue_credit_note(company_id: int, credit_note_id: int) -> CreditNote:
    """draft -> issued. Fixes the remaining credit and returns goods to stock when asked to."""
    credit_note = get_credit_note(company_id, credit_note_id, lock=True)
    target = lc.require_transition(ENTITY, credit_note, "issue")
    invoice = credit_note.invoice
    if invoice.status not in CREDITABLE_INVOICE_STATUSES:
        raise InvalidStateError("invoice", invoice.id, invoice.status, "credit")

    if credit_note.affects_stock:
        movements = create_stock_movements_for_invoice(
            company_id,
            credit_note,
            location_id=credit_note.invoice.stock_location_id,
            skip_check=True,
            movement_type=MOVEMENT_RETURN_CUSTOMER,
            reference_type=ENTITY,
        )
        credit_note.stock_adjusted = bool(movements)

    credit_note.issued_at = utcnow()
    credit_note.applied_amount_cents = 0
    credit_note.remaining_amount_cents = credit_note.total_cents
    credit_note.is_fully_applied = credit_note.total_cents == 0
    # Nothing left to apply
    credit_note.status = lc.CREDIT_NOTE_APPLIED if credit_note.is_fully_applied else target
    touch(credit_note)
    db.session.flush()
    logger.info("Credit note %s issued (remaining=%s)", credit_note.number, credit_note.remaining_amount_cents)
    return credit_note


def cancel_credit_note(company_id: int, credit_note_id: int) -> CreditNote:
    credit_note = get_credit_note(company_id, credit_note_id, lock=True)
    target = lc.require_transition(ENTITY, credit_note, "cancel")
    if credit_note.applied_amount_cents:
        raise InvalidStateError(ENTITY, credit_note.id, credit_note.status, "cancel")

    if credit_note.stock_adjusted:
        # Goods that came back leave stock again
        create_stock_movements_for_invoice(
            company_id,
            credit_note,
            location_id=credit_note.invoice.stock_location_id,
            movement_type=MOVEMENT_SALE,
            reference_type="credit_note_cancellation",
        )
        credit_note.stock_adjusted = False

    credit_note.status = target
    credit_note.cancelled_at = utcnow()
    credit_note.remaining_amount_cents = 0
    touch(credit_note)
    db.session.flush()
    logger.info("Credit note %s cancelled", credit_note.number)
    return credit_note


def apply_credit_note(
    company_id: int,
    credit_note_id: int,
    amount_cents: int,
    target_invoice_id: int | None = None,
    refund_method: str | None = None,
    refund_reference: str | None = None,
    date=None,
) -> CreditNoteApplication:
    """
    Consume part of an issued credit note against an invoice or as a refund.

    Raises:
        InvalidStateError: credit note not issued, or target invoice not open
        ValidationError: both or neither target given, bad amount or method
        InsufficientCreditRemainingError: amount larger than the remaining credit
    """
    credit_note = get_credit_note(company_id, credit_note_id, lock=True)
    lc.require_transition(ENTITY, credit_note, "apply")

    if (target_invoice_id is None) == (refund_method is None):
        raise ValidationError(
            "Exactly one of target_invoice_id or refund_method is required",
            field="target_invoice_id",
        )
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
        raise ValidationError("amount_cents must be a positive integer", field="amount_cents")
    if amount_cents > credit_note.remaining_amount_cents:
        logger.warning("Credit note %s: requested %s, remaining %s",
                       credit_note.number, amount_cents, credit_note.remaining_amount_cents)
        raise InsufficientCreditRemainingError(credit_note.id, amount_cents, credit_note.remaining_amount_cents)

    target_invoice = None
    if target_invoice_id is not None:
        target_invoice = get_invoice(company_id, target_invoice_id, lock=True)
        if target_invoice.client_id != credit_note.client_id:
            raise ValidationError("Credit can only be applied to an invoice of the same client",
                                  field="target_invoice_id")
        if target_invoice.status not in SETTLEABLE_INVOICE_STATUSES:
            raise InvalidStateError("invoice", target_invoice.id, target_invoice.status, "apply_credit")
        if amount_cents > target_invoice.balance_due_cents:
            raise ValidationError(
                "Credit exceeds the invoice balance due",
                field="amount_cents",
                balance_due_cents=target_invoice.balance_due_cents,
            )
    elif refund_method not in VALID_PAYMENT_METHODS:
        raise ValidationError(f"refund_method must be one of {VALID_PAYMENT_METHODS}", field="refund_method")

    application = CreditNoteApplication(
        company_id=company_id,
        credit_note_id=credit_note.id,
        amount_cents=amount_cents,
        date=parse_date(date, "date") or utcnow(),
        target_invoice_id=target_invoice_id,
        is_refund=target_invoice_id is None,
        refund_method=refund_method,
        refund_reference=refund_reference,
    )
    db.session.add(application)

    credit_note.applied_amount_cents += amount_cents
    credit_note.remaining_amount_cents = credit_note.total_cents - credit_note.applied_amount_cents
    if credit_note.remaining_amount_cents == 0:
        credit_note.status = lc.CREDIT_NOTE_APPLIED
        credit_note.is_fully_applied = True
    touch(credit_note)

    if target_invoice is not None:
        _link_credit(target_invoice, credit_note, amount_cents)

    db.session.flush()
    logger.info(
        "Credit note %s applied %s to %s (remaining=%s)",
        credit_note.number, amount_cents,
        f"invoice {target_invoice.number}" if target_invoice is not None else f"refund via {refund_method}",
        credit_note.remaining_amount_cents,
    )
    return application


def _link_credit(invoice: Invoice, credit_note: CreditNote, amount_cents: int) -> None:
    ids = list(invoice.credit_note_ids or [])
    if credit_note.id not in ids:
        ids.append(credit_note.id)
    # Reassign so the JSON column is flagged dirty
    invoice.credit_note_ids = ids
    invoice.has_credit_notes = True
    invoice.credit_note_total_cents = (invoice.credit_note_total_cents or 0) + amount_cents
    recompute_settlement(invoice)
