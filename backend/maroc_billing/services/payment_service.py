# Overview: Service-layer operations for invoice payments; recording, cancelling and settlement status.

"""
Payment Processing Service

DESIGN PRINCIPLES:
- Payments are separate from invoices (many-to-one relationship)
- Partial payments: an invoice can be settled over several payments
- Immutable ledger: a payment is never edited; deleting one marks it cancelled
- Derived status: paid amount and invoice status are always recomputed from
  completed payments plus applied credit, never incremented blindly
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Invoice, Payment
from maroc_billing.time_utils import utcnow
from . import lifecycle_service as lc
from .document_service import get_document, parse_date
from .errors import NotFoundError, ValidationError
from .invoice_service import get_invoice, recompute_settlement

logger = logging.getLogger(__name__)


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_BANK = "bank"
METHOD_CHECK = "check"
METHOD_ONLINE = "online"
METHOD_OTHER = "other"

VALID_PAYMENT_METHODS = (
    METHOD_CASH,
    METHOD_BANK,
    METHOD_CHECK,
    METHOD_ONLINE,
    METHOD_OTHER,
)

PAYMENT_STATUS_COMPLETED = "completed"
PAYMENT_STATUS_CANCELLED = "cancelled"


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def create_payment(
    company_id: int,
    invoice_id: int,
    amount_cents: int,
    method: str,
    date=None,
    reference: str | None = None,
    notes: str | None = None,
) -> Payment:
    """
    Record a payment against a sent or partially paid invoice.

    Returns:
        Payment record

    Raises:
        NotFoundError: invoice missing in this company
        InvalidStateError: invoice not sent or partial
        ValidationError: amount not positive, above the balance due, or unknown method
    """
    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {method}. Must be one of {VALID_PAYMENT_METHODS}",
                              field="method")
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
        raise ValidationError("Payment amount must be a positive integer", field="amount_cents")

    invoice = get_invoice(company_id, invoice_id, lock=True)
    lc.require_transition("invoice", invoice, "record_payment")

    if amount_cents > invoice.balance_due_cents:
        logger.warning("Payment of %s rejected on invoice %s (balance %s)",
                       amount_cents, invoice.number, invoice.balance_due_cents)
        raise ValidationError(
            "Payment exceeds the invoice balance due",
            field="amount_cents",
            balance_due_cents=invoice.balance_due_cents,
        )

    payment = Payment(
        company_id=company_id,
        invoice_id=invoice.id,
        amount_cents=amount_cents,
        method=method,
        date=parse_date(date, "date") or utcnow(),
        reference=reference,
        notes=notes,
        status=PAYMENT_STATUS_COMPLETED,
    )
    db.session.add(payment)
    db.session.flush()

    recompute_settlement(invoice)
    logger.info("Payment %s of %s (%s) recorded on invoice %s -> %s",
                payment.id, amount_cents, method, invoice.number, invoice.status)
    return payment


def delete_payment(company_id: int, payment_id: int, reason: str | None = None) -> Payment:
    """
    Cancel a payment and re-derive the invoice's paid amount and status.

    The row stays in place with status=cancelled so the history is kept.
    """
    payment = get_document(Payment, "payment", company_id, payment_id, lock=True)
    if payment.status == PAYMENT_STATUS_CANCELLED:
        raise ValidationError("Payment is already cancelled", field="payment_id")

    invoice = get_invoice(company_id, payment.invoice_id, lock=True)
    if invoice.status == lc.INVOICE_CANCELLED:
        raise ValidationError("Payments of a cancelled invoice cannot be changed", field="payment_id")

    payment.status = PAYMENT_STATUS_CANCELLED
    payment.cancelled_at = utcnow()
    payment.cancellation_reason = reason
    db.session.flush()

    recompute_settlement(invoice)
    logger.info("Payment %s cancelled on invoice %s -> %s", payment.id, invoice.number, invoice.status)
    return payment


def mark_invoice_paid(
    company_id: int,
    invoice_id: int,
    method: str = METHOD_OTHER,
    date=None,
    reference: str | None = None,
) -> Payment:
    """Record one payment for the whole outstanding balance."""
    invoice = get_invoice(company_id, invoice_id, lock=True)
    lc.require_transition("invoice", invoice, "mark_paid")
    balance = invoice.balance_due_cents
    if balance <= 0:
        raise ValidationError("Invoice has no balance due", field="invoice_id")
    return create_payment(company_id, invoice_id, balance, method, date=date, reference=reference,
                          notes="Solde de la facture")


# =============================================================================
# QUERIES
# =============================================================================

def get_invoice_payments(company_id: int, invoice_id: int, include_cancelled: bool = False) -> list[Payment]:
    get_invoice(company_id, invoice_id)
    query = db.session.query(Payment).filter_by(company_id=company_id, invoice_id=invoice_id)
    if not include_cancelled:
        query = query.filter(Payment.status == PAYMENT_STATUS_COMPLETED)
    return query.order_by(Payment.date, Payment.id).all()


def get_payment(company_id: int, payment_id: int) -> Payment:
    payment = db.session.query(Payment).filter_by(id=payment_id, company_id=company_id).first()
    if payment is None:
        raise NotFoundError("payment", payment_id)
    return payment


def get_payment_summary(company_id: int, invoice_id: int) -> dict:
    """
    Settlement view of one invoice.

    Returns:
        dict with total, paid, credit applied, balance due, status and payments
    """
    invoice: Invoice = get_invoice(company_id, invoice_id)
    payments = get_invoice_payments(company_id, invoice_id, include_cancelled=True)
    return {
        "invoice_id": invoice.id,
        "number": invoice.number,
        "status": invoice.status,
        "total_cents": invoice.total_cents,
        "paid_amount_cents": invoice.paid_amount_cents,
        "credit_note_total_cents": invoice.credit_note_total_cents,
        "balance_due_cents": invoice.balance_due_cents,
        "payment_count": sum(1 for p in payments if p.status == PAYMENT_STATUS_COMPLETED),
        "payments": [p.to_dict() for p in payments],
    }
