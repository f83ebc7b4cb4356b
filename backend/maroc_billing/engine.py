# Overview: Company-scoped facade over the billing services; one transaction per call, typed results.

"""
Billing Engine

Every public method runs one service operation inside one database
transaction:

- success: commit, return Result(ok=True, value=...)
- BillingError: rollback, return Result(ok=False, error=EngineFailure(...))
- anything else: rollback and re-raise

Concurrency conflicts (OperationalError, StaleDataError) are retried with
backoff by run_with_retry before they ever reach the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from .extensions import db
from .services import (
    count_service,
    credit_note_service,
    invoice_service,
    payment_service,
    proforma_service,
    quote_service,
    reporting_service,
    stock_service,
    tax_service,
)
from .services.concurrency import run_with_retry
from .services.errors import BillingError, ValidationError
from .services.totals_service import calculate_totals

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineFailure:
    kind: str
    message: str
    details: dict = field(default_factory=dict)

    @classmethod
    def from_error(cls, exc: BillingError) -> "EngineFailure":
        return cls(kind=exc.kind, message=exc.message, details=dict(exc.details))

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "details": self.details}


@dataclass(frozen=True)
class Result:
    ok: bool
    value: Any = None
    error: EngineFailure | None = None

    @classmethod
    def success(cls, value=None) -> "Result":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: EngineFailure) -> "Result":
        return cls(ok=False, error=error)

    def unwrap(self):
        """Value of a successful result; raises the failure as a BillingError otherwise."""
        if not self.ok:
            exc = BillingError(self.error.message, **self.error.details)
            exc.kind = self.error.kind
            raise exc
        return self.value


def _payment_on_invoice(company_id, invoice_id, **params):
    return payment_service.create_payment(company_id, invoice_id, **params)


# (document_type, action) -> service function(company_id, document_id, **params)
TRANSITIONS: dict[tuple[str, str], Callable] = {
    ("invoice", "send"): invoice_service.send_invoice,
    ("invoice", "cancel"): invoice_service.cancel_invoice,
    ("invoice", "mark_overdue"): invoice_service.mark_overdue,
    ("invoice", "mark_paid"): payment_service.mark_invoice_paid,
    ("invoice", "record_payment"): _payment_on_invoice,
    ("invoice", "create_deposit"): invoice_service.create_deposit_invoice,
    ("quote", "submit_for_validation"): quote_service.submit_for_validation,
    ("quote", "validate"): quote_service.validate_quote,
    ("quote", "reject_validation"): quote_service.reject_validation,
    ("quote", "send"): quote_service.send_quote,
    ("quote", "accept"): quote_service.accept_quote,
    ("quote", "decline"): quote_service.decline_quote,
    ("quote", "expire"): quote_service.expire_quote,
    ("quote", "convert"): quote_service.convert_quote_to_invoice,
    ("quote", "configure_reminder"): quote_service.configure_reminder,
    ("proforma", "send"): proforma_service.send_proforma,
    ("proforma", "cancel"): proforma_service.cancel_proforma,
    ("proforma", "expire"): proforma_service.expire_proforma,
    ("proforma", "convert"): proforma_service.convert_proforma_to_invoice,
    ("credit_note", "issue"): credit_note_service.issue_credit_note,
    ("credit_note", "cancel"): credit_note_service.cancel_credit_note,
    ("credit_note", "apply"): credit_note_service.apply_credit_note,
    ("inventory", "start"): count_service.start_inventory,
    ("inventory", "record_count"): count_service.record_count,
    ("inventory", "complete"): count_service.complete_inventory,
    ("inventory", "cancel"): count_service.cancel_inventory,
}


class BillingEngine:
    """All billing operations of one company."""

    def __init__(self, company_id: int):
        self.company_id = company_id

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    def _execute(self, operation: Callable, *args, write: bool = True, **kwargs) -> Result:
        def _op():
            value = operation(*args, **kwargs)
            if write:
                db.session.commit()
            return value

        try:
            value = run_with_retry(_op)
        except BillingError as exc:
            db.session.rollback()
            logger.warning("Company %s: %s rejected (%s: %s)",
                           self.company_id, getattr(operation, "__name__", operation), exc.kind, exc.message)
            return Result.failure(EngineFailure.from_error(exc))
        except Exception:
            db.session.rollback()
            raise
        return Result.success(value)

    def _call(self, operation: Callable, *args, **kwargs) -> Result:
        return self._execute(operation, self.company_id, *args, **kwargs)

    def _read(self, operation: Callable, *args, **kwargs) -> Result:
        return self._execute(operation, self.company_id, *args, write=False, **kwargs)

    # ------------------------------------------------------------------
    # taxes and totals
    # ------------------------------------------------------------------

    def resolve_tax(self, product_id: int, client_id: int | None = None) -> Result:
        return self._read(tax_service.resolve_tax, product_id, client_id)

    def calculate_totals(self, items) -> Result:
        return self._execute(calculate_totals, items, write=False)

    def create_tax(self, **params) -> Result:
        return self._call(tax_service.create_tax, **params)

    def create_tax_rule(self, **params) -> Result:
        return self._call(tax_service.create_tax_rule, **params)

    # ------------------------------------------------------------------
    # stock
    # ------------------------------------------------------------------

    def record_stock_movement(self, product_id: int, movement_type: str, quantity: int, **params) -> Result:
        return self._call(stock_service.record_movement, product_id, movement_type, quantity, **params)

    def check_stock(self, items, location_id: int | None = None) -> Result:
        return self._read(stock_service.check_stock, items, location_id)

    def transfer_stock(self, product_id: int, quantity: int, from_location_id: int, to_location_id: int,
                       reason: str | None = None) -> Result:
        return self._call(stock_service.transfer_stock, product_id, quantity, from_location_id, to_location_id,
                          reason)

    def get_product_movements(self, product_id: int, limit: int | None = None) -> Result:
        return self._read(stock_service.get_product_movements, product_id, limit)

    def get_stock_by_location(self, product_id: int) -> Result:
        return self._read(stock_service.get_stock_by_location, product_id)

    def verify_ledger(self, product_id: int) -> Result:
        return self._read(stock_service.verify_ledger, product_id)

    def get_low_stock_products(self) -> Result:
        return self._read(stock_service.get_low_stock_products)

    # ------------------------------------------------------------------
    # documents
    # ------------------------------------------------------------------

    def create_invoice(self, **params) -> Result:
        return self._call(invoice_service.create_invoice, **params)

    def update_invoice(self, invoice_id: int, **changes) -> Result:
        return self._call(invoice_service.update_invoice, invoice_id, **changes)

    def delete_invoice(self, invoice_id: int) -> Result:
        return self._call(invoice_service.delete_invoice, invoice_id)

    def get_invoice(self, invoice_id: int) -> Result:
        return self._read(invoice_service.get_invoice, invoice_id)

    def list_invoices(self, **filters) -> Result:
        return self._read(invoice_service.list_invoices, **filters)

    def create_deposit_invoice(self, main_invoice_id: int, **params) -> Result:
        return self._call(invoice_service.create_deposit_invoice, main_invoice_id, **params)

    def create_quote(self, **params) -> Result:
        return self._call(quote_service.create_quote, **params)

    def update_quote(self, quote_id: int, **changes) -> Result:
        return self._call(quote_service.update_quote, quote_id, **changes)

    def delete_quote(self, quote_id: int) -> Result:
        return self._call(quote_service.delete_quote, quote_id)

    def get_quote(self, quote_id: int) -> Result:
        return self._read(quote_service.get_quote, quote_id)

    def list_quotes(self, **filters) -> Result:
        return self._read(quote_service.list_quotes, **filters)

    def create_proforma(self, **params) -> Result:
        return self._call(proforma_service.create_proforma, **params)

    def update_proforma(self, proforma_id: int, **changes) -> Result:
        return self._call(proforma_service.update_proforma, proforma_id, **changes)

    def delete_proforma(self, proforma_id: int) -> Result:
        return self._call(proforma_service.delete_proforma, proforma_id)

    def get_proforma(self, proforma_id: int) -> Result:
        return self._read(proforma_service.get_proforma, proforma_id)

    def list_proformas(self, **filters) -> Result:
        return self._read(proforma_service.list_proformas, **filters)

    def create_credit_note(self, **params) -> Result:
        return self._call(credit_note_service.create_credit_note, **params)

    def update_credit_note(self, credit_note_id: int, **changes) -> Result:
        return self._call(credit_note_service.update_credit_note, credit_note_id, **changes)

    def delete_credit_note(self, credit_note_id: int) -> Result:
        return self._call(credit_note_service.delete_credit_note, credit_note_id)

    def get_credit_note(self, credit_note_id: int) -> Result:
        return self._read(credit_note_service.get_credit_note, credit_note_id)

    def list_credit_notes(self, **filters) -> Result:
        return self._read(credit_note_service.list_credit_notes, **filters)

    def apply_credit_note(self, credit_note_id: int, amount_cents: int, **params) -> Result:
        return self._call(credit_note_service.apply_credit_note, credit_note_id, amount_cents, **params)

    def transition(self, document_type: str, document_id: int, action: str, **params) -> Result:
        """Run a lifecycle action such as ("invoice", 12, "send") or ("quote", 3, "convert")."""
        operation = TRANSITIONS.get((document_type, action))
        if operation is None:
            return Result.failure(EngineFailure.from_error(ValidationError(
                f"Unknown action {action!r} for {document_type!r}",
                field="action",
                document_type=document_type,
                action=action,
            )))
        return self._call(operation, document_id, **params)

    # ------------------------------------------------------------------
    # payments
    # ------------------------------------------------------------------

    def create_payment(self, invoice_id: int, amount_cents: int, method: str, **params) -> Result:
        return self._call(payment_service.create_payment, invoice_id, amount_cents, method, **params)

    def delete_payment(self, payment_id: int, reason: str | None = None) -> Result:
        return self._call(payment_service.delete_payment, payment_id, reason)

    def mark_invoice_paid(self, invoice_id: int, **params) -> Result:
        return self._call(payment_service.mark_invoice_paid, invoice_id, **params)

    def get_payment_summary(self, invoice_id: int) -> Result:
        return self._read(payment_service.get_payment_summary, invoice_id)

    # ------------------------------------------------------------------
    # inventory counts
    # ------------------------------------------------------------------

    def create_inventory(self, location_id: int | None = None, notes: str | None = None) -> Result:
        return self._call(count_service.create_inventory, location_id, notes)

    def get_inventory(self, inventory_id: int) -> Result:
        return self._read(count_service.get_inventory, inventory_id)

    def start_inventory(self, inventory_id: int) -> Result:
        return self._call(count_service.start_inventory, inventory_id)

    def record_count(self, inventory_id: int, product_id: int, actual_quantity: int) -> Result:
        return self._call(count_service.record_count, inventory_id, product_id, actual_quantity)

    def complete_inventory(self, inventory_id: int, apply_adjustments: bool = True) -> Result:
        return self._call(count_service.complete_inventory, inventory_id, apply_adjustments)

    # ------------------------------------------------------------------
    # sweeps
    # ------------------------------------------------------------------

    def sweep_overdue_invoices(self, now=None) -> Result:
        return self._call(invoice_service.sweep_overdue_invoices, now)

    def expire_quotes(self, now=None) -> Result:
        return self._call(quote_service.expire_quotes, now)

    def process_quote_reminders(self, now=None) -> Result:
        return self._call(quote_service.process_quote_reminders, now)

    # ------------------------------------------------------------------
    # reports
    # ------------------------------------------------------------------

    def get_vat_report(self, **params) -> Result:
        return self._read(reporting_service.get_vat_report, **params)

    def get_top_clients(self, **params) -> Result:
        return self._read(reporting_service.get_top_clients, **params)

    def get_advance_payment_report(self) -> Result:
        return self._read(reporting_service.get_advance_payment_report)

    def get_invoice_stats(self, **params) -> Result:
        return self._read(reporting_service.get_invoice_stats, **params)

    def get_client_statement(self, client_id: int, **params) -> Result:
        return self._read(reporting_service.get_client_statement, client_id, **params)
