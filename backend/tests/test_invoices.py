# Overview: Pytest coverage for the invoice lifecycle, stock effects and deposit invoices.

"""
Invoice Tests

Coverage:
- Creation: numbering, totals, payment terms, fiscal stamp
- Draft-only editing and deletion
- Sending consumes stock and logs the email
- Cancellation restores stock
- Overdue marking and the overdue sweep
- Deposit (acompte) invoices
"""

from datetime import datetime

import pytest

from maroc_billing.models import EmailHistoryEntry, Invoice, Product, StockMovement
from maroc_billing.services import errors
from maroc_billing.services.stock_service import get_movements_for_reference


@pytest.fixture
def draft_invoice(engine, client_a, product_a, default_tax_a):
    return engine.create_invoice(
        client_id=client_a.id,
        date="2026-03-01",
        items=[{"product_id": product_a.id, "quantity": 2}],
    ).unwrap()


class TestCreateInvoice:

    def test_create_draft_with_totals(self, db_session, draft_invoice):
        assert draft_invoice.status == "draft"
        assert draft_invoice.number == "FAC-2026-00001"
        assert draft_invoice.subtotal_cents == 20000
        assert draft_invoice.vat_amount_cents == 4000
        assert draft_invoice.total_cents == 24000
        assert draft_invoice.balance_due_cents == 24000

    def test_lines_default_from_product(self, db_session, draft_invoice, product_a):
        line = draft_invoice.lines[0]
        assert line.description == product_a.name
        assert line.unit_price_cents == 10000
        assert line.vat_rate_bps == 2000
        assert line.total_cents == 20000

    def test_due_date_defaults_to_payment_terms(self, db_session, draft_invoice):
        assert draft_invoice.date == datetime(2026, 3, 1)
        assert draft_invoice.due_date == datetime(2026, 3, 31)

    def test_numbers_are_sequential(self, db_session, engine, client_a, draft_invoice):
        second = engine.create_invoice(
            client_id=client_a.id,
            date="2026-05-10",
            items=[{"description": "Conseil", "quantity": 1, "unit_price_cents": 80000}],
        ).unwrap()
        assert second.number == "FAC-2026-00002"

    def test_numbering_restarts_each_year(self, db_session, engine, client_a, draft_invoice):
        next_year = engine.create_invoice(
            client_id=client_a.id,
            date="2027-01-04",
            items=[{"description": "Conseil", "quantity": 1, "unit_price_cents": 80000}],
        ).unwrap()
        assert next_year.number == "FAC-2027-00001"

    def test_free_text_line_defaults_to_zero_vat(self, db_session, engine, client_a):
        invoice = engine.create_invoice(
            client_id=client_a.id,
            items=[{"description": "Frais de dossier", "quantity": 1, "unit_price_cents": 15000}],
        ).unwrap()
        assert invoice.vat_amount_cents == 0
        assert invoice.total_cents == 15000

    def test_explicit_vat_rate_overrides_resolution(self, db_session, engine, client_a, product_a, default_tax_a):
        invoice = engine.create_invoice(
            client_id=client_a.id,
            items=[{"product_id": product_a.id, "quantity": 1, "vat_rate_bps": 1400}],
        ).unwrap()
        assert invoice.vat_amount_cents == 1400

    def test_product_rate_used_without_default_tax(self, db_session, engine, client_a, product_a):
        invoice = engine.create_invoice(
            client_id=client_a.id,
            items=[{"product_id": product_a.id, "quantity": 1}],
        ).unwrap()
        assert invoice.lines[0].vat_rate_bps == product_a.vat_rate_bps

    def test_fiscal_stamp_added_to_total(self, db_session, engine, client_a, product_a, default_tax_a):
        invoice = engine.create_invoice(
            client_id=client_a.id,
            items=[{"product_id": product_a.id, "quantity": 2}],
            has_fiscal_stamp=True,
        ).unwrap()

        assert invoice.fiscal_stamp_amount_cents == 2000
        assert invoice.total_cents == 24000 + 2000

    def test_company_fiscal_stamp_overrides_default(
        self, db_session, engine, company_a, client_a, product_a, default_tax_a
    ):
        company_a.fiscal_stamp_cents = 1000
        db_session.commit()

        invoice = engine.create_invoice(
            client_id=client_a.id,
            items=[{"product_id": product_a.id, "quantity": 1}],
            has_fiscal_stamp=True,
        ).unwrap()
        assert invoice.total_cents == 12000 + 1000

    def test_empty_items_rejected(self, db_session, engine, client_a):
        result = engine.create_invoice(client_id=client_a.id, items=[])

        assert result.error.kind == errors.VALIDATION_ERROR
        assert db_session.query(Invoice).count() == 0

    def test_zero_quantity_rejected(self, db_session, engine, client_a, product_a):
        result = engine.create_invoice(client_id=client_a.id, items=[{"product_id": product_a.id, "quantity": 0}])
        assert result.error.kind == errors.VALIDATION_ERROR

    def test_unknown_client(self, db_session, engine, product_a):
        result = engine.create_invoice(client_id=99999, items=[{"product_id": product_a.id, "quantity": 1}])
        assert result.error.kind == errors.NOT_FOUND

    def test_due_date_before_date_rejected(self, db_session, engine, client_a, product_a):
        result = engine.create_invoice(
            client_id=client_a.id,
            date="2026-03-10",
            due_date="2026-03-01",
            items=[{"product_id": product_a.id, "quantity": 1}],
        )
        assert result.error.kind == errors.VALIDATION_ERROR


class TestDraftEditing:

    def test_update_items_recalculates(self, db_session, engine, draft_invoice, product_a):
        invoice = engine.update_invoice(
            draft_invoice.id,
            items=[{"product_id": product_a.id, "quantity": 3, "discount_cents": 500}],
        ).unwrap()

        assert len(invoice.lines) == 1
        assert invoice.subtotal_cents == 30000
        assert invoice.vat_amount_cents == 6000
        assert invoice.total_cents == 35500

    def test_update_sent_invoice_rejected(self, db_session, engine, sent_invoice):
        result = engine.update_invoice(sent_invoice.id, notes="Trop tard")

        assert result.error.kind == errors.INVALID_STATE
        assert result.error.details["current_status"] == "sent"
        assert result.error.details["action"] == "edit"

    def test_delete_draft(self, db_session, engine, draft_invoice):
        assert engine.delete_invoice(draft_invoice.id).ok
        assert db_session.get(Invoice, draft_invoice.id) is None

    def test_delete_sent_rejected(self, db_session, engine, sent_invoice):
        result = engine.delete_invoice(sent_invoice.id)
        assert result.error.kind == errors.INVALID_STATE


class TestSendInvoice:

    def test_send_consumes_stock(self, db_session, engine, sent_invoice, product_a):
        assert sent_invoice.status == "sent"
        assert sent_invoice.sent_at is not None
        assert sent_invoice.stock_consumed is True
        assert db_session.get(Product, product_a.id).current_stock == 8

        movements = (
            db_session.query(StockMovement)
            .filter_by(reference_type="invoice", reference_id=sent_invoice.id)
            .all()
        )
        assert [(m.type, m.quantity) for m in movements] == [("sale", -2)]

    def test_send_logs_email(self, db_session, sent_invoice, client_a):
        entry = db_session.query(EmailHistoryEntry).filter_by(entity_type="invoice", entity_id=sent_invoice.id).one()
        assert entry.kind == "sent"
        assert entry.recipients == [client_a.email]
        assert entry.subject == f"Facture {sent_invoice.number}"

    def test_send_twice_rejected(self, db_session, engine, sent_invoice, product_a):
        result = engine.transition("invoice", sent_invoice.id, "send")

        assert result.error.kind == errors.INVALID_STATE
        assert db_session.get(Product, product_a.id).current_stock == 8

    def test_send_insufficient_stock(self, db_session, engine, client_a, product_a, default_tax_a):
        invoice = engine.create_invoice(
            client_id=client_a.id,
            items=[{"product_id": product_a.id, "quantity": 11}],
        ).unwrap()

        result = engine.transition("invoice", invoice.id, "send")

        assert result.error.kind == errors.INSUFFICIENT_STOCK
        assert db_session.get(Invoice, invoice.id).status == "draft"
        assert db_session.get(Product, product_a.id).current_stock == 10

    def test_send_services_only_touches_no_stock(self, db_session, engine, client_a, service_a, default_tax_a):
        invoice = engine.create_invoice(
            client_id=client_a.id,
            items=[{"product_id": service_a.id, "quantity": 2}],
        ).unwrap()

        sent = engine.transition("invoice", invoice.id, "send").unwrap()

        assert sent.stock_consumed is False
        assert db_session.query(StockMovement).filter_by(product_id=service_a.id).count() == 0


class TestCancelInvoice:

    def test_cancel_draft_rejected(self, db_session, engine, draft_invoice):
        """Cancel is only valid from sent or overdue."""
        result = engine.transition("invoice", draft_invoice.id, "cancel")

        assert result.error.kind == errors.INVALID_STATE
        assert db_session.get(Invoice, draft_invoice.id).status == "draft"

    def test_cancel_sent_restores_stock(self, db_session, engine, sent_invoice, product_a):
        cancelled = engine.transition("invoice", sent_invoice.id, "cancel", reason="Commande annulée").unwrap()

        assert cancelled.status == "cancelled"
        assert cancelled.stock_consumed is False
        assert db_session.get(Product, product_a.id).current_stock == 10
        returns = db_session.query(StockMovement).filter_by(reference_type="invoice_cancellation").all()
        assert [(m.type, m.quantity) for m in returns] == [("return_customer", 2)]
        assert engine.verify_ledger(product_a.id).unwrap()["ok"]

    def test_cancel_refused_after_stock_returning_credit_note(self, db_session, engine, sent_invoice, product_a):
        """The credit note already brought both chairs back; cancelling must not add them again."""
        credit_note = engine.create_credit_note(invoice_id=sent_invoice.id, affects_stock=True).unwrap()
        engine.transition("credit_note", credit_note.id, "issue").unwrap()

        result = engine.transition("invoice", sent_invoice.id, "cancel")

        assert result.error.kind == errors.INVALID_STATE
        assert result.error.details["credit_note_ids"] == [credit_note.id]
        assert db_session.get(Invoice, sent_invoice.id).status == "sent"
        assert db_session.get(Product, product_a.id).current_stock == 10
        assert get_movements_for_reference(sent_invoice.company_id, "invoice_cancellation", sent_invoice.id) == []
        assert engine.verify_ledger(product_a.id).unwrap()["ok"]

    def test_cancel_allowed_once_credit_note_cancelled(self, db_session, engine, sent_invoice, product_a):
        credit_note = engine.create_credit_note(invoice_id=sent_invoice.id, affects_stock=True).unwrap()
        engine.transition("credit_note", credit_note.id, "issue").unwrap()
        engine.transition("credit_note", credit_note.id, "cancel").unwrap()

        assert engine.transition("invoice", sent_invoice.id, "cancel").unwrap().status == "cancelled"
        assert db_session.get(Product, product_a.id).current_stock == 10
        assert engine.verify_ledger(product_a.id).unwrap()["ok"]

    def test_cancel_overdue(self, db_session, engine, sent_invoice):
        engine.transition("invoice", sent_invoice.id, "mark_overdue").unwrap()
        assert engine.transition("invoice", sent_invoice.id, "cancel").unwrap().status == "cancelled"

    def test_cancel_paid_rejected(self, db_session, engine, sent_invoice):
        engine.transition("invoice", sent_invoice.id, "mark_paid").unwrap()

        result = engine.transition("invoice", sent_invoice.id, "cancel")
        assert result.error.kind == errors.INVALID_STATE


class TestOverdue:

    def test_mark_overdue_only_from_sent(self, db_session, engine, draft_invoice):
        result = engine.transition("invoice", draft_invoice.id, "mark_overdue")
        assert result.error.kind == errors.INVALID_STATE

    def test_sweep_marks_past_due_invoices(self, db_session, engine, client_a, product_a, default_tax_a):
        old = engine.create_invoice(
            client_id=client_a.id, date="2026-01-05", items=[{"product_id": product_a.id, "quantity": 1}],
        ).unwrap()
        recent = engine.create_invoice(
            client_id=client_a.id, date="2026-03-20", items=[{"product_id": product_a.id, "quantity": 1}],
        ).unwrap()
        engine.transition("invoice", old.id, "send").unwrap()
        engine.transition("invoice", recent.id, "send").unwrap()

        swept = engine.sweep_overdue_invoices(now="2026-03-01").unwrap()

        assert swept == [old.id]
        assert db_session.get(Invoice, old.id).status == "overdue"
        assert db_session.get(Invoice, recent.id).status == "sent"

    def test_sweep_ignores_drafts(self, db_session, engine, draft_invoice):
        assert engine.sweep_overdue_invoices(now="2027-01-01").unwrap() == []


class TestDepositInvoices:

    def test_default_percentage_deposit(self, db_session, engine, sent_invoice):
        deposit = engine.create_deposit_invoice(sent_invoice.id).unwrap()
        main = db_session.get(Invoice, sent_invoice.id)

        assert deposit.is_deposit is True
        assert deposit.status == "draft"
        assert deposit.total_cents == 7200
        assert deposit.vat_amount_cents == 0
        assert len(deposit.lines) == 1
        assert deposit.lines[0].product_id is None
        assert deposit.lines[0].description == f"Acompte sur facture {main.number}"
        assert deposit.deposit_for_invoice_id == main.id
        assert main.deposit_invoice_id == deposit.id
        assert main.deposit_amount_cents == 7200
        assert main.deposit_percentage_bps == 3000

    def test_fixed_amount_deposit(self, db_session, engine, sent_invoice):
        deposit = engine.create_deposit_invoice(sent_invoice.id, amount_cents=6000).unwrap()

        assert deposit.total_cents == 6000
        assert deposit.deposit_percentage_bps == 2500

    def test_deposit_must_be_below_total(self, db_session, engine, sent_invoice):
        result = engine.create_deposit_invoice(sent_invoice.id, amount_cents=24000)
        assert result.error.kind == errors.VALIDATION_ERROR

    def test_second_deposit_rejected(self, db_session, engine, sent_invoice):
        engine.create_deposit_invoice(sent_invoice.id).unwrap()

        result = engine.create_deposit_invoice(sent_invoice.id, percentage_bps=1000)
        assert result.error.kind == errors.VALIDATION_ERROR

    def test_deposit_of_deposit_rejected(self, db_session, engine, sent_invoice):
        deposit = engine.create_deposit_invoice(sent_invoice.id).unwrap()

        result = engine.create_deposit_invoice(deposit.id)
        assert result.error.kind == errors.VALIDATION_ERROR

    def test_deleting_deposit_frees_main_invoice(self, db_session, engine, sent_invoice):
        deposit = engine.create_deposit_invoice(sent_invoice.id).unwrap()

        assert engine.delete_invoice(deposit.id).ok

        main = db_session.get(Invoice, sent_invoice.id)
        assert main.deposit_invoice_id is None
        assert engine.create_deposit_invoice(sent_invoice.id).ok

    def test_main_invoice_with_deposit_cannot_be_deleted(self, db_session, engine, draft_invoice):
        engine.create_deposit_invoice(draft_invoice.id).unwrap()

        result = engine.delete_invoice(draft_invoice.id)
        assert result.error.kind == errors.VALIDATION_ERROR
