# Overview: Pytest coverage for the BillingEngine facade and its transaction handling.

"""
Engine Tests

Coverage:
- Result / EngineFailure values
- Failures roll back every write made by the operation
- Unexpected exceptions roll back and propagate
- Concurrency conflicts retried by run_with_retry
"""

import pytest
from sqlalchemy.orm.exc import StaleDataError

from maroc_billing.engine import TRANSITIONS, BillingEngine, EngineFailure, Result
from maroc_billing.extensions import db
from maroc_billing.models import Invoice, Tax
from maroc_billing.services import errors
from maroc_billing.services.concurrency import run_with_retry
from maroc_billing.services.errors import BillingError


class TestResult:

    def test_success_unwraps_value(self):
        assert Result.success(42).unwrap() == 42

    def test_failure_unwrap_raises_with_kind(self):
        result = Result.failure(EngineFailure(kind=errors.NOT_FOUND, message="invoice 9 not found",
                                              details={"entity": "invoice", "entity_id": 9}))

        with pytest.raises(BillingError) as exc_info:
            result.unwrap()

        assert exc_info.value.kind == errors.NOT_FOUND
        assert exc_info.value.details["entity_id"] == 9

    def test_failure_to_dict(self):
        failure = EngineFailure(kind=errors.VALIDATION_ERROR, message="bad", details={"field": "items"})
        assert failure.to_dict() == {"kind": "ValidationError", "message": "bad", "details": {"field": "items"}}


class TestEngineTransactions:

    def test_calculate_totals(self, db_session, engine):
        result = engine.calculate_totals([{"quantity": 3, "unit_price_cents": 333, "vat_rate_bps": 1000}])

        assert result.ok
        assert result.value.total_cents == 999 + 100

    def test_calculate_totals_rejects_bad_line(self, db_session, engine):
        result = engine.calculate_totals([{"quantity": 0, "unit_price_cents": 100, "vat_rate_bps": 0}])

        assert not result.ok
        assert result.error.kind == errors.VALIDATION_ERROR

    def test_failed_operation_leaves_no_trace(self, db_session, engine, client_a, product_a, default_tax_a):
        failed = engine.create_invoice(
            client_id=client_a.id,
            date="2026-05-01",
            items=[{"product_id": product_a.id, "quantity": 1}, {"product_id": 99999, "quantity": 1}],
        )
        assert failed.error.kind == errors.NOT_FOUND
        assert db_session.query(Invoice).count() == 0

        invoice = engine.create_invoice(
            client_id=client_a.id, date="2026-05-01", items=[{"product_id": product_a.id, "quantity": 1}],
        ).unwrap()
        # The failed attempt did not consume a number
        assert invoice.number == "FAC-2026-00001"

    def test_unexpected_exception_rolls_back_and_propagates(
        self, db_session, engine, company_a, sent_invoice, monkeypatch
    ):
        def explode(company_id, invoice_id, **params):
            db.session.add(Tax(company_id=company_id, name="Temp", rate_bps=700))
            db.session.flush()
            raise RuntimeError("disk full")

        monkeypatch.setitem(TRANSITIONS, ("invoice", "cancel"), explode)

        with pytest.raises(RuntimeError):
            engine.transition("invoice", sent_invoice.id, "cancel")

        assert db_session.query(Tax).filter_by(name="Temp").count() == 0
        assert db_session.get(Invoice, sent_invoice.id).status == "sent"

    def test_unknown_transition(self, db_session, engine):
        result = engine.transition("invoice", 1, "archive")

        assert result.error.kind == errors.VALIDATION_ERROR
        assert result.error.details["action"] == "archive"

    def test_engine_is_company_scoped(self, db_session, company_b, sent_invoice):
        result = BillingEngine(company_b.id).get_invoice(sent_invoice.id)
        assert result.error.kind == errors.NOT_FOUND


class TestRunWithRetry:

    def test_retries_stale_data(self, app):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 2:
                raise StaleDataError("version mismatch")
            return "done"

        assert run_with_retry(flaky, backoff_base=0) == "done"
        assert len(calls) == 2

    def test_gives_up_after_attempts(self, app):
        def always_stale():
            raise StaleDataError("version mismatch")

        with pytest.raises(StaleDataError):
            run_with_retry(always_stale, attempts=2, backoff_base=0)

    def test_domain_errors_not_retried(self, app):
        calls = []

        def invalid():
            calls.append(1)
            raise errors.ValidationError("bad", field="x")

        with pytest.raises(errors.ValidationError):
            run_with_retry(invalid, backoff_base=0)
        assert len(calls) == 1
