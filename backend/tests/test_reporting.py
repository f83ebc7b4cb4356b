# Overview: Pytest coverage for reporting projections.

"""
Reporting Tests

Coverage:
- VAT report by period and by rate, net of credit notes
- Top clients ranking
- Invoice stats (paid / pending / overdue)
- Deposit (advance payment) report
- Client account statement with running balance
"""

import pytest

from maroc_billing.services import errors


@pytest.fixture
def activity(engine, client_a, other_client_a, product_a, default_tax_a):
    """
    March: FAC 1 for client A, 2 chairs (240.00 TTC), paid 100.00 on 10 March.
    April: FAC 2 for the other client, 1 chair + 50.00 untaxed delivery (170.00 TTC).
    April: credit note on FAC 1 for one chair (120.00 TTC), issued.
    A draft invoice in March is never reported.
    """
    march = engine.create_invoice(
        client_id=client_a.id, date="2026-03-05", items=[{"product_id": product_a.id, "quantity": 2}],
    ).unwrap()
    engine.transition("invoice", march.id, "send").unwrap()
    engine.create_payment(march.id, 10000, "cash", date="2026-03-10").unwrap()

    april = engine.create_invoice(
        client_id=other_client_a.id,
        date="2026-04-02",
        items=[
            {"product_id": product_a.id, "quantity": 1},
            {"description": "Livraison", "quantity": 1, "unit_price_cents": 5000},
        ],
    ).unwrap()
    engine.transition("invoice", april.id, "send").unwrap()

    engine.create_invoice(
        client_id=client_a.id, date="2026-03-10", items=[{"product_id": product_a.id, "quantity": 5}],
    ).unwrap()

    credit_note = engine.create_credit_note(
        invoice_id=march.id, date="2026-04-10", items=[{"product_id": product_a.id, "quantity": 1}],
    ).unwrap()
    engine.transition("credit_note", credit_note.id, "issue").unwrap()

    return {"march": march, "april": april, "credit_note": credit_note}


class TestVatReport:

    def test_monthly_rows(self, db_session, engine, activity):
        report = engine.get_vat_report().unwrap()

        march, april = report["rows"]
        assert march["period"] == "2026-03"
        assert march["invoice_count"] == 1
        assert march["taxable_cents"] == 20000
        assert march["vat_collected_cents"] == 4000
        assert march["net_vat_cents"] == 4000

        assert april["period"] == "2026-04"
        assert april["invoice_count"] == 1
        assert april["credit_note_count"] == 1
        assert april["taxable_cents"] == 15000 - 10000
        assert april["vat_collected_cents"] == 2000
        assert april["vat_credited_cents"] == 2000
        assert april["net_vat_cents"] == 0

        assert report["totals"] == {
            "vat_collected_cents": 6000,
            "vat_credited_cents": 2000,
            "net_vat_cents": 4000,
        }

    def test_breakdown_by_rate(self, db_session, engine, activity):
        report = engine.get_vat_report().unwrap()

        assert report["by_rate"] == [
            {"vat_rate_bps": 0, "base_cents": 5000, "vat_cents": 0},
            {"vat_rate_bps": 2000, "base_cents": 30000, "vat_cents": 6000},
        ]

    def test_quarter_grouping(self, db_session, engine, activity):
        report = engine.get_vat_report(group_by="quarter").unwrap()
        assert [r["period"] for r in report["rows"]] == ["2026-Q1", "2026-Q2"]

    def test_date_range(self, db_session, engine, activity):
        report = engine.get_vat_report(start="2026-04-01", end="2026-04-30").unwrap()
        assert [r["period"] for r in report["rows"]] == ["2026-04"]

    def test_invalid_grouping(self, db_session, engine):
        assert engine.get_vat_report(group_by="week").error.kind == errors.VALIDATION_ERROR

    def test_inverted_range(self, db_session, engine):
        result = engine.get_vat_report(start="2026-05-01", end="2026-04-01")
        assert result.error.kind == errors.VALIDATION_ERROR


class TestInvoiceReports:

    def test_top_clients(self, db_session, engine, activity, client_a, other_client_a):
        ranking = engine.get_top_clients().unwrap()

        assert [r["client_id"] for r in ranking] == [client_a.id, other_client_a.id]
        assert ranking[0]["total_cents"] == 24000
        assert ranking[0]["client_name"] == client_a.name
        assert ranking[1]["total_cents"] == 17000

    def test_top_clients_limit(self, db_session, engine, activity, client_a):
        assert [r["client_id"] for r in engine.get_top_clients(limit=1).unwrap()] == [client_a.id]

    def test_invoice_stats(self, db_session, engine, activity):
        engine.transition("invoice", activity["april"].id, "mark_overdue").unwrap()

        stats = engine.get_invoice_stats().unwrap()

        assert stats["by_status"] == {"partial": 1, "overdue": 1, "draft": 1}
        assert stats["invoiced_cents"] == 24000 + 17000
        assert stats["paid_cents"] == 10000
        assert stats["pending_cents"] == 14000
        assert stats["overdue_cents"] == 17000
        assert stats["monthly_revenue"] == [{"month": "2026-03", "revenue_cents": 10000}]

    def test_advance_payment_report(self, db_session, engine, activity):
        deposit = engine.create_deposit_invoice(activity["april"].id, percentage_bps=5000).unwrap()

        report = engine.get_advance_payment_report().unwrap()

        assert len(report["deposits"]) == 1
        row = report["deposits"][0]
        assert row["deposit_invoice_id"] == deposit.id
        assert row["deposit_amount_cents"] == 8500
        assert row["main_invoice_id"] == activity["april"].id
        assert report["totals"]["count"] == 1


class TestClientStatement:

    def test_running_balance(self, db_session, engine, activity, client_a):
        statement = engine.get_client_statement(client_a.id).unwrap()

        assert [(e["type"], e["debit_cents"], e["credit_cents"], e["balance_cents"]) for e in statement["entries"]] == [
            ("invoice", 24000, 0, 24000),
            ("payment", 0, 10000, 14000),
            ("credit_note", 0, 12000, 2000),
        ]
        assert statement["balance_cents"] == 2000
        assert statement["total_debit_cents"] == 24000

    def test_refund_debits_client(self, db_session, engine, activity, client_a):
        engine.apply_credit_note(activity["credit_note"].id, 12000, refund_method="bank", date="2026-04-15").unwrap()

        statement = engine.get_client_statement(client_a.id).unwrap()

        assert statement["entries"][-1]["type"] == "refund"
        assert statement["balance_cents"] == 14000

    def test_unknown_client(self, db_session, engine):
        assert engine.get_client_statement(99999).error.kind == errors.NOT_FOUND
