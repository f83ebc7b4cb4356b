# Overview: Service-layer read projections; VAT, client rankings, deposits, invoice stats and client statements.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Client, CreditNote, CreditNoteApplication, Invoice, LineItem, Payment
from maroc_billing.time_utils import period_key, to_utc_z
from . import lifecycle_service as lc
from .document_service import get_client, parse_date
from .errors import ValidationError
from .totals_service import BPS_DENOMINATOR, round_half_up

# Invoices that count as issued revenue
ISSUED_INVOICE_STATUSES = (lc.INVOICE_SENT, lc.INVOICE_PARTIAL, lc.INVOICE_PAID, lc.INVOICE_OVERDUE)
ISSUED_CREDIT_NOTE_STATUSES = (lc.CREDIT_NOTE_ISSUED, lc.CREDIT_NOTE_APPLIED)
VALID_GROUP_BY = ("month", "quarter", "year")


def _parse_range(start, end) -> tuple[datetime | None, datetime | None]:
    start_dt = parse_date(start, "start")
    end_dt = parse_date(end, "end")
    if start_dt and end_dt and end_dt < start_dt:
        raise ValidationError("end must not be before start", field="end")
    return start_dt, end_dt


def _in_range(query, column, start_dt, end_dt):
    if start_dt:
        query = query.filter(column >= start_dt)
    if end_dt:
        query = query.filter(column <= end_dt)
    return query


def _issued_invoices(company_id: int, start_dt, end_dt) -> list[Invoice]:
    query = db.session.query(Invoice).filter(
        Invoice.company_id == company_id,
        Invoice.status.in_(ISSUED_INVOICE_STATUSES),
    )
    return _in_range(query, Invoice.date, start_dt, end_dt).order_by(Invoice.date, Invoice.id).all()


def get_vat_report(company_id: int, start=None, end=None, group_by: str = "month") -> dict:
    """
    VAT collected on issued invoices, less VAT given back by issued credit
    notes, bucketed by period and broken down by rate.
    """
    if group_by not in VALID_GROUP_BY:
        raise ValidationError(f"group_by must be one of {VALID_GROUP_BY}", field="group_by")
    start_dt, end_dt = _parse_range(start, end)

    periods: dict[str, dict] = {}

    def bucket(dt: datetime) -> dict:
        key = period_key(dt, group_by)
        if key not in periods:
            periods[key] = {
                "period": key,
                "invoice_count": 0,
                "taxable_cents": 0,
                "vat_collected_cents": 0,
                "credit_note_count": 0,
                "vat_credited_cents": 0,
            }
        return periods[key]

    for invoice in _issued_invoices(company_id, start_dt, end_dt):
        row = bucket(invoice.date)
        row["invoice_count"] += 1
        row["taxable_cents"] += invoice.subtotal_cents - invoice.discount_cents
        row["vat_collected_cents"] += invoice.vat_amount_cents

    credit_query = db.session.query(CreditNote).filter(
        CreditNote.company_id == company_id,
        CreditNote.status.in_(ISSUED_CREDIT_NOTE_STATUSES),
    )
    for credit_note in _in_range(credit_query, CreditNote.date, start_dt, end_dt).all():
        row = bucket(credit_note.date)
        row["credit_note_count"] += 1
        row["taxable_cents"] -= credit_note.subtotal_cents - credit_note.discount_cents
        row["vat_credited_cents"] += credit_note.vat_amount_cents

    rows = []
    for key in sorted(periods):
        row = periods[key]
        row["net_vat_cents"] = row["vat_collected_cents"] - row["vat_credited_cents"]
        rows.append(row)

    # Per-rate breakdown from invoice lines, exact then rounded once per rate
    rate_query = (
        db.session.query(LineItem.vat_rate_bps, LineItem.quantity, LineItem.unit_price_cents)
        .join(Invoice, Invoice.id == LineItem.invoice_id)
        .filter(Invoice.company_id == company_id, Invoice.status.in_(ISSUED_INVOICE_STATUSES))
    )
    rate_query = _in_range(rate_query, Invoice.date, start_dt, end_dt)
    by_rate: dict[int, dict] = {}
    for rate, quantity, unit_price in rate_query.all():
        entry = by_rate.setdefault(rate, {"vat_rate_bps": rate, "base_cents": 0, "vat_exact": 0})
        gross = quantity * unit_price
        entry["base_cents"] += gross
        entry["vat_exact"] += gross * rate
    rates = []
    for rate in sorted(by_rate):
        entry = by_rate[rate]
        rates.append({
            "vat_rate_bps": rate,
            "base_cents": entry["base_cents"],
            "vat_cents": round_half_up(entry.pop("vat_exact"), BPS_DENOMINATOR),
        })

    return {
        "company_id": company_id,
        "group_by": group_by,
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "rows": rows,
        "by_rate": rates,
        "totals": {
            "vat_collected_cents": sum(r["vat_collected_cents"] for r in rows),
            "vat_credited_cents": sum(r["vat_credited_cents"] for r in rows),
            "net_vat_cents": sum(r["net_vat_cents"] for r in rows),
        },
    }


def get_top_clients(company_id: int, limit: int = 10, start=None, end=None) -> list[dict]:
    """Clients ranked by invoiced amount over the period."""
    if not isinstance(limit, int) or limit <= 0:
        raise ValidationError("limit must be a positive integer", field="limit")
    start_dt, end_dt = _parse_range(start, end)

    totals: dict[int, dict] = {}
    for invoice in _issued_invoices(company_id, start_dt, end_dt):
        entry = totals.setdefault(invoice.client_id, {
            "client_id": invoice.client_id,
            "invoice_count": 0,
            "total_cents": 0,
            "paid_cents": 0,
            "balance_due_cents": 0,
        })
        entry["invoice_count"] += 1
        entry["total_cents"] += invoice.total_cents
        entry["paid_cents"] += invoice.settled_amount_cents
        entry["balance_due_cents"] += invoice.balance_due_cents

    names = dict(
        db.session.query(Client.id, Client.name)
        .filter(Client.company_id == company_id, Client.id.in_(list(totals) or [0]))
        .all()
    )
    ranked = sorted(totals.values(), key=lambda e: (-e["total_cents"], e["client_id"]))[:limit]
    for entry in ranked:
        entry["client_name"] = names.get(entry["client_id"])
    return ranked


def get_advance_payment_report(company_id: int) -> dict:
    """Deposit invoices with their main invoice and how much of them is settled."""
    deposits = (
        db.session.query(Invoice)
        .filter(Invoice.company_id == company_id, Invoice.is_deposit.is_(True))
        .order_by(Invoice.date, Invoice.id)
        .all()
    )
    main_ids = [d.deposit_for_invoice_id for d in deposits if d.deposit_for_invoice_id]
    mains = {
        inv.id: inv
        for inv in db.session.query(Invoice).filter(Invoice.id.in_(main_ids or [0])).all()
    }

    rows = []
    for deposit in deposits:
        main = mains.get(deposit.deposit_for_invoice_id)
        rows.append({
            "deposit_invoice_id": deposit.id,
            "deposit_number": deposit.number,
            "deposit_status": deposit.status,
            "deposit_amount_cents": deposit.deposit_amount_cents,
            "deposit_percentage_bps": deposit.deposit_percentage_bps,
            "deposit_paid_cents": deposit.settled_amount_cents,
            "main_invoice_id": main.id if main else None,
            "main_number": main.number if main else None,
            "main_status": main.status if main else None,
            "main_total_cents": main.total_cents if main else None,
        })

    active = [r for r in rows if r["deposit_status"] != lc.INVOICE_CANCELLED]
    return {
        "company_id": company_id,
        "deposits": rows,
        "totals": {
            "count": len(active),
            "deposit_amount_cents": sum(r["deposit_amount_cents"] or 0 for r in active),
            "deposit_paid_cents": sum(r["deposit_paid_cents"] for r in active),
        },
    }


def get_invoice_stats(company_id: int, start=None, end=None) -> dict:
    """Paid, pending and overdue amounts plus monthly revenue from completed payments."""
    start_dt, end_dt = _parse_range(start, end)

    query = db.session.query(Invoice).filter(Invoice.company_id == company_id)
    invoices = _in_range(query, Invoice.date, start_dt, end_dt).all()

    by_status: dict[str, int] = {}
    paid_total = pending_total = overdue_total = invoiced_total = 0
    for invoice in invoices:
        by_status[invoice.status] = by_status.get(invoice.status, 0) + 1
        if invoice.status in (lc.INVOICE_DRAFT, lc.INVOICE_CANCELLED):
            continue
        invoiced_total += invoice.total_cents
        paid_total += invoice.settled_amount_cents
        if invoice.status == lc.INVOICE_OVERDUE:
            overdue_total += invoice.balance_due_cents
        else:
            pending_total += invoice.balance_due_cents

    payment_query = db.session.query(Payment.date, Payment.amount_cents).filter(
        Payment.company_id == company_id,
        Payment.status == "completed",
    )
    monthly: dict[str, int] = {}
    for paid_on, amount in _in_range(payment_query, Payment.date, start_dt, end_dt).all():
        key = period_key(paid_on, "month")
        monthly[key] = monthly.get(key, 0) + amount

    return {
        "company_id": company_id,
        "invoice_count": len(invoices),
        "by_status": by_status,
        "invoiced_cents": invoiced_total,
        "paid_cents": paid_total,
        "pending_cents": pending_total,
        "overdue_cents": overdue_total,
        "monthly_revenue": [{"month": k, "revenue_cents": monthly[k]} for k in sorted(monthly)],
    }


def get_client_statement(company_id: int, client_id: int, start=None, end=None) -> dict:
    """
    Chronological account statement with a running balance.

    Invoices debit the client; payments and issued credit notes credit it;
    refunds paid out of a credit note debit it again.
    """
    client = get_client(company_id, client_id)
    start_dt, end_dt = _parse_range(start, end)
    entries = []

    invoice_query = db.session.query(Invoice).filter(
        Invoice.company_id == company_id,
        Invoice.client_id == client_id,
        Invoice.status.in_(ISSUED_INVOICE_STATUSES),
    )
    for invoice in _in_range(invoice_query, Invoice.date, start_dt, end_dt).all():
        entries.append((invoice.date, 0, invoice.id, {
            "type": "invoice", "reference": invoice.number, "debit_cents": invoice.total_cents, "credit_cents": 0,
        }))

    payment_query = (
        db.session.query(Payment, Invoice.number)
        .join(Invoice, Invoice.id == Payment.invoice_id)
        .filter(
            Payment.company_id == company_id,
            Invoice.client_id == client_id,
            Payment.status == "completed",
        )
    )
    for payment, invoice_number in _in_range(payment_query, Payment.date, start_dt, end_dt).all():
        entries.append((payment.date, 1, payment.id, {
            "type": "payment", "reference": payment.reference or invoice_number,
            "debit_cents": 0, "credit_cents": payment.amount_cents,
        }))

    credit_query = db.session.query(CreditNote).filter(
        CreditNote.company_id == company_id,
        CreditNote.client_id == client_id,
        CreditNote.status.in_(ISSUED_CREDIT_NOTE_STATUSES),
    )
    for credit_note in _in_range(credit_query, CreditNote.date, start_dt, end_dt).all():
        entries.append((credit_note.date, 2, credit_note.id, {
            "type": "credit_note", "reference": credit_note.number,
            "debit_cents": 0, "credit_cents": credit_note.total_cents,
        }))

    refund_query = (
        db.session.query(CreditNoteApplication, CreditNote.number)
        .join(CreditNote, CreditNote.id == CreditNoteApplication.credit_note_id)
        .filter(
            CreditNoteApplication.company_id == company_id,
            CreditNote.client_id == client_id,
            CreditNoteApplication.is_refund.is_(True),
        )
    )
    for application, credit_number in _in_range(refund_query, CreditNoteApplication.date, start_dt, end_dt).all():
        entries.append((application.date, 3, application.id, {
            "type": "refund", "reference": application.refund_reference or credit_number,
            "debit_cents": application.amount_cents, "credit_cents": 0,
        }))

    entries.sort(key=lambda e: (e[0], e[1], e[2]))
    balance = 0
    lines = []
    for occurred_at, _order, _id, entry in entries:
        balance += entry["debit_cents"] - entry["credit_cents"]
        lines.append({"date": to_utc_z(occurred_at), **entry, "balance_cents": balance})

    return {
        "client_id": client.id,
        "client_name": client.name,
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "entries": lines,
        "total_debit_cents": sum(l["debit_cents"] for l in lines),
        "total_credit_cents": sum(l["credit_cents"] for l in lines),
        "balance_cents": balance,
    }
