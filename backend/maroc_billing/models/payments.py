from __future__ import annotations

from ..extensions import db
from maroc_billing.time_utils import to_utc_z, utcnow


class Payment(db.Model):
    """
    Payment received against an invoice.

    Immutable once created except status (completed -> cancelled). A cancelled
    payment stays on file for the audit trail and no longer counts toward the
    invoice's paid amount.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_invoice_status", "invoice_id", "status"),
        db.Index("ix_payments_company_date", "company_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    # cash | bank | check | online | other
    method = db.Column(db.String(16), nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    invoice = db.relationship("Invoice", backref=db.backref("payments", lazy=True, order_by="Payment.id"))

    def __repr__(self) -> str:
        return f"<Payment id={self.id} invoice_id={self.invoice_id} amount_cents={self.amount_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "invoice_id": self.invoice_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "date": to_utc_z(self.date),
            "reference": self.reference,
            "notes": self.notes,
            "status": self.status,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "created_at": to_utc_z(self.created_at),
        }
