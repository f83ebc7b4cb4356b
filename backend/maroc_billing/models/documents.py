from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer

from ..extensions import db
from maroc_billing.time_utils import to_utc_z, utcnow


class DocumentTotalsMixin:
    """Calculator output and timestamps shared by every line-item document."""

    subtotal_cents = Column(Integer, nullable=False, default=0)
    vat_amount_cents = Column(Integer, nullable=False, default=0)
    discount_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def totals_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "vat_amount_cents": self.vat_amount_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-company document sequences.

    Numbers restart every calendar year: FAC-2026-00001.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("company_id", "document_type", "year", name="uq_doc_sequences_company_type_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "document_type": self.document_type,
            "year": self.year,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }


class LineItem(db.Model):
    """
    Line shared by invoices, quotes, proformas and credit notes.

    Exactly one owner FK is set. product_id is null for free-text lines
    (deposit lines, one-off services); such lines never touch stock.
    """
    __tablename__ = "line_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    quote_id = db.Column(db.Integer, db.ForeignKey("quotes.id"), nullable=True, index=True)
    proforma_id = db.Column(db.Integer, db.ForeignKey("proforma_invoices.id"), nullable=True, index=True)
    credit_note_id = db.Column(db.Integer, db.ForeignKey("credit_notes.id"), nullable=True, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    vat_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "position": self.position,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "vat_rate_bps": self.vat_rate_bps,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
        }


class Invoice(DocumentTotalsMixin, db.Model):
    """
    Sales invoice (facture).

    LIFECYCLE:
        draft -> sent -> {paid, partial, overdue, cancelled}
        partial -> paid
        sent/overdue -> cancelled

    Only draft invoices are editable or deletable. Sending consumes stock for
    stock-managed lines. total_cents includes the fiscal stamp when present.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("company_id", "number", name="uq_invoices_company_number"),
        db.Index("ix_invoices_company_status", "company_id", "status"),
        db.Index("ix_invoices_company_client", "company_id", "client_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    number = db.Column(db.String(32), nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    notes = db.Column(db.Text, nullable=True)
    terms = db.Column(db.Text, nullable=True)

    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    last_payment_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # Fiscal stamp (droit de timbre)
    has_fiscal_stamp = db.Column(db.Boolean, nullable=False, default=False)
    fiscal_stamp_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    # Deposit linkage: a deposit invoice points at its main invoice and vice versa
    is_deposit = db.Column(db.Boolean, nullable=False, default=False)
    deposit_for_invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True)
    deposit_invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True)
    deposit_amount_cents = db.Column(db.Integer, nullable=True)
    deposit_percentage_bps = db.Column(db.Integer, nullable=True)

    # Credit linkage
    has_credit_notes = db.Column(db.Boolean, nullable=False, default=False)
    credit_note_ids = db.Column(db.JSON, nullable=False, default=list)
    credit_note_total_cents = db.Column(db.Integer, nullable=False, default=0)

    # Origin documents
    quote_id = db.Column(db.Integer, db.ForeignKey("quotes.id"), nullable=True)
    proforma_id = db.Column(db.Integer, db.ForeignKey("proforma_invoices.id"), nullable=True)

    stock_location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=True)
    stock_consumed = db.Column(db.Boolean, nullable=False, default=False)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client")
    lines = db.relationship(
        "LineItem",
        primaryjoin="Invoice.id == LineItem.invoice_id",
        order_by="LineItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def settled_amount_cents(self) -> int:
        return (self.paid_amount_cents or 0) + (self.credit_note_total_cents or 0)

    @property
    def balance_due_cents(self) -> int:
        return max(0, self.total_cents - self.settled_amount_cents)

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.number!r} status={self.status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "company_id": self.company_id,
            "client_id": self.client_id,
            "number": self.number,
            "date": to_utc_z(self.date),
            "due_date": to_utc_z(self.due_date),
            "status": self.status,
            "notes": self.notes,
            "terms": self.terms,
            **self.totals_dict(),
            "paid_amount_cents": self.paid_amount_cents,
            "balance_due_cents": self.balance_due_cents,
            "last_payment_date": to_utc_z(self.last_payment_date),
            "has_fiscal_stamp": self.has_fiscal_stamp,
            "fiscal_stamp_amount_cents": self.fiscal_stamp_amount_cents,
            "is_deposit": self.is_deposit,
            "deposit_for_invoice_id": self.deposit_for_invoice_id,
            "deposit_invoice_id": self.deposit_invoice_id,
            "deposit_amount_cents": self.deposit_amount_cents,
            "deposit_percentage_bps": self.deposit_percentage_bps,
            "has_credit_notes": self.has_credit_notes,
            "credit_note_ids": list(self.credit_note_ids or []),
            "credit_note_total_cents": self.credit_note_total_cents,
            "quote_id": self.quote_id,
            "proforma_id": self.proforma_id,
            "stock_location_id": self.stock_location_id,
            "stock_consumed": self.stock_consumed,
            "sent_at": to_utc_z(self.sent_at),
            "paid_at": to_utc_z(self.paid_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class Quote(DocumentTotalsMixin, db.Model):
    """
    Quote (devis).

    LIFECYCLE:
        draft -> pending_validation -> draft (validated or rejected internally)
        draft -> awaiting_acceptance -> {accepted, rejected, expired}
        accepted -> converted
    """
    __tablename__ = "quotes"
    __table_args__ = (
        db.UniqueConstraint("company_id", "number", name="uq_quotes_company_number"),
        db.Index("ix_quotes_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    number = db.Column(db.String(32), nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(24), nullable=False, default="draft", index=True)
    notes = db.Column(db.Text, nullable=True)

    is_validated = db.Column(db.Boolean, nullable=False, default=False)
    validated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    validation_note = db.Column(db.Text, nullable=True)

    reminder_enabled = db.Column(db.Boolean, nullable=False, default=False)
    reminder_days = db.Column(db.Integer, nullable=True)
    next_reminder_date = db.Column(db.DateTime(timezone=True), nullable=True)
    last_reminder_at = db.Column(db.DateTime(timezone=True), nullable=True)

    converted_invoice_id = db.Column(db.Integer, nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client")
    lines = db.relationship(
        "LineItem",
        primaryjoin="Quote.id == LineItem.quote_id",
        order_by="LineItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "company_id": self.company_id,
            "client_id": self.client_id,
            "number": self.number,
            "date": to_utc_z(self.date),
            "expiry_date": to_utc_z(self.expiry_date),
            "status": self.status,
            "notes": self.notes,
            **self.totals_dict(),
            "is_validated": self.is_validated,
            "validated_at": to_utc_z(self.validated_at),
            "validation_note": self.validation_note,
            "reminder_enabled": self.reminder_enabled,
            "reminder_days": self.reminder_days,
            "next_reminder_date": to_utc_z(self.next_reminder_date),
            "last_reminder_at": to_utc_z(self.last_reminder_at),
            "converted_invoice_id": self.converted_invoice_id,
            "sent_at": to_utc_z(self.sent_at),
            "accepted_at": to_utc_z(self.accepted_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class ProformaInvoice(DocumentTotalsMixin, db.Model):
    """
    Proforma invoice: informational only, no stock or accounting effect.

    LIFECYCLE: draft -> sent -> {converted, expired, cancelled}
    """
    __tablename__ = "proforma_invoices"
    __table_args__ = (
        db.UniqueConstraint("company_id", "number", name="uq_proforma_invoices_company_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    number = db.Column(db.String(32), nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    notes = db.Column(db.Text, nullable=True)

    converted_invoice_id = db.Column(db.Integer, nullable=True)
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client")
    lines = db.relationship(
        "LineItem",
        primaryjoin="ProformaInvoice.id == LineItem.proforma_id",
        order_by="LineItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "company_id": self.company_id,
            "client_id": self.client_id,
            "number": self.number,
            "date": to_utc_z(self.date),
            "valid_until": to_utc_z(self.valid_until),
            "status": self.status,
            "notes": self.notes,
            **self.totals_dict(),
            "converted_invoice_id": self.converted_invoice_id,
            "converted_at": to_utc_z(self.converted_at),
            "sent_at": to_utc_z(self.sent_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class CreditNote(DocumentTotalsMixin, db.Model):
    """
    Credit note (avoir) issued against an invoice.

    LIFECYCLE: draft -> issued -> applied, or cancelled.

    INVARIANT: applied_amount_cents + remaining_amount_cents == total_cents
    once issued, and remaining_amount_cents never goes below zero.
    """
    __tablename__ = "credit_notes"
    __table_args__ = (
        db.UniqueConstraint("company_id", "number", name="uq_credit_notes_company_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    number = db.Column(db.String(32), nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    # defective | mistake | goodwill | return | other
    reason = db.Column(db.String(16), nullable=False, default="return")
    reason_description = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    affects_stock = db.Column(db.Boolean, nullable=False, default=False)
    stock_adjusted = db.Column(db.Boolean, nullable=False, default=False)

    applied_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    is_fully_applied = db.Column(db.Boolean, nullable=False, default=False)

    issued_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client")
    invoice = db.relationship("Invoice", foreign_keys=[invoice_id])
    lines = db.relationship(
        "LineItem",
        primaryjoin="CreditNote.id == LineItem.credit_note_id",
        order_by="LineItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    applications = db.relationship(
        "CreditNoteApplication",
        backref="credit_note",
        order_by="CreditNoteApplication.id",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "company_id": self.company_id,
            "client_id": self.client_id,
            "invoice_id": self.invoice_id,
            "number": self.number,
            "date": to_utc_z(self.date),
            "status": self.status,
            "reason": self.reason,
            "reason_description": self.reason_description,
            "notes": self.notes,
            **self.totals_dict(),
            "affects_stock": self.affects_stock,
            "stock_adjusted": self.stock_adjusted,
            "applied_amount_cents": self.applied_amount_cents,
            "remaining_amount_cents": self.remaining_amount_cents,
            "is_fully_applied": self.is_fully_applied,
            "issued_at": to_utc_z(self.issued_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
            "applications": [a.to_dict() for a in self.applications],
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class CreditNoteApplication(db.Model):
    """Immutable record of one credit application: against an invoice XOR a refund."""
    __tablename__ = "credit_note_applications"
    __table_args__ = (
        db.CheckConstraint(
            "(target_invoice_id IS NOT NULL AND NOT is_refund) OR "
            "(target_invoice_id IS NULL AND is_refund)",
            name="target_xor_refund",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    credit_note_id = db.Column(db.Integer, db.ForeignKey("credit_notes.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    target_invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    is_refund = db.Column(db.Boolean, nullable=False, default=False)
    refund_method = db.Column(db.String(16), nullable=True)
    refund_reference = db.Column(db.String(128), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "credit_note_id": self.credit_note_id,
            "amount_cents": self.amount_cents,
            "date": to_utc_z(self.date),
            "target_invoice_id": self.target_invoice_id,
            "is_refund": self.is_refund,
            "refund_method": self.refund_method,
            "refund_reference": self.refund_reference,
        }


class EmailHistoryEntry(db.Model):
    """Outbound document email log (sends and reminders). Delivery itself is external."""
    __tablename__ = "email_history"
    __table_args__ = (
        db.Index("ix_email_history_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    entity_type = db.Column(db.String(16), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    # sent | reminder
    kind = db.Column(db.String(16), nullable=False, default="sent")
    recipients = db.Column(db.JSON, nullable=False, default=list)
    subject = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="sent")
    sent_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "kind": self.kind,
            "recipients": list(self.recipients or []),
            "subject": self.subject,
            "status": self.status,
            "sent_at": to_utc_z(self.sent_at),
        }
