from __future__ import annotations

from ..extensions import db
from maroc_billing.time_utils import to_utc_z, utcnow


class Tax(db.Model):
    """
    A tax rate (TVA 20%, 14%, 10%, 7%, exempt).

    At most one active default per company is used as the resolver fallback.
    """
    __tablename__ = "taxes"
    __table_args__ = (
        db.Index("ix_taxes_company_default", "company_id", "is_default"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    rate_bps = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(16), nullable=False, default="vat")
    # all | products | services
    applies_to = db.Column(db.String(16), nullable=False, default="all")

    is_default = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Tax id={self.id} name={self.name!r} rate_bps={self.rate_bps}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "rate_bps": self.rate_bps,
            "type": self.type,
            "applies_to": self.applies_to,
            "is_default": self.is_default,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class TaxRule(db.Model):
    """
    Prioritized tax selection rule.

    A null category list means "no constraint" on that axis. Higher priority
    wins; equal priorities fall back to the lower rule id.
    """
    __tablename__ = "tax_rules"
    __table_args__ = (
        db.Index("ix_tax_rules_company_priority", "company_id", "priority"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    tax_ids = db.Column(db.JSON, nullable=False, default=list)
    product_category_ids = db.Column(db.JSON, nullable=True)
    client_category_ids = db.Column(db.JSON, nullable=True)
    priority = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "tax_ids": list(self.tax_ids or []),
            "product_category_ids": self.product_category_ids,
            "client_category_ids": self.client_category_ids,
            "priority": self.priority,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
