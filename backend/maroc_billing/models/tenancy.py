from __future__ import annotations

from ..extensions import db
from maroc_billing.time_utils import to_utc_z, utcnow


class Company(db.Model):
    """
    Multi-tenant root: every tenant is a Company.

    All clients, products, documents, movements and payments belong to exactly
    one company. No data may cross company boundaries.
    """
    __tablename__ = "companies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    # Moroccan legal identifiers printed on invoices
    ice = db.Column(db.String(32), nullable=True)
    tax_id = db.Column(db.String(32), nullable=True)

    currency = db.Column(db.String(3), nullable=False, default="MAD")
    # Overrides FISCAL_STAMP_DEFAULT_CENTS when set
    fiscal_stamp_cents = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Company id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "ice": self.ice,
            "tax_id": self.tax_id,
            "currency": self.currency,
            "fiscal_stamp_cents": self.fiscal_stamp_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockLocation(db.Model):
    """Warehouse or shop where stock is held. One default per company."""
    __tablename__ = "stock_locations"
    __table_args__ = (
        db.UniqueConstraint("company_id", "name", name="uq_stock_locations_company_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.Text, nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    company = db.relationship("Company", backref=db.backref("stock_locations", lazy=True))

    def __repr__(self) -> str:
        return f"<StockLocation id={self.id} name={self.name!r} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "address": self.address,
            "is_default": self.is_default,
            "created_at": to_utc_z(self.created_at),
        }
