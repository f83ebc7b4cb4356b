from __future__ import annotations

from ..extensions import db
from maroc_billing.time_utils import to_utc_z, utcnow


class ClientCategory(db.Model):
    """Client segment used by tax rules (e.g. export, public sector)."""
    __tablename__ = "client_categories"
    __table_args__ = (
        db.UniqueConstraint("company_id", "name", name="uq_client_categories_company_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "company_id": self.company_id, "name": self.name}


class Client(db.Model):
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_company_name", "company_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("client_categories.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    ice = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    city = db.Column(db.String(120), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    category = db.relationship("ClientCategory")

    def __repr__(self) -> str:
        return f"<Client id={self.id} name={self.name!r} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "category_id": self.category_id,
            "name": self.name,
            "ice": self.ice,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
