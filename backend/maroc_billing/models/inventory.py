from __future__ import annotations

from ..extensions import db
from maroc_billing.time_utils import to_utc_z, utcnow


class ProductCategory(db.Model):
    __tablename__ = "product_categories"
    __table_args__ = (
        db.UniqueConstraint("company_id", "name", name="uq_product_categories_company_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "company_id": self.company_id, "name": self.name}


class Product(db.Model):
    """
    Product or service master data.

    STOCK DESIGN:
    current_stock is a cached projection of the stock ledger. It is written
    only by stock_service.record_movement, in the same transaction as the
    StockMovement that produces it. Services (is_service=True) never carry
    stock and never appear in the ledger.

    version_id provides optimistic locking on top of SELECT ... FOR UPDATE so
    concurrent sales of the same product cannot both read the same stock.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("company_id", "reference", name="uq_products_company_reference"),
        db.Index("ix_products_company_name", "company_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    reference = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)
    unit = db.Column(db.String(32), nullable=False, default="piece")

    # Authoritative storage in centimes
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    # 0, 700, 1000, 1400, 2000 in Morocco
    vat_rate_bps = db.Column(db.Integer, nullable=False, default=2000)

    is_service = db.Column(db.Boolean, nullable=False, default=False)
    manage_stock = db.Column(db.Boolean, nullable=False, default=False)
    current_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=True)
    alert_stock = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("ProductCategory")
    location = db.relationship("StockLocation")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_stock_managed(self) -> bool:
        return bool(self.manage_stock) and not self.is_service

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "category_id": self.category_id,
            "location_id": self.location_id,
            "name": self.name,
            "reference": self.reference,
            "description": self.description,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "vat_rate_bps": self.vat_rate_bps,
            "is_service": self.is_service,
            "manage_stock": self.manage_stock,
            "current_stock": self.current_stock,
            "min_stock": self.min_stock,
            "alert_stock": self.alert_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger entry.

    new_stock = previous_stock + quantity, always. Rows are never updated or
    deleted; corrections are new movements.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_company_product", "company_id", "product_id", "id"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=True, index=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "type": self.type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "reason": self.reason,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class Inventory(db.Model):
    """
    Physical stock count session.

    LIFECYCLE:
    1. draft: created, nothing snapshotted yet
    2. in_progress: expected quantities snapshotted, counts being entered
    3. completed: differences posted to the stock ledger as `inventory` movements
    4. cancelled: abandoned, no ledger effect
    """
    __tablename__ = "inventories"
    __table_args__ = (
        db.UniqueConstraint("company_id", "number", name="uq_inventories_company_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=True, index=True)

    number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    notes = db.Column(db.Text, nullable=True)
    adjustments_applied = db.Column(db.Boolean, nullable=False, default=False)

    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "InventoryItem",
        backref="inventory",
        lazy=True,
        order_by="InventoryItem.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "location_id": self.location_id,
            "number": self.number,
            "status": self.status,
            "notes": self.notes,
            "adjustments_applied": self.adjustments_applied,
            "started_at": to_utc_z(self.started_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "items": [item.to_dict() for item in self.items],
        }


class InventoryItem(db.Model):
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("inventory_id", "product_id", name="uq_inventory_items_inventory_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventories.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    expected_quantity = db.Column(db.Integer, nullable=False)
    actual_quantity = db.Column(db.Integer, nullable=False, default=0)
    # actual_quantity starts at 0; is_counted distinguishes "counted zero" from "not counted yet"
    is_counted = db.Column(db.Boolean, nullable=False, default=False)
    counted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    product = db.relationship("Product")

    @property
    def difference(self) -> int:
        return self.actual_quantity - self.expected_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_id": self.inventory_id,
            "product_id": self.product_id,
            "expected_quantity": self.expected_quantity,
            "actual_quantity": self.actual_quantity,
            "is_counted": self.is_counted,
            "difference": self.difference if self.is_counted else None,
            "counted_at": to_utc_z(self.counted_at),
            "movement_id": self.movement_id,
        }
