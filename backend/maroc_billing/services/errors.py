# Overview: Domain error taxonomy shared by every billing service.

"""
Billing Error Kinds

Every service raises a BillingError subclass. Each error carries:
- kind: stable discriminator consumed by the engine facade and the API layer
- details: structured data (ids, amounts, states); no user-facing wording

The engine facade (maroc_billing.engine) converts these into EngineFailure
values after rolling back the transaction, so nothing raised here ever crosses
the engine boundary.
"""

from __future__ import annotations

NOT_FOUND = "NotFound"
INVALID_STATE = "InvalidState"
INSUFFICIENT_STOCK = "InsufficientStock"
INSUFFICIENT_CREDIT_REMAINING = "InsufficientCreditRemaining"
NOT_STOCK_MANAGED = "NotStockManaged"
NOT_ALL_ITEMS_COUNTED = "NotAllItemsCounted"
NO_DEFAULT_TAX_CONFIGURED = "NoDefaultTaxConfigured"
VALIDATION_ERROR = "ValidationError"

ERROR_KINDS = (
    NOT_FOUND,
    INVALID_STATE,
    INSUFFICIENT_STOCK,
    INSUFFICIENT_CREDIT_REMAINING,
    NOT_STOCK_MANAGED,
    NOT_ALL_ITEMS_COUNTED,
    NO_DEFAULT_TAX_CONFIGURED,
    VALIDATION_ERROR,
)


class BillingError(Exception):
    """Base class for domain errors raised by billing services."""

    kind = "BillingError"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "details": dict(self.details)}


class NotFoundError(BillingError):
    kind = NOT_FOUND

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id)


class InvalidStateError(BillingError):
    """Illegal lifecycle transition. Nothing was mutated."""

    kind = INVALID_STATE

    def __init__(self, entity: str, entity_id, current_status: str, action: str, **details):
        super().__init__(
            f"Cannot {action} {entity} {entity_id} in status {current_status}",
            entity=entity,
            entity_id=entity_id,
            current_status=current_status,
            action=action,
            **details,
        )


class InsufficientStockError(BillingError):
    kind = INSUFFICIENT_STOCK

    def __init__(self, items: list[dict]):
        summary = ", ".join(
            f"product {i['product_id']} (requested {i['requested']}, available {i['available']})"
            for i in items
        )
        super().__init__(f"Insufficient stock: {summary}", items=items)

    @property
    def items(self) -> list[dict]:
        return self.details["items"]


class InsufficientCreditRemainingError(BillingError):
    kind = INSUFFICIENT_CREDIT_REMAINING

    def __init__(self, credit_note_id: int, requested: int, remaining: int):
        super().__init__(
            f"Credit note {credit_note_id} has {remaining} remaining, cannot apply {requested}",
            credit_note_id=credit_note_id,
            requested=requested,
            remaining=remaining,
        )


class NotStockManagedError(BillingError):
    kind = NOT_STOCK_MANAGED

    def __init__(self, product_id: int, is_service: bool):
        super().__init__(
            f"Product {product_id} is not stock managed",
            product_id=product_id,
            is_service=is_service,
        )


class NotAllItemsCountedError(BillingError):
    kind = NOT_ALL_ITEMS_COUNTED

    def __init__(self, inventory_id: int, uncounted_product_ids: list[int]):
        super().__init__(
            f"Inventory {inventory_id} has {len(uncounted_product_ids)} uncounted items",
            inventory_id=inventory_id,
            uncounted_product_ids=uncounted_product_ids,
        )


class NoDefaultTaxConfiguredError(BillingError):
    kind = NO_DEFAULT_TAX_CONFIGURED

    def __init__(self, company_id: int):
        super().__init__(f"Company {company_id} has no default tax", company_id=company_id)


class ValidationError(BillingError):
    """400-level input problem (empty lines, non-positive quantity, ...)."""

    kind = VALIDATION_ERROR

    def __init__(self, message: str, field: str | None = None, **details):
        super().__init__(message, field=field, **details)
