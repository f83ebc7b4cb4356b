# Overview: Service-layer operations for lifecycle; the transition tables of every billing document.

"""
Document Lifecycle Service

================================================================================
PURPOSE: One table per document type lists which action is legal from which
status and where it leads. Document services call require_transition() before
mutating anything, so an illegal action raises InvalidState with no side effect.
================================================================================

INVOICE:
    draft --send--> sent
    sent --record_payment--> partial | paid        (derived from settlement)
    partial --record_payment--> partial | paid
    sent --mark_overdue--> overdue
    sent | overdue --cancel--> cancelled
    paid, cancelled are terminal

QUOTE:
    draft --submit_for_validation--> pending_validation
    pending_validation --validate | reject_validation--> draft
    draft | pending_validation | awaiting_acceptance --send--> awaiting_acceptance
    awaiting_acceptance --accept--> accepted
    awaiting_acceptance --decline--> rejected
    awaiting_acceptance --expire--> expired
    accepted --convert--> converted

PROFORMA:
    draft --send--> sent
    sent --convert--> converted
    sent --expire--> expired
    draft | sent --cancel--> cancelled

CREDIT NOTE:
    draft --issue--> issued
    issued --apply--> issued | applied             (applied once remaining == 0)
    draft | issued --cancel--> cancelled            (issued only while nothing applied)

INVENTORY:
    draft --start--> in_progress
    in_progress --record_count--> in_progress
    in_progress --complete--> completed
    draft | in_progress --cancel--> cancelled
"""

from __future__ import annotations

from .errors import InvalidStateError, ValidationError

# Invoice statuses
INVOICE_DRAFT = "draft"
INVOICE_SENT = "sent"
INVOICE_PAID = "paid"
INVOICE_PARTIAL = "partial"
INVOICE_OVERDUE = "overdue"
INVOICE_CANCELLED = "cancelled"

# Quote statuses
QUOTE_DRAFT = "draft"
QUOTE_PENDING_VALIDATION = "pending_validation"
QUOTE_AWAITING_ACCEPTANCE = "awaiting_acceptance"
QUOTE_ACCEPTED = "accepted"
QUOTE_REJECTED = "rejected"
QUOTE_EXPIRED = "expired"
QUOTE_CONVERTED = "converted"

# Proforma statuses
PROFORMA_DRAFT = "draft"
PROFORMA_SENT = "sent"
PROFORMA_CONVERTED = "converted"
PROFORMA_EXPIRED = "expired"
PROFORMA_CANCELLED = "cancelled"

# Credit note statuses
CREDIT_NOTE_DRAFT = "draft"
CREDIT_NOTE_ISSUED = "issued"
CREDIT_NOTE_APPLIED = "applied"
CREDIT_NOTE_CANCELLED = "cancelled"

# Inventory statuses
INVENTORY_DRAFT = "draft"
INVENTORY_IN_PROGRESS = "in_progress"
INVENTORY_COMPLETED = "completed"
INVENTORY_CANCELLED = "cancelled"


# action -> (allowed source statuses, target status or None when derived)
INVOICE_TRANSITIONS = {
    "edit": ({INVOICE_DRAFT}, INVOICE_DRAFT),
    "delete": ({INVOICE_DRAFT}, None),
    "send": ({INVOICE_DRAFT}, INVOICE_SENT),
    "record_payment": ({INVOICE_SENT, INVOICE_PARTIAL}, None),
    "mark_paid": ({INVOICE_SENT, INVOICE_PARTIAL}, INVOICE_PAID),
    "mark_overdue": ({INVOICE_SENT}, INVOICE_OVERDUE),
    "cancel": ({INVOICE_SENT, INVOICE_OVERDUE}, INVOICE_CANCELLED),
    "create_deposit": ({INVOICE_DRAFT, INVOICE_SENT, INVOICE_PARTIAL}, None),
}

QUOTE_TRANSITIONS = {
    "edit": ({QUOTE_DRAFT, QUOTE_PENDING_VALIDATION, QUOTE_AWAITING_ACCEPTANCE}, None),
    "delete": ({QUOTE_DRAFT}, None),
    "submit_for_validation": ({QUOTE_DRAFT}, QUOTE_PENDING_VALIDATION),
    "validate": ({QUOTE_PENDING_VALIDATION}, QUOTE_DRAFT),
    "reject_validation": ({QUOTE_PENDING_VALIDATION}, QUOTE_DRAFT),
    "send": ({QUOTE_DRAFT, QUOTE_PENDING_VALIDATION, QUOTE_AWAITING_ACCEPTANCE}, QUOTE_AWAITING_ACCEPTANCE),
    "accept": ({QUOTE_AWAITING_ACCEPTANCE}, QUOTE_ACCEPTED),
    "decline": ({QUOTE_AWAITING_ACCEPTANCE}, QUOTE_REJECTED),
    "expire": ({QUOTE_AWAITING_ACCEPTANCE}, QUOTE_EXPIRED),
    "convert": ({QUOTE_ACCEPTED}, QUOTE_CONVERTED),
    "configure_reminder": ({QUOTE_DRAFT, QUOTE_PENDING_VALIDATION, QUOTE_AWAITING_ACCEPTANCE}, None),
}

PROFORMA_TRANSITIONS = {
    "edit": ({PROFORMA_DRAFT}, PROFORMA_DRAFT),
    "delete": ({PROFORMA_DRAFT}, None),
    "send": ({PROFORMA_DRAFT}, PROFORMA_SENT),
    "convert": ({PROFORMA_SENT}, PROFORMA_CONVERTED),
    "expire": ({PROFORMA_SENT}, PROFORMA_EXPIRED),
    "cancel": ({PROFORMA_DRAFT, PROFORMA_SENT}, PROFORMA_CANCELLED),
}

CREDIT_NOTE_TRANSITIONS = {
    "edit": ({CREDIT_NOTE_DRAFT}, CREDIT_NOTE_DRAFT),
    "delete": ({CREDIT_NOTE_DRAFT}, None),
    "issue": ({CREDIT_NOTE_DRAFT}, CREDIT_NOTE_ISSUED),
    "apply": ({CREDIT_NOTE_ISSUED}, None),
    "cancel": ({CREDIT_NOTE_DRAFT, CREDIT_NOTE_ISSUED}, CREDIT_NOTE_CANCELLED),
}

INVENTORY_TRANSITIONS = {
    "delete": ({INVENTORY_DRAFT}, None),
    "start": ({INVENTORY_DRAFT}, INVENTORY_IN_PROGRESS),
    "record_count": ({INVENTORY_IN_PROGRESS}, INVENTORY_IN_PROGRESS),
    "complete": ({INVENTORY_IN_PROGRESS}, INVENTORY_COMPLETED),
    "cancel": ({INVENTORY_DRAFT, INVENTORY_IN_PROGRESS}, INVENTORY_CANCELLED),
}

TRANSITION_TABLES = {
    "invoice": INVOICE_TRANSITIONS,
    "quote": QUOTE_TRANSITIONS,
    "proforma": PROFORMA_TRANSITIONS,
    "credit_note": CREDIT_NOTE_TRANSITIONS,
    "inventory": INVENTORY_TRANSITIONS,
}


def _table(entity: str) -> dict:
    try:
        return TRANSITION_TABLES[entity]
    except KeyError:
        raise ValidationError(f"Unknown document type: {entity}", field="document_type")


def can_transition(entity: str, current_status: str, action: str) -> bool:
    """True when action is legal from current_status for this document type."""
    rule = _table(entity).get(action)
    if rule is None:
        return False
    allowed_from, _target = rule
    return current_status in allowed_from


def require_transition(entity: str, document, action: str) -> str | None:
    """
    Guard a lifecycle action.

    Returns the target status (None when the service derives it), or raises
    InvalidStateError naming the attempted action and the current status.
    """
    table = _table(entity)
    if action not in table:
        raise ValidationError(f"Unknown {entity} action: {action}", field="action")
    if not can_transition(entity, document.status, action):
        raise InvalidStateError(entity, document.id, document.status, action)
    return table[action][1]
