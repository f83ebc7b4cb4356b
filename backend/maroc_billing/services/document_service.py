# Overview: Service-layer helpers shared by every line-item document; line building, totals and email history.

from __future__ import annotations

from typing import Iterable

from ..extensions import db
from ..models import Client, Company, EmailHistoryEntry, LineItem, Product
from maroc_billing.time_utils import normalize_datetime, utcnow
from .concurrency import get_locked
from .errors import NoDefaultTaxConfiguredError, NotFoundError, ValidationError
from .tax_service import resolve_tax
from .totals_service import LineInput, calculate_totals, validate_line

# LineItem FK column per document type
LINE_OWNER_COLUMNS = {
    "invoice": "invoice_id",
    "quote": "quote_id",
    "proforma": "proforma_id",
    "credit_note": "credit_note_id",
}


def get_company(company_id: int) -> Company:
    company = db.session.get(Company, company_id)
    if company is None:
        raise NotFoundError("company", company_id)
    return company


def get_client(company_id: int, client_id: int) -> Client:
    if client_id is None:
        raise ValidationError("client_id is required", field="client_id")
    client = db.session.query(Client).filter_by(id=client_id, company_id=company_id).first()
    if client is None:
        raise NotFoundError("client", client_id)
    return client


def get_document(model, entity: str, company_id: int, document_id: int, *, lock: bool = False):
    """Company-scoped fetch; another company's document is reported as missing."""
    if lock:
        document = get_locked(model, company_id=company_id, entity_id=document_id)
    else:
        document = db.session.query(model).filter_by(id=document_id, company_id=company_id).first()
    if document is None:
        raise NotFoundError(entity, document_id)
    return document


def _resolve_vat_rate(company_id: int, product: Product, client_id: int | None) -> int:
    try:
        return resolve_tax(company_id, product.id, client_id).rate_bps
    except NoDefaultTaxConfiguredError:
        # No rule and no default tax: the product's own rate applies
        return product.vat_rate_bps or 0


def build_line_inputs(company_id: int, client_id: int | None, items) -> list[LineInput]:
    """
    Normalize raw line payloads into validated LineInputs.

    Product lines default their description and unit price from the product;
    a missing VAT rate is resolved through the tax rules. Free-text lines must
    carry their own price and default to 0% VAT.
    """
    if not items:
        raise ValidationError("At least one line item is required", field="items")

    lines: list[LineInput] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError("line items must be objects", field=f"items[{index}]")

        product_id = item.get("product_id")
        description = item.get("description")
        unit_price = item.get("unit_price_cents")
        vat_rate = item.get("vat_rate_bps")

        if product_id is not None:
            product = db.session.query(Product).filter_by(id=product_id, company_id=company_id).first()
            if product is None:
                raise NotFoundError("product", product_id)
            if description is None:
                description = product.name
            if unit_price is None:
                unit_price = product.price_cents
            if vat_rate is None:
                vat_rate = _resolve_vat_rate(company_id, product, client_id)
        else:
            if not description:
                raise ValidationError("free-text lines need a description", field=f"items[{index}].description")
            if unit_price is None:
                raise ValidationError("free-text lines need a unit price", field=f"items[{index}].unit_price_cents")
            if vat_rate is None:
                vat_rate = 0

        line = LineInput(
            quantity=item.get("quantity"),
            unit_price_cents=unit_price,
            vat_rate_bps=vat_rate,
            discount_cents=item.get("discount_cents") or 0,
            product_id=product_id,
            description=description,
        )
        validate_line(line, index)
        lines.append(line)
    return lines


def replace_lines(document, document_type: str, lines: Iterable[LineInput]) -> None:
    """Swap a document's lines for new ones and refresh its calculated totals."""
    owner_column = LINE_OWNER_COLUMNS[document_type]
    document.lines.clear()
    db.session.flush()
    for position, line in enumerate(lines):
        document.lines.append(LineItem(
            product_id=line.product_id,
            position=position,
            description=line.description,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            vat_rate_bps=line.vat_rate_bps,
            discount_cents=line.discount_cents,
            total_cents=line.total_cents,
            **{owner_column: document.id},
        ))
    refresh_totals(document)


def refresh_totals(document, extra_cents: int = 0) -> None:
    """Recompute stored totals from the current lines; extra_cents is added to the total (fiscal stamp)."""
    totals = calculate_totals(document.lines)
    document.subtotal_cents = totals.subtotal_cents
    document.vat_amount_cents = totals.vat_amount_cents
    document.discount_cents = totals.discount_cents
    document.total_cents = totals.total_cents + extra_cents


def copy_lines(source) -> list[LineInput]:
    """Freeze another document's lines so they can be written onto a new document."""
    return [LineInput.from_value(line) for line in source.lines]


def record_email(
    company_id: int,
    entity_type: str,
    entity_id: int,
    *,
    kind: str = "sent",
    recipients: list[str] | None = None,
    subject: str | None = None,
) -> EmailHistoryEntry:
    entry = EmailHistoryEntry(
        company_id=company_id,
        entity_type=entity_type,
        entity_id=entity_id,
        kind=kind,
        recipients=list(recipients or []),
        subject=subject,
        sent_at=utcnow(),
    )
    db.session.add(entry)
    return entry


def default_recipients(document) -> list[str]:
    client = getattr(document, "client", None)
    if client is not None and client.email:
        return [client.email]
    return []


def parse_date(value, field: str):
    try:
        return normalize_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date", field=field)


def touch(document) -> None:
    document.updated_at = utcnow()
