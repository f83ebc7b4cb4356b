# Overview: Service-layer operations for document numbering; allocates gap-free yearly numbers.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence
from maroc_billing.time_utils import utcnow
from .errors import ValidationError

# Moroccan document prefixes: facture, devis, proforma, avoir, inventaire
DOCUMENT_PREFIXES = {
    "invoice": "FAC",
    "quote": "DEV",
    "proforma": "PRO",
    "credit_note": "AV",
    "inventory": "INV",
}


def next_document_number(
    *,
    company_id: int,
    document_type: str,
    year: int | None = None,
    pad: int = 5,
) -> str:
    """
    Allocate the next document number for a company/type/year.

    Runs inside the caller's transaction: the UPDATE takes a row lock on the
    sequence, so two concurrent documents never share a number, and a rolled
    back document releases its number together with everything else.
    """
    if not company_id:
        raise ValidationError("company_id is required", field="company_id")
    prefix = DOCUMENT_PREFIXES.get(document_type)
    if prefix is None:
        raise ValidationError(f"Unknown document type: {document_type}", field="document_type")
    year = year or utcnow().year

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.company_id == company_id,
            DocumentSequence.document_type == document_type,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(company_id=company_id, document_type=document_type, year=year)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(DocumentSequence(
            company_id=company_id,
            document_type=document_type,
            year=year,
            next_number=2,
        ))
        db.session.flush()
        number = 1

    return f"{prefix}-{year}-{number:0{pad}d}"
