# Overview: Service-layer operations for taxes; resolves the applicable tax per (product, client).

"""
Tax Resolution

RULES:
1. Active TaxRules of the company are evaluated by priority (highest first),
   then by rule id (lowest first) so equal priorities resolve deterministically.
2. A rule matches when each of its category constraints is either unset or
   contains the product's / client's category.
3. The first matching rule wins; its first active tax is returned.
4. No match -> the company's active default tax, else NoDefaultTaxConfigured.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Client, Product, Tax, TaxRule
from .errors import NoDefaultTaxConfiguredError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

VALID_APPLIES_TO = ("all", "products", "services")


def _category_matches(allowed_ids, category_id) -> bool:
    # None / empty list means the rule is not constrained on this axis
    if not allowed_ids:
        return True
    return category_id is not None and category_id in allowed_ids


def rule_matches(rule: TaxRule, product: Product, client: Client | None) -> bool:
    if not _category_matches(rule.product_category_ids, product.category_id):
        return False
    client_category_id = client.category_id if client is not None else None
    return _category_matches(rule.client_category_ids, client_category_id)


def get_active_rules(company_id: int) -> list[TaxRule]:
    return (
        db.session.query(TaxRule)
        .filter_by(company_id=company_id, is_active=True)
        .order_by(TaxRule.priority.desc(), TaxRule.id.asc())
        .all()
    )


def get_default_tax(company_id: int) -> Tax:
    tax = (
        db.session.query(Tax)
        .filter_by(company_id=company_id, is_default=True, is_active=True)
        .order_by(Tax.id.asc())
        .first()
    )
    if tax is None:
        raise NoDefaultTaxConfiguredError(company_id)
    return tax


def _first_tax_of_rule(company_id: int, rule: TaxRule) -> Tax | None:
    for tax_id in rule.tax_ids or []:
        tax = db.session.query(Tax).filter_by(id=tax_id, company_id=company_id, is_active=True).first()
        if tax is not None:
            return tax
    return None


def resolve_tax(company_id: int, product_id: int, client_id: int | None = None) -> Tax:
    """
    Pick the tax that applies to a product sold to a client.

    Raises:
        NotFoundError: product or client missing in this company
        NoDefaultTaxConfiguredError: no rule matched and no default exists
    """
    product = db.session.query(Product).filter_by(id=product_id, company_id=company_id).first()
    if product is None:
        raise NotFoundError("product", product_id)

    client = None
    if client_id is not None:
        client = db.session.query(Client).filter_by(id=client_id, company_id=company_id).first()
        if client is None:
            raise NotFoundError("client", client_id)

    for rule in get_active_rules(company_id):
        if not rule_matches(rule, product, client):
            continue
        tax = _first_tax_of_rule(company_id, rule)
        if tax is None:
            # A rule whose taxes were all deactivated cannot apply
            logger.warning("Tax rule %s matched but has no active tax", rule.id)
            continue
        logger.debug("Tax rule %s resolved tax %s for product %s", rule.id, tax.id, product_id)
        return tax

    return get_default_tax(company_id)


def create_tax(
    company_id: int,
    *,
    name: str,
    rate_bps: int,
    type: str = "vat",
    applies_to: str = "all",
    is_default: bool = False,
) -> Tax:
    if not name or not name.strip():
        raise ValidationError("name is required", field="name")
    if not isinstance(rate_bps, int) or isinstance(rate_bps, bool) or rate_bps < 0:
        raise ValidationError("rate_bps must be a non-negative integer", field="rate_bps")
    if applies_to not in VALID_APPLIES_TO:
        raise ValidationError(f"applies_to must be one of {VALID_APPLIES_TO}", field="applies_to")

    if is_default:
        # Only one default per company
        db.session.query(Tax).filter_by(company_id=company_id, is_default=True).update({"is_default": False})

    tax = Tax(
        company_id=company_id,
        name=name.strip(),
        rate_bps=rate_bps,
        type=type,
        applies_to=applies_to,
        is_default=is_default,
    )
    db.session.add(tax)
    db.session.flush()
    return tax


def create_tax_rule(
    company_id: int,
    *,
    name: str,
    tax_ids: list[int],
    priority: int = 0,
    product_category_ids: list[int] | None = None,
    client_category_ids: list[int] | None = None,
) -> TaxRule:
    if not tax_ids:
        raise ValidationError("tax_ids must not be empty", field="tax_ids")
    for tax_id in tax_ids:
        if db.session.query(Tax).filter_by(id=tax_id, company_id=company_id).first() is None:
            raise NotFoundError("tax", tax_id)

    rule = TaxRule(
        company_id=company_id,
        name=name,
        tax_ids=list(tax_ids),
        priority=priority,
        product_category_ids=list(product_category_ids) if product_category_ids else None,
        client_category_ids=list(client_category_ids) if client_category_ids else None,
    )
    db.session.add(rule)
    db.session.flush()
    return rule
