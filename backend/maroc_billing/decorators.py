# Overview: Request decorators for API routes; tenant context from the X-Company-Id header.

from functools import wraps

from flask import g, jsonify, request

from .engine import BillingEngine
from .extensions import db
from .models import Company

COMPANY_HEADER = "X-Company-Id"


def require_company(f):
    """
    Establish tenant context.

    MULTI-TENANT: Sets g.company_id and g.engine (a BillingEngine bound to
    that company) for the route. Every service call made through g.engine is
    scoped to this company; documents of other companies read as not found.

    Returns 400 if the header is missing or not an integer, 404 if the
    company does not exist or is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(COMPANY_HEADER)
        if not raw:
            return jsonify({"error": f"{COMPANY_HEADER} header required"}), 400
        try:
            company_id = int(raw)
        except ValueError:
            return jsonify({"error": f"{COMPANY_HEADER} must be an integer"}), 400

        company = db.session.get(Company, company_id)
        if company is None or not company.is_active:
            return jsonify({"error": "Company not found"}), 404

        g.company_id = company_id
        g.engine = BillingEngine(company_id)
        return f(*args, **kwargs)

    return decorated_function
