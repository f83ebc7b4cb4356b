# Overview: Shared JSON response helpers that map engine results to HTTP status codes.

from functools import wraps

from flask import jsonify, request

from ..services import errors
from ..services.errors import BillingError
from ..validation import payload_fields

HTTP_STATUS_BY_KIND = {
    errors.NOT_FOUND: 404,
    errors.INVALID_STATE: 409,
    errors.INSUFFICIENT_STOCK: 409,
    errors.INSUFFICIENT_CREDIT_REMAINING: 409,
    errors.NOT_ALL_ITEMS_COUNTED: 409,
    errors.NOT_STOCK_MANAGED: 422,
    errors.NO_DEFAULT_TAX_CONFIGURED: 422,
    errors.VALIDATION_ERROR: 400,
}


def failure_response(failure):
    """failure is an EngineFailure or a BillingError; both expose kind and to_dict()."""
    body = failure.to_dict()
    return jsonify({"error": body["message"], **body}), HTTP_STATUS_BY_KIND.get(failure.kind, 400)


def result_response(result, status: int = 200, serialize=None):
    if not result.ok:
        return failure_response(result.error)
    value = result.value
    if serialize is not None:
        value = serialize(value)
    elif hasattr(value, "to_dict"):
        value = value.to_dict()
    return jsonify(value), status


def read_payload(required=(), optional=()):
    """Parse the request body; raises ValidationError for the route to turn into a 400."""
    return payload_fields(request.get_json(silent=True), required=required, optional=optional)


def list_response(result):
    return result_response(result, serialize=lambda rows: {"items": [r.to_dict() for r in rows]})


def handle_payload_errors(f):
    """Turn payload ValidationErrors raised inside a route into 400 responses."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except BillingError as exc:
            return failure_response(exc)

    return decorated_function
