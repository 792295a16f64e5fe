# Overview: Shared JSON error responses for the armory blueprints.

from flask import jsonify

from ..services.errors import DistributionError
from ..validation import ValidationError


def error_response(exc: Exception):
    """Map a domain or validation error to its JSON body and HTTP status."""
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc), "code": "VALIDATION_ERROR", "retryable": False}), 400
    if isinstance(exc, DistributionError):
        return jsonify(exc.to_dict()), exc.http_status
    raise TypeError(f"Unhandled error type {type(exc).__name__}")
