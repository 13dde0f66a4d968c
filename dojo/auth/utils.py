"""Authentication utilities for the admin endpoints."""
import hmac
from functools import wraps

from flask import current_app, jsonify, request

from dojo.logging_config import get_logger

logger = get_logger(__name__)

ADMIN_PIN_HEADER = "X-Admin-Pin"


def verify_admin_pin(pin) -> bool:
    """Compare a supplied PIN with ADMIN_PIN in constant time."""
    expected = current_app.config.get("ADMIN_PIN")
    if not expected or not pin:
        return False
    return hmac.compare_digest(str(pin).encode("utf-8"), str(expected).encode("utf-8"))


def admin_required(f):
    """
    Decorator to require the admin PIN for a route.

    Returns 401 Unauthorized if no PIN is supplied.
    Returns 403 Forbidden if the PIN is wrong.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        pin = request.headers.get(ADMIN_PIN_HEADER)
        if not pin:
            return jsonify({'error': 'Authentication required'}), 401
        if not verify_admin_pin(pin):
            logger.warning("Rejected admin request with wrong PIN", path=request.path,
                           remote_addr=request.remote_addr)
            return jsonify({'error': 'Admin privileges required'}), 403
        return f(*args, **kwargs)
    return decorated_function
