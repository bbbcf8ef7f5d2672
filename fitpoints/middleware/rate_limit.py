"""
Rate limiting for the staff verification endpoints.

Pending codes are short, so lookups and confirms are throttled per caller to
keep brute-force guessing impractical within a confirmation window.
"""
from flask import current_app, g
from flask_limiter.util import get_remote_address

from ..extensions import limiter
from ..utils.errors import ErrorCode, error_response


def staff_rate_key() -> str:
    """Throttle per staff account once identified, else per client address."""
    staff_id = getattr(g, 'staff_id', None)
    if staff_id:
        return f'staff:{staff_id}'
    return get_remote_address()


def _staff_lookup_rate() -> str:
    return current_app.config['STAFF_LOOKUP_RATE_LIMIT']


staff_lookup_limit = limiter.limit(_staff_lookup_rate, key_func=staff_rate_key)


def init_rate_limiter(app):
    limiter.init_app(app)

    @app.errorhandler(429)
    def ratelimit_exceeded(error):
        return error_response(
            f'Too many requests: {error.description}',
            ErrorCode.RATE_LIMITED,
            429,
        )
