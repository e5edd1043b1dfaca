# middleware/rate_limiting.py
"""
Per-address rate limiting for the contact endpoints
"""

import logging

from flask import Flask, current_app, request
from flask_limiter import Limiter, RateLimitExceeded
from flask_limiter.util import get_remote_address

from api.responses import error_response
from core.errors import RateLimitError

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = 'Too many contact attempts, please try again later'


def contact_rate_limit() -> str:
    """Limit string for contact forms, e.g. '5 per 15 minutes'"""
    return current_app.config.get('CONTACT_RATE_LIMIT', '5 per 15 minutes')


def init_rate_limiting(app: Flask) -> Limiter:
    """
    Create the application's limiter

    Storage, strategy and header settings come from the RATELIMIT_* config
    keys. No default limits apply; forms opt in with ``limit_contact``.
    """
    limiter = Limiter(key_func=get_remote_address, app=app)

    @app.errorhandler(RateLimitExceeded)
    def rate_limit_exceeded(error):
        logger.warning(f"Rate limit exceeded for {request.remote_addr} on {request.path}")
        return error_response(RateLimitError(error.description or RATE_LIMIT_MESSAGE))

    return limiter


def limit_contact(limiter: Limiter, view_func):
    """Apply the contact rate limit to a view function"""
    return limiter.limit(contact_rate_limit, error_message=RATE_LIMIT_MESSAGE)(view_func)
