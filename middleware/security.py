# middleware/security.py
"""
Request/response hooks: security headers and request timing
"""

import logging
from datetime import datetime

from flask import Flask, current_app, g, request

logger = logging.getLogger(__name__)


def security_headers(response):
    """Add the configured security headers to a response"""
    for header, value in current_app.config.get('SECURITY_HEADERS', {}).items():
        response.headers.setdefault(header, value)
    return response


def register_request_hooks(app: Flask) -> None:
    @app.before_request
    def before_request():
        g.start_time = datetime.utcnow()

    @app.after_request
    def after_request(response):
        response = security_headers(response)

        if hasattr(g, 'start_time'):
            duration = (datetime.utcnow() - g.start_time).total_seconds() * 1000
            if duration > app.config.get('SLOW_REQUEST_THRESHOLD', 1000):
                logger.warning(f"Slow request ({duration:.0f}ms): {request.method} {request.path}")
            else:
                logger.debug(f"{request.method} {request.path} -> {response.status_code} ({duration:.0f}ms)")

        return response
