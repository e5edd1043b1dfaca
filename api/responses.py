# api/responses.py
"""
JSON response bodies for the form endpoints
"""

from typing import Iterable

from flask import jsonify

from core.errors import FormServiceError, RateLimitError, ValidationError
from core.models import Submission


def success_response(message: str, submission: Submission):
    return jsonify({
        'success': True,
        'message': message,
        'data': submission.summary(),
    }), 200


def listing_response(submissions: Iterable[Submission]):
    data = [submission.to_dict() for submission in submissions]
    return jsonify({
        'success': True,
        'count': len(data),
        'data': data,
    }), 200


def error_response(error: FormServiceError, expose_detail: bool = False):
    """
    Map a pipeline error to its status code and a client-safe body

    Args:
        error: the raised pipeline error
        expose_detail: include the internal error text (non-production only)
    """
    body = {'success': False, 'message': error.public_message}
    if isinstance(error, ValidationError):
        body['errors'] = error.errors
    elif expose_detail and not isinstance(error, RateLimitError):
        body['error'] = str(error)
    return jsonify(body), error.status_code
