# core/errors.py
"""
Error taxonomy for the submission pipeline
"""

from typing import Dict, List, Optional


class FormServiceError(Exception):
    """Base exception for form processing; carries the HTTP status and a safe message"""

    status_code = 500
    public_message = 'Failed to process your submission. Please try again later.'

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)


class ValidationError(FormServiceError):
    """One or more fields failed validation"""

    status_code = 400
    public_message = 'Validation failed'

    def __init__(self, errors: List[Dict[str, str]]):
        super().__init__(self.public_message)
        self.errors = errors


class RateLimitError(FormServiceError):
    """Client exceeded the submission rate window"""

    status_code = 429
    public_message = 'Too many contact attempts, please try again later'

    def __init__(self, message: Optional[str] = None):
        super().__init__(message)
        self.public_message = message or type(self).public_message


class ConfigurationError(FormServiceError):
    """Mail transport cannot be built, usually missing credentials"""

    status_code = 503
    public_message = 'Email service is temporarily unavailable. Please try again later.'


class DispatchError(FormServiceError):
    """Sending the administrator notification failed"""

    status_code = 500


class SubmissionNotFound(FormServiceError):
    status_code = 404
    public_message = 'Submission not found'


class InvalidStatusTransition(FormServiceError, ValueError):
    """Submission status may only move forward from pending"""
