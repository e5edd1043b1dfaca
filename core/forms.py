# core/forms.py
"""
Form definitions

Each endpoint family differs only in its field rules, copy and policies, so
they are described here as data and served by one pipeline.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional, Tuple

from core.models import FormKind
from core.validation import ErrorMode, FieldRule

EMAIL_INVALID = 'Email is invalid'
PHONE_CHARSET = r'[\d\s+()\-]*'


@dataclass(frozen=True)
class FormDefinition:
    """Everything that distinguishes one form endpoint from another"""
    kind: FormKind
    url_prefix: str
    submit_paths: Tuple[str, ...]
    list_path: str
    rules: List[FieldRule] = field(hash=False)
    success_message: str
    error_mode: ErrorMode = ErrorMode.ALL
    rate_limited: bool = False
    record_ip: bool = False
    source: Optional[str] = None
    retention: Optional[timedelta] = None

    @property
    def name(self) -> str:
        return self.kind.value


def contact_rules() -> List[FieldRule]:
    return [
        FieldRule('name').required('Name is required').escape(),
        FieldRule('email').required('Email is required').email(EMAIL_INVALID),
        FieldRule('phone').optional()
            .max_length(20, 'Phone must be less than 20 characters')
            .matches(PHONE_CHARSET, 'Phone contains invalid characters')
            .escape(),
        FieldRule('category').required('Category is required').escape(),
        FieldRule('age').required('Age is required').escape(),
        FieldRule('message').required('Message is required').escape(),
    ]


def signup_rules() -> List[FieldRule]:
    return [
        FieldRule('name').required('Name is required')
            .min_length(3, 'Name must be at least 3 characters')
            .escape(),
        FieldRule('email').required('Email is required').email(EMAIL_INVALID),
        FieldRule('phone').required('Phone number is required')
            .matches(r'\d*', 'Phone number is invalid')
            .exact_length(10, 'Phone number must be 10 digits')
            .escape(),
    ]


def subdomain_contact_rules() -> List[FieldRule]:
    return [
        FieldRule('name').required('Name is required')
            .max_length(100, 'Name must be less than 100 characters')
            .escape(),
        FieldRule('email').required('Email is required').email(EMAIL_INVALID)
            .max_length(255, 'Email must be less than 255 characters'),
        FieldRule('phone').optional()
            .max_length(20, 'Phone must be less than 20 characters')
            .matches(PHONE_CHARSET, 'Phone contains invalid characters')
            .escape(),
    ]


def build_form_definitions(retention: Optional[timedelta] = timedelta(hours=24)) -> List[FormDefinition]:
    """
    Return the form endpoints served by the application

    All three forms report every failing field (``ErrorMode.ALL``); a form
    switches to first-error reporting by setting ``error_mode``.
    """
    return [
        FormDefinition(
            kind=FormKind.CONTACT,
            url_prefix='/api/contact',
            submit_paths=('/submit',),
            list_path='/submissions',
            rules=contact_rules(),
            success_message='Thank you for contacting us! We will get back to you soon.',
            rate_limited=True,
            record_ip=True,
        ),
        FormDefinition(
            kind=FormKind.SIGNUP,
            url_prefix='/api/signup',
            submit_paths=('', '/signup'),
            list_path='/signups',
            rules=signup_rules(),
            success_message='Thank you for signing up! We will contact you soon.',
            source='website_signup',
        ),
        FormDefinition(
            kind=FormKind.SUBDOMAIN_CONTACT,
            url_prefix='/subdomain-contact',
            submit_paths=('/submit',),
            list_path='/submissions',
            rules=subdomain_contact_rules(),
            success_message='Thank you for contacting us! We will get back to you soon.',
            rate_limited=True,
            record_ip=True,
            retention=retention,
        ),
    ]
