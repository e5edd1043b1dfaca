# core/validation.py
"""
Declarative field validation and sanitization for form payloads

Rules are built as chains, e.g.::

    FieldRule('name').required('Name is required').max_length(100, '...').escape()

Checks always run against the trimmed value; escaping is applied last so
length limits count what the user typed.
"""

import html
import re
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from email_validator import EmailNotValidError, validate_email

from core.errors import ValidationError


class ErrorMode(Enum):
    """How many errors a rejected payload reports"""
    ALL = "all"
    FIRST = "first"


def normalize_email(value: str) -> str:
    """Validate syntax and return the canonical lower-case address"""
    result = validate_email(value.strip(), check_deliverability=False)
    return result.normalized.lower()


def _coerce(raw: Any) -> str:
    if raw is None or isinstance(raw, (dict, list, tuple, set)):
        return ''
    if isinstance(raw, bool):
        return 'true' if raw else 'false'
    return str(raw)


class FieldRule:
    """Validation chain for a single field"""

    def __init__(self, field: str):
        self.field = field
        self._optional = False
        self._required_message = f'{field.capitalize()} is required'
        self._email_message: Optional[str] = None
        self._checks: List[Tuple[Callable[[str], bool], str]] = []
        self._escape = False

    def required(self, message: str) -> 'FieldRule':
        self._optional = False
        self._required_message = message
        return self

    def optional(self) -> 'FieldRule':
        self._optional = True
        return self

    def min_length(self, minimum: int, message: str) -> 'FieldRule':
        self._checks.append((lambda value: len(value) >= minimum, message))
        return self

    def max_length(self, maximum: int, message: str) -> 'FieldRule':
        self._checks.append((lambda value: len(value) <= maximum, message))
        return self

    def exact_length(self, length: int, message: str) -> 'FieldRule':
        self._checks.append((lambda value: len(value) == length, message))
        return self

    def matches(self, pattern: str, message: str) -> 'FieldRule':
        compiled = re.compile(pattern, re.ASCII)
        self._checks.append((lambda value: compiled.fullmatch(value) is not None, message))
        return self

    def email(self, message: str) -> 'FieldRule':
        self._email_message = message
        return self

    def escape(self) -> 'FieldRule':
        self._escape = True
        return self

    def check(self, raw: Any) -> Tuple[Optional[str], List[str]]:
        """Return the sanitized value and the messages of every failing check"""
        value = _coerce(raw).strip()
        if not value:
            if self._optional:
                return None, []
            return None, [self._required_message]

        errors = []
        if self._email_message is not None:
            try:
                value = normalize_email(value)
            except EmailNotValidError:
                errors.append(self._email_message)

        for predicate, message in self._checks:
            if not predicate(value):
                errors.append(message)

        if self._escape:
            value = html.escape(value, quote=True)
        return value, errors


def validate(payload: Any, rules: Iterable[FieldRule],
             mode: ErrorMode = ErrorMode.ALL) -> Dict[str, Optional[str]]:
    """
    Validate a raw payload against field rules

    Args:
        payload: Mapping of field name to submitted value; anything else is
            treated as an empty submission
        rules: Field rules in reporting order
        mode: Collect every error or stop at the first one

    Returns:
        Sanitized values keyed by field name

    Raises:
        ValidationError: with the ordered ``{'field', 'message'}`` list
    """
    data: Mapping[str, Any] = payload if isinstance(payload, Mapping) else {}
    cleaned: Dict[str, Optional[str]] = {}
    errors: List[Dict[str, str]] = []

    for rule in rules:
        value, messages = rule.check(data.get(rule.field))
        errors.extend({'field': rule.field, 'message': message} for message in messages)
        if errors and mode is ErrorMode.FIRST:
            break
        cleaned[rule.field] = value

    if errors:
        raise ValidationError(errors[:1] if mode is ErrorMode.FIRST else errors)
    return cleaned
