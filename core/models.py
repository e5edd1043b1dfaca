# core/models.py
"""
In-memory data model for form submissions
"""

import uuid
from dataclasses import dataclass, asdict, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class FormKind(Enum):
    """Form types served by the relay"""
    CONTACT = "contact"
    SIGNUP = "signup"
    SUBDOMAIN_CONTACT = "subdomain_contact"


class SubmissionStatus(Enum):
    """Lifecycle status of a submission"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def new_submission_id() -> str:
    """Generate a unique submission identifier"""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Submission:
    """A validated, stored record of one form post"""
    id: str
    form: FormKind
    name: str
    email: str
    date: datetime
    status: SubmissionStatus = SubmissionStatus.PENDING
    phone: Optional[str] = None
    category: Optional[str] = None
    message: Optional[str] = None
    age: Optional[str] = None
    source: Optional[str] = None
    ip: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def create(cls, form: FormKind, fields: Dict[str, Any],
               ip: Optional[str] = None, source: Optional[str] = None,
               date: Optional[datetime] = None) -> 'Submission':
        """Build a pending submission from validated fields"""
        return cls(
            id=new_submission_id(),
            form=form,
            name=fields['name'],
            email=fields['email'],
            date=date or utcnow(),
            phone=fields.get('phone'),
            category=fields.get('category'),
            message=fields.get('message'),
            age=fields.get('age'),
            source=source,
            ip=ip,
        )

    def with_status(self, status: SubmissionStatus, error: Optional[str] = None) -> 'Submission':
        return replace(self, status=status, error=error)

    def summary(self) -> Dict[str, str]:
        return {'id': self.id, 'name': self.name, 'email': self.email}

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['form'] = self.form.value
        data['status'] = self.status.value
        data['date'] = self.date.isoformat()
        return data
