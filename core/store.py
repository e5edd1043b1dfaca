# core/store.py
"""
Submission storage

Records live in process memory and are lost on restart. Stores are injected
into the pipeline so a durable implementation can replace the in-memory one.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import List, Optional

from core.errors import InvalidStatusTransition, SubmissionNotFound
from core.models import Submission, SubmissionStatus, utcnow

logger = logging.getLogger(__name__)


class SubmissionStore(ABC):
    """Storage contract for accepted submissions"""

    @abstractmethod
    def insert(self, submission: Submission) -> str:
        """Store a new submission and return its id"""

    @abstractmethod
    def update_status(self, submission_id: str, status: SubmissionStatus,
                      error: Optional[str] = None) -> Submission:
        """Move a pending submission to its final status"""

    @abstractmethod
    def list(self) -> List[Submission]:
        """Return submissions in insertion order"""

    @abstractmethod
    def sweep(self, now: Optional[datetime] = None) -> int:
        """Drop expired submissions, returning how many were removed"""

    @abstractmethod
    def __len__(self) -> int:
        ...


class InMemorySubmissionStore(SubmissionStore):
    """
    Insertion-ordered in-memory store

    Every change swaps a whole frozen record under the lock, so readers never
    see a partially updated submission.
    """

    def __init__(self, name: str, retention: Optional[timedelta] = None):
        self.name = name
        self.retention = retention
        self._records: 'OrderedDict[str, Submission]' = OrderedDict()
        self._lock = threading.Lock()

    def insert(self, submission: Submission) -> str:
        with self._lock:
            if submission.id in self._records:
                raise ValueError(f"Submission id already used: {submission.id}")
            self._records[submission.id] = submission
        logger.debug(f"[{self.name}] stored submission {submission.id}")
        return submission.id

    def update_status(self, submission_id: str, status: SubmissionStatus,
                      error: Optional[str] = None) -> Submission:
        with self._lock:
            current = self._records.get(submission_id)
            if current is None:
                raise SubmissionNotFound(f"Submission {submission_id} not found in {self.name}")
            if current.status is not SubmissionStatus.PENDING or status is SubmissionStatus.PENDING:
                raise InvalidStatusTransition(
                    f"Cannot move submission {submission_id} from "
                    f"{current.status.value} to {status.value}"
                )
            updated = current.with_status(status, error)
            self._records[submission_id] = updated
        return updated

    def list(self) -> List[Submission]:
        with self._lock:
            return list(self._records.values())

    def sweep(self, now: Optional[datetime] = None) -> int:
        if self.retention is None:
            return 0
        cutoff = (now or utcnow()) - self.retention
        with self._lock:
            expired = [key for key, record in self._records.items() if record.date < cutoff]
            for key in expired:
                del self._records[key]
        if expired:
            logger.info(f"[{self.name}] swept {len(expired)} submission(s) older than {self.retention}")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
