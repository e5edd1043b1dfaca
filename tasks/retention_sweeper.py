# tasks/retention_sweeper.py
"""Background thread that expires old submissions."""

import logging
import threading
from datetime import datetime
from typing import Iterable, Optional

from core.store import SubmissionStore

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Runs ``sweep`` on every store at a fixed interval (hourly by default)."""

    def __init__(self, stores: Iterable[SubmissionStore], interval_seconds: float = 3600):
        self.stores = list(stores)
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self, now: Optional[datetime] = None) -> int:
        removed = sum(store.sweep(now) for store in self.stores)
        if removed:
            logger.info(f"Retention sweep removed {removed} submission(s)")
        return removed

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._worker, name='retention-sweeper', daemon=True)
        self._thread.start()
        logger.info(f"Retention sweeper started (every {self.interval_seconds:.0f}s)")

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _worker(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception as exc:  # pragma: no cover - keep the thread alive
                logger.error(f"Retention sweep failed: {exc}", exc_info=True)
