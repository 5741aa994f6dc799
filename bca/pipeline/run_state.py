"""Mutable bookkeeping of one orchestrator run.

Invariant: ``completed + len(pending) == total`` after every transition, and
a job whose ffmpeg call succeeded is never in ``pending``.
"""

import threading
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

from bca.domain.models import ConversionJob, FailureRecord


class AtomicCounter:
    """Integer counter with an atomic increment-and-get."""

    def __init__(self, initial: int = 0):
        self._value = initial
        self._lock = threading.Lock()

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class RunState:
    def __init__(self, jobs: Iterable[ConversionJob], total: int):
        # Insertion-ordered set of source paths
        self._pending: Dict[Path, None] = dict.fromkeys(job.source_path for job in jobs)
        self.total = max(total, len(self._pending))
        self.completed = AtomicCounter(self.total - len(self._pending))
        self._failures: List[FailureRecord] = []
        # Guards _pending and _failures; completed is incremented under it too
        self._lock = threading.Lock()

    def mark_succeeded(self, job: ConversionJob) -> int:
        with self._lock:
            self._pending.pop(job.source_path, None)
            return self.completed.increment()

    def mark_failed(self, job: ConversionJob, message: str) -> int:
        with self._lock:
            self._pending.pop(job.source_path, None)
            self._failures.append(FailureRecord(path=job.source_path, error_message=message))
            return self.completed.increment()

    def snapshot(self) -> Tuple[int, List[Path]]:
        """(completed, pending paths), read together."""
        with self._lock:
            return self.completed.value, list(self._pending.keys())

    @property
    def failures(self) -> List[FailureRecord]:
        with self._lock:
            return list(self._failures)
