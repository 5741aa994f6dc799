import threading
from datetime import datetime
from collections import deque
from typing import Dict, Optional


class UIState:
    """Thread-safe state shared between UIManager (writer) and Dashboard (reader)."""

    def __init__(self, recent_max_items: int = 5):
        self._lock = threading.RLock()

        # Counters
        self.total = 0
        self.completed_count = 0
        self.completed_at_start = 0  # already done before a resumed run
        self.failed_count = 0
        self.interrupted_count = 0
        self.current_threads = 0

        # Jobs
        self.active_files: Dict[str, datetime] = {}  # file name -> start time
        self.recent_files = deque(maxlen=recent_max_items)

        # Timing
        self.processing_start_time: Optional[datetime] = None
        self.last_job_seconds: Optional[float] = None

        # Global status
        self.resumed = False
        self.shutdown_requested = False
        self.finished = False
        self.cancelled = False
        self.last_action: str = ""

    @property
    def progress_percent(self) -> float:
        with self._lock:
            if self.total <= 0:
                return 0.0
            return min(100.0, self.completed_count / self.total * 100.0)

    def elapsed_seconds(self) -> float:
        with self._lock:
            if not self.processing_start_time:
                return 0.0
            return (datetime.now() - self.processing_start_time).total_seconds()

    def average_seconds(self) -> Optional[float]:
        """Average wall time per job resolved in this session."""
        with self._lock:
            done = self.completed_count - self.completed_at_start
            if done <= 0:
                return None
            return self.elapsed_seconds() / done

    def add_active(self, file_name: str):
        with self._lock:
            self.active_files[file_name] = datetime.now()

    def remove_active(self, file_name: str):
        with self._lock:
            self.active_files.pop(file_name, None)

    def set_last_action(self, action: str):
        with self._lock:
            self.last_action = action
