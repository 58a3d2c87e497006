# multiclip/history.py
import threading
from collections import deque
from typing import List

from .models import HistoryEntry, Job

MAX_HISTORY = 50


class JobHistory:
    """Newest-first ring buffer of terminal job snapshots."""

    def __init__(self, capacity: int = MAX_HISTORY):
        self._entries: deque = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._entries.maxlen

    def record(self, job: Job) -> HistoryEntry:
        entry = HistoryEntry(job=job.model_copy(deep=True))
        # appendleft on a bounded deque drops the oldest entry in the same step
        with self._lock:
            self._entries.appendleft(entry)
        return entry

    def items(self) -> List[HistoryEntry]:
        with self._lock:
            return [entry.model_copy(deep=True) for entry in self._entries]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
