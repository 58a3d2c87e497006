# multiclip/job_store.py
from __future__ import annotations

import threading
from typing import Callable, Dict, Optional

from .models import Job, utcnow


class JobStore:
    """
    In-process registry of every job, keyed by job id.

    Nothing is persisted: jobs live for the lifetime of the process. Readers
    always get a copy, and ``update`` swaps in a mutated copy under the lock,
    so a reader never sees a half-applied transition.
    """

    def __init__(self):
        self._data: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, job: Job) -> str:
        with self._lock:
            if job.job_id in self._data:
                raise KeyError(f"job id already issued: {job.job_id}")
            self._data[job.job_id] = job.model_copy(deep=True)
        return job.job_id

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._data.get(job_id)
            return job.model_copy(deep=True) if job is not None else None

    def update(self, job_id: str, mutator: Callable[[Job], None]) -> Optional[Job]:
        """Apply ``mutator`` to a copy of the job and store it. Returns the new snapshot."""
        with self._lock:
            current = self._data.get(job_id)
            if current is None:
                return None
            draft = current.model_copy(deep=True)
            mutator(draft)
            draft.updated_at = utcnow()
            self._data[job_id] = draft
            return draft.model_copy(deep=True)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
