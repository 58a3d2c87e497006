# multiclip/progress.py
"""
Per-job progress events.

Stages never write progress to the job store directly. They publish a
percentage on the job's channel (from the event loop or from a transfer
thread) and one consumer task applies it, dropping any value that would move
the job backwards.
"""

import asyncio
import math
import threading

from .job_store import JobStore
from .models import Job, JobStatus

# progress bands owned by each stage
FETCH_STARTED = 5
FORMAT_RESOLVED = 10
FETCH_INVOKED = 15
FETCH_DONE = 60
TRANSFER_BAND = 30
DONE = 100


def transfer_percent(sent: int, total: int) -> int:
    if not total or total <= 0:
        return FETCH_DONE
    ratio = math.floor(TRANSFER_BAND * sent / total + 0.5)
    return FETCH_DONE + max(0, min(TRANSFER_BAND, ratio))


class ProgressChannel:
    def __init__(self, store: JobStore, job_id: str):
        self._store = store
        self._job_id = job_id
        self._loop = asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._consumer: asyncio.Task | None = None
        self._closed = False

    def start(self) -> "ProgressChannel":
        self._consumer = self._loop.create_task(self._consume())
        return self

    def publish(self, percent: int) -> None:
        """Thread-safe; may be called from boto3 transfer threads."""
        if self._closed:
            return
        if threading.get_ident() == self._loop_thread:
            self._queue.put_nowait(int(percent))
        else:
            self._loop.call_soon_threadsafe(self._put, int(percent))

    def _put(self, percent: int) -> None:
        if not self._closed:
            self._queue.put_nowait(percent)

    def close(self) -> None:
        """
        Apply every event already delivered, then stop the consumer. Events
        published afterwards (an abandoned upload thread) are dropped.
        """
        if self._closed:
            return
        self._closed = True
        if self._consumer is not None:
            self._consumer.cancel()
            self._consumer = None
        while not self._queue.empty():
            self._apply(self._queue.get_nowait())

    async def _consume(self) -> None:
        while True:
            percent = await self._queue.get()
            self._apply(percent)

    def _apply(self, percent: int) -> None:
        # 100 is reserved for the done transition
        percent = max(0, min(DONE - 1, percent))

        def advance(job: Job) -> None:
            # only a running job moves forward; terminal writes belong to the pipeline
            if job.status == JobStatus.PROCESSING and percent > job.progress:
                job.progress = percent

        self._store.update(self._job_id, advance)
