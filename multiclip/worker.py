# multiclip/worker.py
"""
Admission queue and a fixed pool of asyncio workers.

``submit`` never waits on a pipeline: it validates, registers the job as
queued and hands the id to the queue. When the queue is full the request is
rejected outright and no job is created.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from .cancel import CancelToken
from .errors import ConfigurationError, InvalidInputError, JobCancelledError, QueueFullError
from .history import JobHistory
from .job_store import JobStore
from .models import HistoryEntry, Job, JobStatus, MediaType
from .tasks import JobPipeline
from .utils import detect_platform, new_id, validate_source_url

logger = logging.getLogger(__name__)


class JobManager:
    def __init__(
        self,
        pipeline: JobPipeline,
        store: JobStore,
        history: JobHistory,
        *,
        bucket: str,
        concurrency: int = 2,
        max_queue: int = 100,
    ):
        self.pipeline = pipeline
        self.store = store
        self._history = history
        self.bucket = bucket
        self.concurrency = max(1, concurrency)
        self.max_queue = max_queue
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._tokens: Dict[str, CancelToken] = {}
        self._running: Dict[str, asyncio.Task] = {}
        self._stopping = False

    # -------------------- lifecycle --------------------

    async def start(self) -> None:
        if self._workers:
            return
        self._stopping = False
        self._queue = asyncio.Queue(maxsize=self.max_queue)
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"multiclip-worker-{i}")
            for i in range(self.concurrency)
        ]
        logger.info(f"[Worker] started {self.concurrency} workers (queue max={self.max_queue})")

    async def stop(self) -> None:
        """
        Interrupt in-flight jobs, stop the workers and fail whatever is still
        queued: nothing outlives the process.
        """
        self._stopping = True
        running = list(self._running.items())
        for job_id, task in running:
            self._tokens[job_id].cancel("interrupted by shutdown")
            task.cancel()
        if running:
            await asyncio.wait([task for _, task in running])

        for w in self._workers:
            w.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        for job_id, _ in running:
            self._abandon(job_id)

        while self._queue is not None and not self._queue.empty():
            self._abandon(self._queue.get_nowait())
            self._queue.task_done()
        logger.info("[Worker] stopped")

    async def join(self) -> None:
        """Wait until every admitted job has been processed."""
        if self._queue is not None:
            await self._queue.join()

    # -------------------- admission / queries --------------------

    def submit(
        self,
        url,
        media_type="video",
        quality: str = "1080p",
        *,
        platform: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> str:
        source_url = validate_source_url(url)
        try:
            kind = MediaType(str(media_type).strip().lower())
        except ValueError:
            raise InvalidInputError(f"unsupported media type: {media_type!r}")
        if not self.bucket:
            raise ConfigurationError("S3 bucket is not configured (set S3_BUCKET)")
        if self._queue is None or self._stopping or not self._workers:
            raise ConfigurationError("job workers are not running")
        if self._queue.full():
            raise QueueFullError("too many pending downloads, try again later")

        job = Job(
            job_id=new_id("job"),
            media_type=kind,
            quality=str(quality or "1080p").strip(),
            source_url=source_url,
            platform=platform or detect_platform(source_url),
            resource_id=resource_id,
        )
        self.store.create(job)
        self._tokens[job.job_id] = CancelToken()
        self._queue.put_nowait(job.job_id)
        logger.info(f"[Admit] job={job.job_id} type={kind.value} quality={job.quality} url={source_url}")
        return job.job_id

    def get(self, job_id: str) -> Optional[Job]:
        return self.store.get(job_id)

    def history(self) -> List[HistoryEntry]:
        return self._history.items()

    def cancel(self, job_id: str) -> Optional[bool]:
        """
        None if the id is unknown, False if the job already finished, True if
        cancellation was applied (queued) or requested (processing).
        """
        job = self.store.get(job_id)
        if job is None:
            return None
        if job.is_terminal:
            return False

        token = self._tokens.get(job_id)
        if token is not None:
            token.cancel("cancelled")

        if job.status == JobStatus.QUEUED:
            # no pipeline owns it yet; the worker will skip it as stale
            self.pipeline.mark_failed(job_id, JobCancelledError("job cancelled"))
        else:
            task = self._running.get(job_id)
            if task is not None:
                task.cancel()
        logger.info(f"[Cancel] job={job_id} was {job.status.value}")
        return True

    # -------------------- workers --------------------

    async def _worker(self, idx: int) -> None:
        while True:
            job_id = await self._queue.get()
            try:
                if self._stopping:
                    self._abandon(job_id)
                else:
                    await self._run_job(idx, job_id)
            finally:
                self._queue.task_done()

    async def _run_job(self, idx: int, job_id: str) -> None:
        token = self._tokens.setdefault(job_id, CancelToken())
        task = asyncio.create_task(self.pipeline.run(job_id, token), name=f"multiclip-{job_id}")
        self._running[job_id] = task
        try:
            # wait() rather than await: cancelling this worker must not leak into the job
            await asyncio.wait([task])
        finally:
            self._running.pop(job_id, None)
            self._tokens.pop(job_id, None)

        if task.cancelled():
            # a task cancelled before its first step never reached the pipeline
            self._abandon(job_id, "interrupted by shutdown" if self._stopping else "cancelled")
        elif task.exception() is not None:
            logger.error(f"[Worker-{idx}] pipeline crashed for job={job_id}", exc_info=task.exception())
            self._abandon(job_id, "crashed")

    def _abandon(self, job_id: str, reason: str = "interrupted by shutdown") -> None:
        job = self.store.get(job_id)
        if job is not None and not job.is_terminal:
            self.pipeline.mark_failed(job_id, JobCancelledError(f"job {reason}"))
