# multiclip/tasks.py

import asyncio
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .cancel import CancelToken
from .config import s3_key_for_job
from .errors import (
    ConfigurationError,
    FetchError,
    IssuanceError,
    JobCancelledError,
    JobError,
    JobTimeoutError,
    TransferError,
)
from .fetch import FetchedArtifact, YtDlpFetcher
from .formats import FormatSpec, resolve_format
from .history import JobHistory
from .job_store import JobStore
from .models import Job, JobStatus
from .progress import (
    DONE,
    FETCH_DONE,
    FETCH_INVOKED,
    FETCH_STARTED,
    FORMAT_RESOLVED,
    ProgressChannel,
    transfer_percent,
)
from .storage import ObjectStore
from .utils import job_workspace

logger = logging.getLogger(__name__)


@dataclass
class _Outcome:
    key: str
    url: str
    file_size: int


class _TransferProgress:
    """s3transfer callback: accumulates byte deltas from its worker threads."""

    def __init__(self, total: int, channel: ProgressChannel, token: CancelToken):
        self._total = total
        self._channel = channel
        self._token = token
        self._sent = 0
        self._lock = threading.Lock()

    def __call__(self, bytes_amount: int) -> None:
        # raising here fails the upload and s3transfer aborts the multipart upload
        self._token.raise_if_cancelled()
        with self._lock:
            self._sent += bytes_amount
            sent = self._sent
        self._channel.publish(transfer_percent(sent, self._total))


class JobPipeline:
    """
    Takes one queued job through fetch -> transfer -> URL issuance.

    The pipeline instance running for a job is the only writer of that job
    while it is processing. Every terminal transition is mirrored into the
    history log, and the job workspace is gone before the terminal state is
    written.
    """

    def __init__(
        self,
        store: JobStore,
        history: JobHistory,
        fetcher: YtDlpFetcher,
        object_store: Optional[ObjectStore],
        *,
        tmp_dir,
        url_ttl: int = 900,
        job_timeout: Optional[float] = None,
    ):
        self._store = store
        self._history = history
        self._fetcher = fetcher
        self._object_store = object_store
        self.tmp_dir = Path(tmp_dir)
        self.url_ttl = url_ttl
        self.job_timeout = job_timeout or None

    async def run(self, job_id: str, token: Optional[CancelToken] = None) -> Optional[Job]:
        token = token or CancelToken()
        job = self._store.get(job_id)
        if job is None:
            logger.warning(f"[Task:{job_id}] unknown job, nothing to run")
            return None
        if job.status != JobStatus.QUEUED:
            logger.info(f"[Task:{job_id}] skipping stale job in state {job.status.value}")
            return job

        job = self._store.update(job_id, _mark_processing)
        logger.info(f"[Task] Start job={job_id} type={job.media_type.value} quality={job.quality}")

        if self._object_store is None or not self._object_store.bucket:
            return self.mark_failed(job_id, ConfigurationError("S3 bucket is not configured (set S3_BUCKET)"))

        channel = ProgressChannel(self._store, job_id).start()
        outcome: Optional[_Outcome] = None
        failure: Optional[JobError] = None
        try:
            with job_workspace(job_id, self.tmp_dir) as workdir:
                outcome = await self._run_stages(job, Path(workdir), channel, token)
        except JobError as e:
            failure = e
        except asyncio.CancelledError:
            token.cancel("interrupted")
            failure = JobCancelledError(f"job {token.reason}")
        except Exception as e:
            logger.exception(f"[Task:{job_id}] unexpected failure")
            failure = JobError(str(e) or e.__class__.__name__)
        finally:
            channel.close()

        if failure is not None:
            return self.mark_failed(job_id, failure)
        return self._mark_done(job_id, outcome)

    # -------------------- stages --------------------

    async def _run_stages(self, job: Job, workdir: Path, channel: ProgressChannel, token: CancelToken) -> _Outcome:
        if not self.job_timeout:
            return await self._stages(job, workdir, channel, token)
        try:
            return await asyncio.wait_for(self._stages(job, workdir, channel, token), timeout=self.job_timeout)
        except asyncio.TimeoutError:
            token.cancel("timed out")
            raise JobTimeoutError(f"job timed out after {self.job_timeout:g}s")

    async def _stages(self, job: Job, workdir: Path, channel: ProgressChannel, token: CancelToken) -> _Outcome:
        fmt = resolve_format(job.media_type, job.quality)
        channel.publish(FORMAT_RESOLVED)

        # --- 1) Fetch ---
        out_path = workdir / f"{job.job_id}.{fmt.extension}"
        channel.publish(FETCH_INVOKED)
        artifact = await self._fetch(job, fmt, out_path)
        channel.publish(FETCH_DONE)
        token.raise_if_cancelled()

        # --- 2) Transfer ---
        key = s3_key_for_job(job.job_id, fmt.extension)
        await self._transfer(artifact, key, channel, token)
        token.raise_if_cancelled()

        # --- 3) URL issuance ---
        url = await self._issue(key, fmt)
        return _Outcome(key=key, url=url, file_size=artifact.file_size)

    async def _fetch(self, job: Job, fmt: FormatSpec, out_path: Path) -> FetchedArtifact:
        try:
            return await self._fetcher.fetch(job.source_url, fmt, out_path)
        except JobError:
            raise
        except Exception as e:
            raise FetchError(str(e) or e.__class__.__name__) from e

    async def _transfer(self, artifact: FetchedArtifact, key: str, channel: ProgressChannel, token: CancelToken) -> None:
        callback = _TransferProgress(artifact.file_size, channel, token)
        try:
            stored = await asyncio.to_thread(
                self._object_store.upload, artifact.path, key, artifact.content_type, callback
            )
        except asyncio.CancelledError:
            # the upload thread can't be interrupted; stop it at the next chunk
            token.cancel("interrupted")
            raise
        except JobError:
            raise
        except Exception as e:
            raise TransferError(str(e) or e.__class__.__name__) from e

        if stored != artifact.file_size:
            raise TransferError(
                f"size mismatch for {key}: uploaded {stored} bytes, expected {artifact.file_size}"
            )

    async def _issue(self, key: str, fmt: FormatSpec) -> str:
        try:
            return await asyncio.to_thread(self._object_store.presign, key, self.url_ttl, fmt.content_type)
        except JobError:
            raise
        except Exception as e:
            raise IssuanceError(str(e) or e.__class__.__name__) from e

    # -------------------- terminal transitions --------------------

    def _mark_done(self, job_id: str, outcome: _Outcome) -> Optional[Job]:
        def done(job: Job) -> None:
            job.status = JobStatus.DONE
            job.progress = DONE
            job.result_url = outcome.url
            job.result_key = outcome.key
            job.file_size = outcome.file_size
            job.error_message = None
            job.error_code = None

        job = self._store.update(job_id, done)
        if job is not None:
            self._history.record(job)
            logger.info(f"[Task:{job_id}] Success key={outcome.key} size={outcome.file_size}")
        return job

    def mark_failed(self, job_id: str, error: JobError) -> Optional[Job]:
        def failed(job: Job) -> None:
            job.status = JobStatus.ERROR
            job.progress = 0
            job.error_message = str(error) or error.code
            job.error_code = error.code
            job.result_url = None
            job.result_key = None
            job.file_size = None

        logger.error(f"[Task:{job_id}] {error.code}: {error}")
        job = self._store.update(job_id, failed)
        if job is not None:
            self._history.record(job)
        return job


def _mark_processing(job: Job) -> None:
    job.status = JobStatus.PROCESSING
    job.progress = max(job.progress, FETCH_STARTED)
