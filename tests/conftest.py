from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from multiclip.fetch import YtDlpFetcher
from multiclip.history import JobHistory
from multiclip.job_store import JobStore
from multiclip.models import Job, JobStatus
from multiclip.storage import ObjectStore
from multiclip.tasks import JobPipeline
from multiclip.worker import JobManager
from tests.mocks import ytdlp
from tests.mocks.s3 import FakeS3Client

BUCKET = "multiclip-test"


class RecordingJobStore(JobStore):
    """Keeps every snapshot written, to check transitions after the fact."""

    def __init__(self):
        super().__init__()
        self.snapshots: dict[str, list[Job]] = {}

    def update(self, job_id, mutator):
        job = super().update(job_id, mutator)
        if job is not None:
            self.snapshots.setdefault(job_id, []).append(job)
        return job

    def progress_trail(self, job_id: str) -> list[int]:
        return [j.progress for j in self.snapshots.get(job_id, []) if j.status == JobStatus.PROCESSING]


@pytest.fixture
def ytdlp_command(tmp_path: Path) -> list[str]:
    return ytdlp.install(tmp_path)


@pytest.fixture
def ytdlp_log(tmp_path: Path, monkeypatch) -> Path:
    log = tmp_path / "ytdlp-calls.jsonl"
    monkeypatch.setenv("FAKE_YTDLP_LOG", str(log))
    return log


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def make_manager(ytdlp_command, work_dir):
    def factory(
        *,
        s3_client: FakeS3Client | None = None,
        bucket: str = BUCKET,
        concurrency: int = 2,
        max_queue: int = 10,
        job_timeout: float | None = None,
        fetcher=None,
    ) -> JobManager:
        store = RecordingJobStore()
        history = JobHistory()
        object_store = ObjectStore(s3_client or FakeS3Client(), bucket) if bucket else None
        pipeline = JobPipeline(
            store,
            history,
            fetcher or YtDlpFetcher(ytdlp_command),
            object_store,
            tmp_dir=work_dir,
            url_ttl=900,
            job_timeout=job_timeout,
        )
        return JobManager(
            pipeline,
            store,
            history,
            bucket=bucket,
            concurrency=concurrency,
            max_queue=max_queue,
        )

    return factory


async def wait_for_status(manager: JobManager, job_id: str, *statuses: JobStatus, timeout: float = 10.0) -> Job:
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        job = manager.get(job_id)
        if job is not None and job.status in statuses:
            return job
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(f"job {job_id} never reached {statuses}; last={job}")
        await asyncio.sleep(0.02)


def fetch_calls(log: Path) -> list[list[str]]:
    """Argument lists the stand-in yt-dlp was started with; none if it never ran."""
    if not log.exists():
        return []
    # a line still being written has no newline yet
    return [json.loads(line) for line in log.read_text().split("\n")[:-1] if line.strip()]


async def wait_for_fetch(log: Path, url: str, timeout: float = 10.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not any(call and call[0] == url for call in fetch_calls(log)):
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(f"yt-dlp was never started for {url}")
        await asyncio.sleep(0.02)
