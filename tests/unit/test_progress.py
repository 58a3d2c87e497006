import asyncio

import pytest

from multiclip.job_store import JobStore
from multiclip.models import Job, JobStatus
from multiclip.progress import ProgressChannel, transfer_percent


@pytest.mark.parametrize(
    "sent, total, expected",
    [
        (0, 100, 60),
        (50, 100, 75),
        (1, 60, 61),   # 0.5 rounds up
        (100, 100, 90),
        (250, 100, 90),
        (10, 0, 60),
    ],
)
def test_transfer_percent(sent: int, total: int, expected: int) -> None:
    assert transfer_percent(sent, total) == expected


def _processing_store(job_id: str = "job_a") -> JobStore:
    store = JobStore()
    store.create(Job(job_id=job_id, source_url="https://youtu.be/abc123", status=JobStatus.PROCESSING, progress=5))
    return store


@pytest.mark.asyncio
async def test_channel_never_moves_backwards() -> None:
    store = _processing_store()
    channel = ProgressChannel(store, "job_a").start()

    for value in (15, 60, 40, 75, 70, 90, 61):
        channel.publish(value)
    channel.close()

    assert store.get("job_a").progress == 90


@pytest.mark.asyncio
async def test_channel_keeps_100_for_done() -> None:
    store = _processing_store()
    channel = ProgressChannel(store, "job_a").start()

    channel.publish(100)
    channel.close()

    assert store.get("job_a").progress == 99
    assert store.get("job_a").status == JobStatus.PROCESSING


@pytest.mark.asyncio
async def test_channel_ignores_terminal_jobs() -> None:
    store = _processing_store()

    def fail(job: Job) -> None:
        job.status = JobStatus.ERROR
        job.progress = 0

    store.update("job_a", fail)
    channel = ProgressChannel(store, "job_a").start()

    channel.publish(75)
    channel.close()

    assert store.get("job_a").progress == 0


@pytest.mark.asyncio
async def test_publish_from_threads_is_drained_on_close() -> None:
    store = _processing_store()
    channel = ProgressChannel(store, "job_a").start()

    def pump(values) -> None:
        for v in values:
            channel.publish(v)

    await asyncio.gather(*(asyncio.to_thread(pump, range(start, 90, 3)) for start in (60, 61, 62)))
    channel.close()

    assert store.get("job_a").progress == 89
