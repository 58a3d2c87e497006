import asyncio
import json
from pathlib import Path

import pytest

from multiclip.errors import EmptyArtifactError, FetchError
from multiclip.fetch import YtDlpFetcher
from multiclip.formats import resolve_format
from tests.mocks.ytdlp import ARTIFACT_SIZE


def test_build_args_for_video() -> None:
    fetcher = YtDlpFetcher("yt-dlp", retries=3, ffmpeg_location="/opt/ffmpeg/bin")
    fmt = resolve_format("video", "1080p")

    args = fetcher.build_args("https://youtu.be/abc123", fmt, Path("/tmp/job/job_1.mp4"))

    assert args[:2] == ["yt-dlp", "https://youtu.be/abc123"]
    assert args[args.index("--output") + 1] == "/tmp/job/job_1.mp4"
    assert args[args.index("--format") + 1] == fmt.selector
    assert args[args.index("--merge-output-format") + 1] == "mp4"
    assert args[args.index("--ffmpeg-location") + 1] == "/opt/ffmpeg/bin"
    assert args[args.index("--retries") + 1] == "3"
    assert "--no-check-certificates" in args


def test_build_args_for_audio_skips_merge() -> None:
    fetcher = YtDlpFetcher(["python", "-m", "yt_dlp"])

    args = fetcher.build_args("https://youtu.be/abc123", resolve_format("audio", "720p"), Path("a.m4a"))

    assert args[:4] == ["python", "-m", "yt_dlp", "https://youtu.be/abc123"]
    assert "--merge-output-format" not in args
    assert "--ffmpeg-location" not in args
    assert args[args.index("--format") + 1] == "bestaudio[ext=m4a]/bestaudio"


@pytest.mark.asyncio
async def test_fetch_success(ytdlp_command, ytdlp_log, tmp_path) -> None:
    fetcher = YtDlpFetcher(ytdlp_command)
    out = tmp_path / "job" / "job_1.mp4"

    artifact = await fetcher.fetch("https://youtu.be/abc123", resolve_format("video", "720p"), out)

    assert artifact.path == out
    assert artifact.file_size == ARTIFACT_SIZE == out.stat().st_size
    assert artifact.extension == "mp4"
    assert artifact.content_type == "video/mp4"
    calls = [json.loads(line) for line in ytdlp_log.read_text().splitlines()]
    assert len(calls) == 1 and calls[0][0] == "https://youtu.be/abc123"


@pytest.mark.asyncio
async def test_fetch_nonzero_exit_carries_diagnostics(ytdlp_command, tmp_path) -> None:
    fetcher = YtDlpFetcher(ytdlp_command)

    with pytest.raises(FetchError) as exc:
        await fetcher.fetch("https://youtu.be/fail", resolve_format("video", "720p"), tmp_path / "x.mp4")

    assert not isinstance(exc.value, EmptyArtifactError)
    assert "Video unavailable" in str(exc.value)


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["https://youtu.be/empty", "https://youtu.be/nofile"])
async def test_fetch_empty_or_missing_artifact(ytdlp_command, tmp_path, url) -> None:
    fetcher = YtDlpFetcher(ytdlp_command)

    with pytest.raises(EmptyArtifactError) as exc:
        await fetcher.fetch(url, resolve_format("video", "720p"), tmp_path / "x.mp4")

    assert exc.value.code == "EMPTY_ARTIFACT"
    assert str(exc.value) == "downloaded file is empty"


@pytest.mark.asyncio
async def test_fetch_missing_executable(tmp_path) -> None:
    fetcher = YtDlpFetcher(str(tmp_path / "no-such-yt-dlp"))

    with pytest.raises(FetchError, match="not found"):
        await fetcher.fetch("https://youtu.be/abc123", resolve_format("video", "720p"), tmp_path / "x.mp4")


@pytest.mark.asyncio
async def test_cancelled_fetch_does_not_hang(ytdlp_command, tmp_path) -> None:
    fetcher = YtDlpFetcher(ytdlp_command)
    task = asyncio.create_task(
        fetcher.fetch("https://youtu.be/slow", resolve_format("video", "720p"), tmp_path / "x.mp4")
    )
    await asyncio.sleep(0.5)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, timeout=5)
