# multiclip/fetch.py
"""
Fetch stage: run yt-dlp as a child process and verify what it left behind.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import EmptyArtifactError, FetchError
from .formats import FormatSpec

logger = logging.getLogger(__name__)

# keep error messages readable when yt-dlp dumps a long trace
MAX_DIAGNOSTIC_CHARS = 2000


@dataclass
class FetchedArtifact:
    """A media file staged on local disk by the fetch stage"""

    path: Path
    file_size: int
    extension: str
    content_type: str


def _diagnostics(stderr: bytes, stdout: bytes, returncode: int) -> str:
    text = (stderr or b"").decode("utf-8", errors="replace").strip()
    if not text:
        text = (stdout or b"").decode("utf-8", errors="replace").strip()
    if not text:
        return f"yt-dlp exited with code {returncode}"
    if len(text) > MAX_DIAGNOSTIC_CHARS:
        text = "..." + text[-MAX_DIAGNOSTIC_CHARS:]
    return text


class YtDlpFetcher:
    def __init__(
        self,
        command: Sequence[str] | str = "yt-dlp",
        retries: int = 3,
        ffmpeg_location: Optional[str] = None,
    ):
        self.command: List[str] = [command] if isinstance(command, str) else list(command)
        self.retries = retries
        self.ffmpeg_location = ffmpeg_location

    def build_args(self, url: str, fmt: FormatSpec, out_path: Path) -> List[str]:
        args = [
            *self.command,
            url,
            "--output", str(out_path),
            "--format", fmt.selector,
        ]
        # yt-dlp only accepts video containers here; audio-only never merges
        if fmt.merge_format:
            args += ["--merge-output-format", fmt.merge_format]
        if self.ffmpeg_location:
            args += ["--ffmpeg-location", self.ffmpeg_location]
        args += [
            "--retries", str(self.retries),
            "--no-check-certificates",
        ]
        return args

    async def fetch(self, url: str, fmt: FormatSpec, out_path) -> FetchedArtifact:
        out_path = Path(out_path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        args = self.build_args(url, fmt, out_path)
        logger.info(f"[Fetch] yt-dlp {url} format={fmt.selector!r} -> {out_path}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise FetchError(f"yt-dlp executable not found: {self.command[0]}") from e
        except OSError as e:
            raise FetchError(f"failed to start yt-dlp: {e}") from e

        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            # abandoned job: don't leave yt-dlp running
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            logger.info(f"[Fetch] killed yt-dlp pid={proc.pid} for {url}")
            raise

        if proc.returncode != 0:
            detail = _diagnostics(stderr, stdout, proc.returncode)
            logger.warning(f"[Fetch] yt-dlp exit={proc.returncode}: {detail}")
            raise FetchError(detail)

        size = os.path.getsize(out_path) if out_path.exists() else 0
        if size == 0:
            raise EmptyArtifactError("downloaded file is empty")

        logger.info(f"[Fetch] Downloaded {size} bytes -> {out_path}")
        return FetchedArtifact(
            path=out_path,
            file_size=size,
            extension=fmt.extension,
            content_type=fmt.content_type,
        )
