# multiclip/formats.py
"""
Quality tier -> yt-dlp format selection.

Fixed precedence, first match wins. Video tiers pick the best mp4 video at or
above the height floor merged with m4a audio, then fall back to the best
single mp4, then to anything.
"""

from dataclasses import dataclass
from typing import Optional

from .models import MediaType

DEFAULT_HEIGHT = 720

# tier (normalised) -> minimum vertical resolution
_HEIGHT_FLOORS = {
    "4k": 2160,
    "2160p": 2160,
    "1080p": 1080,
    "720p": 720,
}


@dataclass(frozen=True)
class FormatSpec:
    selector: str
    extension: str
    content_type: str
    merge_format: Optional[str] = None

    @property
    def is_audio(self) -> bool:
        return self.content_type.startswith("audio/")


AUDIO_FORMAT = FormatSpec(
    selector="bestaudio[ext=m4a]/bestaudio",
    extension="m4a",
    content_type="audio/mp4",
)


def height_floor(quality) -> int:
    key = str(quality or "").strip().lower()
    return _HEIGHT_FLOORS.get(key, DEFAULT_HEIGHT)


def video_selector(min_height: int) -> str:
    return (
        f"bestvideo[height>={min_height}][ext=mp4]+bestaudio[ext=m4a]"
        "/best[ext=mp4]"
        "/best"
    )


def resolve_format(media_type, quality) -> FormatSpec:
    """Pure and total: unknown tiers fall back to 720p, anything not audio is video."""
    if str(getattr(media_type, "value", media_type)).strip().lower() == MediaType.AUDIO.value:
        return AUDIO_FORMAT

    return FormatSpec(
        selector=video_selector(height_floor(quality)),
        extension="mp4",
        content_type="video/mp4",
        merge_format="mp4",
    )
