from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


class MediaType(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"


TERMINAL_STATUSES = frozenset({JobStatus.DONE, JobStatus.ERROR})


class Job(BaseModel):
    job_id: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    media_type: MediaType = MediaType.VIDEO
    quality: str = "1080p"
    source_url: str
    platform: Optional[str] = None
    resource_id: Optional[str] = None

    # set on done
    result_key: Optional[str] = None
    result_url: Optional[str] = None
    file_size: Optional[int] = None

    # set on error
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_public(self) -> Dict[str, Any]:
        """Wire shape polled by the web client."""
        return {
            "jobId": self.job_id,
            "status": self.status.value,
            "progress": self.progress,
            "type": self.media_type.value,
            "quality": self.quality,
            "url": self.source_url,
            "platform": self.platform,
            "resourceId": self.resource_id,
            "downloadUrl": self.result_url,
            "fileKey": self.result_key,
            "fileSize": self.file_size,
            "error": self.error_message,
            "errorCode": self.error_code,
        }


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    job: Job
    at: datetime = Field(default_factory=utcnow)

    def to_public(self) -> Dict[str, Any]:
        data = self.job.to_public()
        data["at"] = int(self.at.timestamp() * 1000)
        return data


# -------------------- request bodies --------------------

class ParseRequest(BaseModel):
    url: Optional[str] = None


class DownloadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: Optional[str] = None
    quality: str = "1080p"
    type: str = "video"
    platform: Optional[str] = None
    resource_id: Optional[str] = Field(default=None, alias="resourceId")
