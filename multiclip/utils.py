import os
import re
import time
import shutil
import secrets
import logging
from contextlib import contextmanager
from urllib.parse import urlparse

from .errors import InvalidInputError

logger = logging.getLogger(__name__)

_HTTP_URL = re.compile(r"^https?://", re.IGNORECASE)


def new_id(prefix: str = "job") -> str:
    return f"{prefix}_{secrets.token_hex(8)}"


def validate_source_url(url) -> str:
    """Reject anything that is not an absolute http(s) URL with a host."""
    if not url or not isinstance(url, str):
        raise InvalidInputError("a valid URL is required", code="BAD_URL")
    url = url.strip()
    if not _HTTP_URL.match(url) or not urlparse(url).netloc:
        raise InvalidInputError("a valid URL is required", code="BAD_URL")
    return url


def detect_platform(url: str) -> str:
    if re.search(r"tiktok\.", url, re.IGNORECASE):
        return "tiktok"
    if re.search(r"instagram\.", url, re.IGNORECASE):
        return "instagram"
    if re.search(r"facebook\.|fb\.watch", url, re.IGNORECASE):
        return "facebook"
    return "youtube"


def create_job_folder(job_id: str, base_dir) -> str:
    """
    Create a temp folder for a given job_id inside base_dir.
    Returns the full path to the folder.
    """
    job_dir = os.path.join(base_dir, job_id)
    os.makedirs(job_dir, exist_ok=True)
    logger.info(f"Created job folder: {job_dir}")
    return job_dir


def cleanup_job_folder(job_dir) -> bool:
    """
    Delete a job folder and all its contents. Best-effort: failures are logged,
    never raised.
    """
    if not os.path.exists(job_dir):
        return True
    try:
        shutil.rmtree(job_dir)
    except OSError as e:
        logger.warning(f"Failed to cleanup {job_dir}: {e}")
        return False
    logger.info(f"Cleaned up job folder: {job_dir}")
    return True


@contextmanager
def job_workspace(job_id: str, base_dir):
    """Job-scoped scratch directory, removed on exit whatever happened inside."""
    job_dir = create_job_folder(job_id, base_dir)
    try:
        yield job_dir
    finally:
        cleanup_job_folder(job_dir)


def cleanup_old_jobs(base_dir, max_age: int) -> int:
    """
    Delete job folders older than max_age seconds.
    Safety net for folders left behind by a crashed process.
    """
    now = time.time()
    if not os.path.exists(base_dir):
        return 0

    removed = 0
    for folder in os.listdir(base_dir):
        path = os.path.join(base_dir, folder)
        if os.path.isdir(path):
            folder_age = now - os.path.getmtime(path)
            if folder_age > max_age and cleanup_job_folder(path):
                removed += 1
                logger.info(f"Removed old job folder: {path}")
    return removed
