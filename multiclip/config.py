import os
import logging
from pathlib import Path
from dotenv import load_dotenv

log = logging.getLogger(__name__)

# --- Load .env from project root (../.env relative to this file) ---
PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=PROJECT_ROOT / ".env")

# ---------------------------
# Directories / limits
# ---------------------------
TMP_DIR = Path(os.getenv("TMP_DIR", PROJECT_ROOT / "tmp"))
TMP_MAX_AGE = int(os.getenv("TMP_MAX_AGE", "3600"))
PUBLIC_DIR = Path(os.getenv("PUBLIC_DIR", PROJECT_ROOT / "public"))

# ---------------------------
# HTTP
# ---------------------------
PORT = int(os.getenv("PORT", "10000"))
CORS_ORIGIN = os.getenv("CORS_ORIGIN", "*").strip()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def get_cors_origins() -> list[str]:
    # "*" or empty means allow everything
    if CORS_ORIGIN in ("", "*"):
        return ["*"]
    return [o.strip() for o in CORS_ORIGIN.split(",") if o.strip()]


# ---------------------------
# yt-dlp
# ---------------------------
YTDLP_BIN = os.getenv("YTDLP_BIN", "yt-dlp")
FFMPEG_LOCATION = os.getenv("FFMPEG_LOCATION") or None
FETCH_RETRIES = int(os.getenv("FETCH_RETRIES", "3"))

# ---------------------------
# Worker pool
# ---------------------------
WORKER_CONCURRENCY = int(os.getenv("WORKER_CONCURRENCY", "2"))
QUEUE_MAX_SIZE = int(os.getenv("QUEUE_MAX_SIZE", "100"))
JOB_TIMEOUT_SECS = int(os.getenv("JOB_TIMEOUT_SECS", "3600"))  # 0 disables


# ---------------------------
# S3 / Presign helpers
# ---------------------------
def get_region() -> str:
    # support both AWS_REGION and legacy AWS_DEFAULT_REGION
    return os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION", "us-east-1")


def get_bucket() -> str:
    return (
        os.getenv("S3_BUCKET")
        or os.getenv("AWS_S3_BUCKET")
        or os.getenv("AWS_BUCKET_NAME")
        or os.getenv("S3_BUCKET_NAME")
        or ""
    )


SIGNED_URL_TTL_SEC = int(os.getenv("SIGNED_URL_TTL_SEC", "900"))  # 15 min
UPLOAD_PART_SIZE = int(os.getenv("UPLOAD_PART_SIZE_MB", "8")) * 1024 * 1024
UPLOAD_CONCURRENCY = int(os.getenv("UPLOAD_CONCURRENCY", "3"))

if not get_bucket():
    log.warning("[Config] S3 bucket env not set (S3_BUCKET); downloads will be rejected")


def create_s3_client():
    # Lazy import so module import stays fast
    import boto3

    return boto3.client("s3", region_name=get_region())


def s3_key_for_job(job_id: str, ext: str = "mp4") -> str:
    return f"downloads/{job_id}.{ext}"
