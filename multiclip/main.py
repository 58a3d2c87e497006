# multiclip/main.py — HTTP boundary (admission, polling, history)
#
# Run with the `multiclip` console script, or `uvicorn --factory multiclip.main:create_app`.

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles

from . import config
from .errors import ConfigurationError, InvalidInputError, JobError, QueueFullError
from .fetch import YtDlpFetcher
from .history import JobHistory
from .job_store import JobStore
from .models import DownloadRequest, ParseRequest
from .storage import ObjectStore
from .tasks import JobPipeline
from .utils import cleanup_old_jobs, detect_platform, new_id, validate_source_url
from .worker import JobManager

logger = logging.getLogger("uvicorn.error")

ESTIMATED_SEC = 30


def build_manager(bucket: Optional[str] = None, s3_client=None) -> JobManager:
    """Wire the job manager from environment configuration."""
    bucket = config.get_bucket() if bucket is None else bucket
    object_store = None
    if bucket:
        object_store = ObjectStore(
            s3_client or config.create_s3_client(),
            bucket,
            part_size=config.UPLOAD_PART_SIZE,
            concurrency=config.UPLOAD_CONCURRENCY,
        )

    store = JobStore()
    history = JobHistory()
    fetcher = YtDlpFetcher(
        config.YTDLP_BIN,
        retries=config.FETCH_RETRIES,
        ffmpeg_location=config.FFMPEG_LOCATION,
    )
    pipeline = JobPipeline(
        store,
        history,
        fetcher,
        object_store,
        tmp_dir=config.TMP_DIR,
        url_ttl=config.SIGNED_URL_TTL_SEC,
        job_timeout=config.JOB_TIMEOUT_SECS,
    )
    return JobManager(
        pipeline,
        store,
        history,
        bucket=bucket,
        concurrency=config.WORKER_CONCURRENCY,
        max_queue=config.QUEUE_MAX_SIZE,
    )


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"code": code, "message": message})


def create_app(manager: Optional[JobManager] = None, public_dir: Optional[Path] = None) -> FastAPI:
    app = FastAPI(title="multiclip")
    app.state.manager = manager or build_manager()
    public_dir = Path(public_dir or config.PUBLIC_DIR)

    # -------------------- CORS --------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.get_cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=False,
    )

    # -------------------- Startup / shutdown --------------------

    @app.on_event("startup")
    async def startup():
        tmp_dir = app.state.manager.pipeline.tmp_dir
        tmp_dir.mkdir(parents=True, exist_ok=True)
        logger.info("[Startup] Cleaning old temp files...")
        removed = cleanup_old_jobs(tmp_dir, config.TMP_MAX_AGE)
        if removed:
            logger.info(f"[Startup] Removed {removed} stale job folders")
        await app.state.manager.start()
        logger.info(f"[CORS] CORS_ORIGIN={config.CORS_ORIGIN!r} origins={config.get_cors_origins()}")

    @app.on_event("shutdown")
    async def shutdown():
        await app.state.manager.stop()

    # -------------------- Errors --------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error(400, "BAD_REQ", "invalid request body")

    @app.exception_handler(JobError)
    async def job_error_handler(request: Request, exc: JobError):
        if isinstance(exc, InvalidInputError):
            return _error(400, exc.code, str(exc))
        if isinstance(exc, (ConfigurationError, QueueFullError)):
            return _error(503, exc.code, str(exc))
        logger.error(f"[API] {exc.code}: {exc}")
        return _error(500, exc.code, str(exc))

    # -------------------- Health --------------------

    @app.get("/health", include_in_schema=False)
    @app.get("/healthz", include_in_schema=False)
    def health():
        return {"ok": True}

    @app.get("/favicon.ico", include_in_schema=False)
    def favicon():
        return Response(status_code=204)

    # -------------------- API --------------------

    @app.get("/api/history")
    async def history():
        return {"items": [entry.to_public() for entry in app.state.manager.history()]}

    @app.post("/api/parse")
    async def parse(body: ParseRequest):
        url = validate_source_url(body.url)
        return {"platform": detect_platform(url), "resourceId": new_id("rs")}

    @app.post("/api/download")
    async def download(body: DownloadRequest):
        job_id = app.state.manager.submit(
            body.url,
            body.type,
            body.quality,
            platform=body.platform,
            resource_id=body.resource_id,
        )
        return {"jobId": job_id, "estimatedSec": ESTIMATED_SEC}

    @app.get("/api/download/status")
    async def download_status(jobId: Optional[str] = None):
        job = app.state.manager.get(str(jobId)) if jobId else None
        if job is None:
            return _error(404, "NOT_FOUND", "job not found")
        return JSONResponse(job.to_public(), headers={"Cache-Control": "no-store"})

    @app.delete("/api/download/{job_id}")
    async def cancel_download(job_id: str):
        result = app.state.manager.cancel(job_id)
        if result is None:
            return _error(404, "NOT_FOUND", "job not found")
        if result is False:
            return _error(409, "ALREADY_FINISHED", "job already finished")
        return {"jobId": job_id, "cancelled": True}

    # -------------------- Static --------------------

    if public_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(public_dir), html=True), name="public")
    else:
        @app.get("/", include_in_schema=False)
        def root():
            return {"ok": True, "service": "multiclip", "docs": "/docs"}

    return app


def run() -> None:
    import uvicorn

    logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))
    uvicorn.run(create_app(), host="0.0.0.0", port=config.PORT)


if __name__ == "__main__":
    run()
