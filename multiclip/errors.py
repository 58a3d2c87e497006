# multiclip/errors.py
"""
Failure taxonomy for admission and the job pipeline.

Every error carries a short machine-readable ``code`` (mirrored on the job as
``error_code`` and in HTTP error bodies) and a human-readable message.
"""


class JobError(Exception):
    code = "JOB_FAILED"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def __str__(self) -> str:
        return self.message


# --- admission (raised synchronously, never creates a job) ---

class ConfigurationError(JobError):
    code = "CONFIG"


class InvalidInputError(JobError):
    code = "BAD_REQ"


class QueueFullError(JobError):
    code = "QUEUE_FULL"


# --- pipeline stages ---

class FetchError(JobError):
    code = "FETCH_FAILED"


class EmptyArtifactError(FetchError):
    code = "EMPTY_ARTIFACT"


class TransferError(JobError):
    code = "TRANSFER_FAILED"


class IssuanceError(JobError):
    code = "ISSUANCE_FAILED"


# --- lifecycle ---

class JobCancelledError(JobError):
    code = "CANCELLED"


class JobTimeoutError(JobError):
    code = "TIMEOUT"
