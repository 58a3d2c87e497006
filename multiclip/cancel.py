# multiclip/cancel.py
import threading
from typing import Optional

from .errors import JobCancelledError


class CancelToken:
    """
    Cancellation flag shared between the event loop and transfer threads.

    The pipeline task is cancelled through asyncio; threads that asyncio cannot
    interrupt (boto3 multipart upload) poll the token instead.
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise JobCancelledError(f"job {self.reason or 'cancelled'}")
