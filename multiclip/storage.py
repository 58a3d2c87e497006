# multiclip/storage.py
"""
S3 seam: multipart upload of a staged artifact and presigned GET issuance.

boto3 errors are translated into TransferError / IssuanceError here so the
pipeline only sees its own taxonomy.
"""

import logging
from os.path import basename
from typing import Callable, Optional

from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError

from .errors import IssuanceError, JobError, TransferError

logger = logging.getLogger(__name__)

DEFAULT_PART_SIZE = 8 * 1024 * 1024
DEFAULT_CONCURRENCY = 3


def _client_error_detail(e: ClientError) -> str:
    err = e.response.get("Error", {})
    code = err.get("Code", "ClientError")
    msg = err.get("Message", str(e))
    return f"{code}: {msg}"


class ObjectStore:
    def __init__(
        self,
        client,
        bucket: str,
        *,
        part_size: int = DEFAULT_PART_SIZE,
        concurrency: int = DEFAULT_CONCURRENCY,
    ):
        self._s3 = client
        self.bucket = bucket
        self.transfer_config = TransferConfig(
            multipart_threshold=part_size,
            multipart_chunksize=part_size,
            max_concurrency=concurrency,
        )

    def upload(
        self,
        path,
        key: str,
        content_type: str,
        callback: Optional[Callable[[int], None]] = None,
    ) -> int:
        """
        Blocking multipart upload; returns the stored object's ContentLength.

        ``callback`` receives byte deltas from s3transfer worker threads. If it
        raises, the transfer fails and s3transfer aborts the multipart upload.
        """
        try:
            self._s3.upload_file(
                str(path),
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type},
                Callback=callback,
                Config=self.transfer_config,
            )
            head = self._s3.head_object(Bucket=self.bucket, Key=key)
        except JobError:
            raise
        except ClientError as e:
            raise TransferError(f"S3 put {self.bucket}/{key}: {_client_error_detail(e)}") from e
        except (BotoCoreError, OSError) as e:
            raise TransferError(f"S3 put {self.bucket}/{key}: {e}") from e

        stored = int(head.get("ContentLength", 0))
        logger.info(f"[Transfer] Uploaded -> s3://{self.bucket}/{key} (ContentLength={stored})")
        return stored

    def presign(self, key: str, expires: int, content_type: Optional[str] = None) -> str:
        """Presigned GET that forces a real file download in browsers."""
        params = {
            "Bucket": self.bucket,
            "Key": key,
            "ResponseContentDisposition": f'attachment; filename="{basename(key)}"',
        }
        if content_type:
            params["ResponseContentType"] = content_type
        try:
            return self._s3.generate_presigned_url(
                ClientMethod="get_object",
                Params=params,
                ExpiresIn=int(expires),
            )
        except ClientError as e:
            raise IssuanceError(f"presign {self.bucket}/{key}: {_client_error_detail(e)}") from e
        except BotoCoreError as e:
            raise IssuanceError(f"presign {self.bucket}/{key}: {e}") from e
