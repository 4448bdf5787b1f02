from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import UploadUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PresignedUpload:
    upload_url: str
    key: str
    expires_in: int


def storage_key(filename: str, prefix: Optional[str] = None) -> str:
    stamp = int(time.time() * 1000)
    return f"{prefix.strip('/') + '/' if prefix else ''}{stamp}-{filename}"


def s3_client(settings: Settings):
    return boto3.client(
        "s3",
        endpoint_url=settings.storage_endpoint,
        aws_access_key_id=settings.r2_access_key_id,
        aws_secret_access_key=settings.r2_secret_access_key,
        region_name="auto",
        config=Config(signature_version="s3v4"),
    )


def presign_upload(
    settings: Settings,
    filename: str,
    content_type: str,
    prefix: Optional[str] = None,
    expires_in: Optional[int] = None,
) -> PresignedUpload:
    """Issue a presigned ``PUT`` URL; the file bytes never pass through us."""
    if not settings.storage_configured:
        logger.warning("Upload requested but object storage is not configured")
        raise UploadUnavailable(
            "Object storage not configured. Set R2_ACCOUNT_ID, R2_ACCESS_KEY_ID, "
            "R2_SECRET_ACCESS_KEY and R2_BUCKET_NAME."
        )
    expires = expires_in or settings.upload_expires
    key = storage_key(filename, prefix)
    try:
        url = s3_client(settings).generate_presigned_url(
            "put_object",
            Params={"Bucket": settings.r2_bucket_name, "Key": key, "ContentType": content_type},
            ExpiresIn=expires,
        )
    except (BotoCoreError, ClientError) as exc:
        logger.error("Presigning upload for %s failed: %s", key, exc)
        raise UploadUnavailable("Upload failed") from exc
    return PresignedUpload(upload_url=url, key=key, expires_in=expires)
