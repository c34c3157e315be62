"""S3 / S3-compatible object storage adapter."""

from __future__ import annotations

import logging
from typing import Any

from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.adapters.storage.base import ObjectStorage
from app.errors import RetrievalFailure

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", "") or "")


class S3ObjectStorage(ObjectStorage):
    def __init__(
        self,
        bucket: str,
        *,
        region: str | None = None,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        client: Any | None = None,
    ) -> None:
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url.rstrip("/") if endpoint_url else None
        self.access_key = access_key
        self.secret_key = secret_key
        self._client = client

    def _ensure_client(self) -> Any:
        if self._client is not None:
            return self._client

        import boto3

        addressing = "path" if self.endpoint_url else "auto"
        self._client = boto3.client(
            "s3",
            region_name=self.region,
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self.access_key,
            aws_secret_access_key=self.secret_key,
            config=Config(s3={"addressing_style": addressing}),
        )
        return self._client

    def _failure(self, action: str, storage_key: str, exc: Exception) -> RetrievalFailure:
        if isinstance(exc, ClientError) and _error_code(exc) in _MISSING_CODES:
            message = f"Object '{storage_key}' does not exist"
        else:
            message = f"Could not {action} object '{storage_key}'"
        logger.warning(
            "storage.%s_failed bucket=%s error=%s",
            action,
            self.bucket,
            type(exc).__name__,
        )
        return RetrievalFailure(message)

    def get_size(self, storage_key: str) -> int:
        client = self._ensure_client()
        try:
            response = client.head_object(Bucket=self.bucket, Key=storage_key)
        except (ClientError, BotoCoreError) as exc:
            raise self._failure("stat", storage_key, exc) from exc
        return int(response.get("ContentLength") or 0)

    def read(self, storage_key: str) -> bytes:
        client = self._ensure_client()
        try:
            response = client.get_object(Bucket=self.bucket, Key=storage_key)
            return bytes(response["Body"].read())
        except (ClientError, BotoCoreError) as exc:
            raise self._failure("read", storage_key, exc) from exc


__all__ = ["S3ObjectStorage"]
