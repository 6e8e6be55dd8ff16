"""S3-compatible object storage gateway.

The registry never moves bytes itself: it asks the gateway for short-lived
presigned URLs and the client talks to the bucket directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Protocol
from urllib.parse import parse_qs, urlparse

from crm_files.config import settings

logger = logging.getLogger(__name__)


class ObjectStorageError(Exception):
    """Generic object storage failure."""


class ObjectNotFoundError(ObjectStorageError):
    """Raised when object is missing."""


@dataclass(frozen=True)
class UploadCredential:
    """Single-use upload grant for one locator."""

    url: str
    token: str
    expires_in: int


class StorageGateway(Protocol):
    """Storage provider interface."""

    def issue_upload_credential(
        self, locator: str, content_type: str | None = None
    ) -> UploadCredential: ...
    def issue_download_credential(self, locator: str, ttl_seconds: int) -> str: ...
    def exists(self, locator: str) -> bool: ...
    def delete_object(self, locator: str) -> None: ...


class S3StorageService:
    """S3/MinIO/R2-backed storage provider."""

    def __init__(
        self,
        bucket_name: str,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        region: str,
        upload_ttl_seconds: int = 7200,
        client: Any | None = None,
    ) -> None:
        self.bucket_name = bucket_name
        self.region = region
        self.upload_ttl_seconds = upload_ttl_seconds
        if client is not None:
            self.client = client
            return
        import boto3

        self.client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )

    @staticmethod
    def _error_code(exc: Exception) -> str:
        response = getattr(exc, "response", None)
        if isinstance(response, dict):
            err = response.get("Error", {})
            if isinstance(err, dict):
                return str(err.get("Code", ""))
        return ""

    @staticmethod
    def _signature(url: str) -> str:
        query = parse_qs(urlparse(url).query)
        for key in ("X-Amz-Signature", "Signature"):
            if query.get(key):
                return query[key][0]
        return ""

    def ensure_bucket(self) -> None:
        """Create bucket if missing (safe to call repeatedly)."""
        try:
            self.client.head_bucket(Bucket=self.bucket_name)
            return
        except Exception as exc:
            code = self._error_code(exc)
            if code not in {"404", "NoSuchBucket"}:
                raise ObjectStorageError("Unable to check storage bucket") from exc

        kwargs: dict = {"Bucket": self.bucket_name}
        if self.region and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        self.client.create_bucket(**kwargs)
        logger.info("Created storage bucket: %s", self.bucket_name)

    def issue_upload_credential(
        self, locator: str, content_type: str | None = None
    ) -> UploadCredential:
        params: dict = {"Bucket": self.bucket_name, "Key": locator}
        if content_type:
            params["ContentType"] = content_type
        try:
            url = self.client.generate_presigned_url(
                "put_object", Params=params, ExpiresIn=self.upload_ttl_seconds
            )
        except Exception as exc:
            raise ObjectStorageError("Failed to issue upload credential") from exc
        return UploadCredential(
            url=url, token=self._signature(url), expires_in=self.upload_ttl_seconds
        )

    def issue_download_credential(self, locator: str, ttl_seconds: int) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": locator},
                ExpiresIn=ttl_seconds,
            )
        except Exception as exc:
            raise ObjectStorageError("Failed to issue download credential") from exc

    def exists(self, locator: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket_name, Key=locator)
            return True
        except Exception as exc:
            code = self._error_code(exc)
            if code in {"404", "NoSuchKey"}:
                return False
            raise ObjectStorageError("Failed to check object") from exc

    def delete_object(self, locator: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=locator)
        except Exception as exc:
            code = self._error_code(exc)
            if code in {"404", "NoSuchKey"}:
                raise ObjectNotFoundError(locator) from exc
            raise ObjectStorageError("Failed to delete object") from exc


@lru_cache(maxsize=1)
def get_s3_storage() -> S3StorageService:
    settings.validate_s3_config()
    return S3StorageService(
        bucket_name=settings.s3_bucket_name,
        endpoint_url=settings.s3_endpoint_url,
        access_key=settings.s3_access_key,
        secret_key=settings.s3_secret_key,
        region=settings.s3_region,
        upload_ttl_seconds=settings.upload_url_ttl_seconds,
    )


def ensure_storage_bucket() -> None:
    """Startup hook helper to guarantee bucket availability."""
    get_s3_storage().ensure_bucket()
