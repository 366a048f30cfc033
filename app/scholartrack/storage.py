from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from app.scholartrack.errors import StorageError

DEFAULT_PRESIGN_EXPIRES = 300


class Storage:
    """Object storage for document bytes. Clients move bytes directly via presigned URLs."""

    def presigned_upload_url(
        self, key: str, *, content_type: str | None = None, expires_in: int = DEFAULT_PRESIGN_EXPIRES
    ) -> str:
        raise StorageError("Presigned URLs require the s3 storage backend")

    def presigned_download_url(
        self, key: str, *, filename: str | None = None, expires_in: int = DEFAULT_PRESIGN_EXPIRES
    ) -> str:
        raise StorageError("Presigned URLs require the s3 storage backend")


@dataclass(frozen=True)
class LocalStorage(Storage):
    """Development backend. Holds no bytes and cannot sign URLs."""

    root: Path


@dataclass(frozen=True)
class S3Storage(Storage):
    endpoint: str
    region: str
    bucket: str
    access_key_id: str
    secret_access_key: str

    def _client(self):
        import boto3
        from botocore.config import Config

        return boto3.client(
            "s3",
            endpoint_url=f"https://{self.endpoint}" if self.endpoint else None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=Config(signature_version="s3v4"),
        )

    def presigned_upload_url(
        self, key: str, *, content_type: str | None = None, expires_in: int = DEFAULT_PRESIGN_EXPIRES
    ) -> str:
        params: dict[str, object] = {"Bucket": self.bucket, "Key": key}
        if content_type:
            params["ContentType"] = content_type
        # Signing is local; no request reaches the bucket here.
        return self._client().generate_presigned_url("put_object", Params=params, ExpiresIn=expires_in)

    def presigned_download_url(
        self, key: str, *, filename: str | None = None, expires_in: int = DEFAULT_PRESIGN_EXPIRES
    ) -> str:
        params: dict[str, object] = {"Bucket": self.bucket, "Key": key}
        if filename:
            params["ResponseContentDisposition"] = f'attachment; filename="{filename}"'
        return self._client().generate_presigned_url("get_object", Params=params, ExpiresIn=expires_in)


def storage_from_config(config: dict) -> Storage:
    backend = (config.get("STORAGE_BACKEND") or "local").strip().lower()
    if backend == "s3":
        bucket = (config.get("S3_BUCKET") or "").strip()
        if not bucket:
            raise StorageError("S3_BUCKET is required for the s3 storage backend")
        return S3Storage(
            endpoint=(config.get("S3_ENDPOINT") or "").strip(),
            region=(config.get("S3_REGION") or "nyc3").strip(),
            bucket=bucket,
            access_key_id=(config.get("S3_ACCESS_KEY_ID") or "").strip(),
            secret_access_key=(config.get("S3_SECRET_ACCESS_KEY") or "").strip(),
        )
    # default local
    root = Path(os.getcwd()) / "storage"
    return LocalStorage(root=root)
