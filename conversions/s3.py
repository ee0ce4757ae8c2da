from __future__ import annotations

from pathlib import Path

import boto3
from botocore.config import Config as BotoConfig
from django.conf import settings


def get_s3_client():
    """
    SDK client for server-side upload/download.
    """
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT_URL,  # e.g. http://127.0.0.1:9000
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        ),
    )


def get_presign_client():
    """
    Separate client for generating presigned URLs that the app will call.
    Uses S3_PUBLIC_ENDPOINT so the URL host matches what the client reaches.
    """
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=settings.S3_PUBLIC_ENDPOINT,
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",  # ensures AWS4 signing
        ),
    )


class BlobStore:
    """
    The bucket the pipeline reads from and writes to.

    User metadata is passed through as-is on upload; S3 lower-cases the keys,
    so readers must match them case-insensitively.
    """

    def __init__(self, client=None, bucket: str | None = None, presign_client=None):
        self.client = client or get_s3_client()
        self.bucket = bucket or settings.S3_BUCKET
        self._presign_client = presign_client

    @property
    def presign_client(self):
        if self._presign_client is None:
            self._presign_client = get_presign_client()
        return self._presign_client

    def head(self, key: str) -> tuple[str, dict]:
        """Return (content_type, user_metadata) of an existing object."""
        resp = self.client.head_object(Bucket=self.bucket, Key=key)
        return resp.get("ContentType", ""), dict(resp.get("Metadata") or {})

    def download(self, key: str, local_path: Path) -> None:
        self.client.download_file(self.bucket, key, str(local_path))

    def upload_file(self, local_path: Path, key: str, content_type: str, metadata: dict | None = None) -> None:
        """
        Upload a single file with its Content-Type and string-valued user metadata.
        """
        extra = {"ContentType": content_type}
        if metadata:
            extra["Metadata"] = {k: str(v) for k, v in metadata.items()}
        self.client.upload_file(str(local_path), self.bucket, key, ExtraArgs=extra)

    def put_bytes(self, data: bytes, key: str, content_type: str, metadata: dict | None = None) -> None:
        params = {"Bucket": self.bucket, "Key": key, "Body": data, "ContentType": content_type}
        if metadata:
            params["Metadata"] = {k: str(v) for k, v in metadata.items()}
        self.client.put_object(**params)

    def public_url(self, key: str) -> str:
        """
        Direct object URL against the PUBLIC endpoint (path-style addressing).
        """
        base = settings.S3_PUBLIC_ENDPOINT.rstrip("/")
        return f"{base}/{self.bucket}/{key}"

    def presigned_put(self, key: str, content_type: str | None = None,
                      metadata: dict | None = None, expires: int | None = None) -> dict:
        """
        Presigned PUT URL for a direct upload.

        ContentType is deliberately left out of the signature so clients that
        omit or alter the header still succeed; it is suggested back in
        ``headers``. User metadata IS signed, since routing depends on it, so
        the client has to send those headers verbatim.
        """
        params = {"Bucket": self.bucket, "Key": key}
        headers = {"Content-Type": content_type} if content_type else {}
        if metadata:
            meta = {k.lower(): str(v) for k, v in metadata.items()}
            params["Metadata"] = meta
            headers.update({f"x-amz-meta-{k}": v for k, v in meta.items()})
        url = self.presign_client.generate_presigned_url(
            ClientMethod="put_object",
            Params=params,
            ExpiresIn=expires or settings.S3_PRESIGN_EXPIRE_SECONDS,
            HttpMethod="PUT",
        )
        return {"url": url, "headers": headers}

    def presigned_get(self, key: str, expires: int | None = None) -> str:
        return self.presign_client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=expires or settings.S3_PRESIGN_EXPIRE_SECONDS,
            HttpMethod="GET",
        )
