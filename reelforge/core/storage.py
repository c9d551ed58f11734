from pathlib import Path
from typing import Any, Dict, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError

from reelforge.config import (
    R2_ACCESS_KEY_ID,
    R2_BUCKET_NAME,
    R2_ENDPOINT_URL,
    R2_PUBLIC_BASE_URL,
    R2_SECRET_ACCESS_KEY,
    logger,
)

_r2_client: Optional[Any] = None

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def get_r2_client():
    global _r2_client
    if _r2_client is None:
        session = boto3.session.Session()
        _r2_client = session.client(
            "s3",
            endpoint_url=R2_ENDPOINT_URL or None,
            aws_access_key_id=R2_ACCESS_KEY_ID or None,
            aws_secret_access_key=R2_SECRET_ACCESS_KEY or None,
            # Cloudflare R2 requires signature version 4 (sigv4)
            config=Config(signature_version="s3v4"),
            region_name="auto",
        )
    return _r2_client


class R2Storage:
    """Object storage for rendered clips, thumbnails and source videos."""

    def __init__(
        self,
        client: Optional[Any] = None,
        bucket: str = R2_BUCKET_NAME,
        public_base_url: str = R2_PUBLIC_BASE_URL,
    ):
        self._client = client
        self.bucket = bucket
        self.public_base_url = public_base_url

    @property
    def client(self):
        if self._client is None:
            self._client = get_r2_client()
        return self._client

    def upload(self, key: str, path: Path, content_type: str) -> str:
        """
        Upload a local file and return its public URL.

        Raises:
            RuntimeError: If the upload fails.
        """
        extra_args: Dict[str, Any] = {"ContentType": content_type}
        try:
            self.client.upload_file(str(path), self.bucket, key, ExtraArgs=extra_args)
        except ClientError as exc:
            logger.error("Failed to upload %s to %s: %s", path, key, exc)
            raise RuntimeError(f"Upload failed for {key}: {exc}") from exc
        logger.debug("Uploaded %s to %s/%s", path.name, self.bucket, key)
        return self.public_url(key)

    def download(self, key: str, path: Path) -> Path:
        """
        Download an object to a local path.

        Raises:
            FileNotFoundError: If the object does not exist.
            RuntimeError: For any other storage failure.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.client.download_file(self.bucket, key, str(path))
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                raise FileNotFoundError(f"Object not found: {key}") from exc
            logger.error("Failed to download %s: %s", key, exc)
            raise RuntimeError(f"Download failed for {key}: {exc}") from exc
        return path

    def public_url(self, key: str, expires_in: int = 7 * 24 * 3600) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except ClientError as exc:
            logger.error("Failed to generate presigned URL for %s: %s", key, exc)
            return ""
