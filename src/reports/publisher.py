from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import boto3

from common.config import ConfigurationError, getenv


ENV_BUCKET = "ARTIFACT_BUCKET"
ENV_PREFIX = "ARTIFACT_PREFIX"
DEFAULT_PREFIX = "assets/data"

_CONTENT_TYPES = {
    ".dat": "application/octet-stream",
    ".json": "application/json",
}

logger = logging.getLogger(__name__)


@dataclass
class S3Target:
    bucket: str
    prefix: str

    def key_for(self, filename: str) -> str:
        prefix = self.prefix.strip("/")
        return f"{prefix}/{filename}" if prefix else filename


class ArtifactPublisher:
    """
    Upload generated artifacts to the S3 bucket the site is served from.

    - Objects land at `s3://<bucket>/<prefix>/<filename>`; the default prefix
      matches the `assets/data` path the data store requests.
    - Content type follows the extension: `.dat` is opaque binary, `.json` is
      UTF-8 JSON. The extension is the only signal of the encryption mode.
    - Upload errors propagate; a half-published set must fail the run.
    """

    def __init__(
        self,
        *,
        s3: Optional[object] = None,
        bucket: str,
        prefix: str = DEFAULT_PREFIX,
        region_name: Optional[str] = None,
    ) -> None:
        if not bucket:
            raise ConfigurationError("Missing required configuration: bucket")
        self._s3 = s3 or boto3.client("s3", region_name=region_name)
        self._target = S3Target(bucket=bucket, prefix=prefix)

    @classmethod
    def from_env(cls) -> Optional["ArtifactPublisher"]:
        """Publisher configured from env, or None when no bucket is set."""
        bucket = getenv(ENV_BUCKET)
        if not bucket:
            return None
        return cls(bucket=bucket, prefix=getenv(ENV_PREFIX, DEFAULT_PREFIX) or DEFAULT_PREFIX)

    def publish(self, path: os.PathLike[str] | str) -> str:
        """Upload one artifact file; returns its `s3://` URI."""
        p = Path(path)
        key = self._target.key_for(p.name)
        content_type = _CONTENT_TYPES.get(p.suffix, "application/octet-stream")
        self._s3.put_object(
            Bucket=self._target.bucket,
            Key=key,
            Body=p.read_bytes(),
            ContentType=content_type,
        )
        uri = f"s3://{self._target.bucket}/{key}"
        logger.info("Published %s -> %s", p.name, uri)
        return uri


__all__ = ["ArtifactPublisher", "S3Target"]
