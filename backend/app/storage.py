import base64
import logging
import os
import shutil
import uuid
from typing import Any, Optional

import boto3
from botocore.client import Config as BotoConfig
from fastapi import UploadFile

from .config import TryOnConfig

logger = logging.getLogger(__name__)


def guess_content_type(filename: str) -> str:
    name = (filename or "").lower()
    if name.endswith(".png"):
        return "image/png"
    if name.endswith(".gif"):
        return "image/gif"
    if name.endswith(".webp"):
        return "image/webp"
    return "image/jpeg"


def _safe_name(name: Optional[str], fallback: str) -> str:
    name = name or fallback
    return name.replace("/", "_").replace("\\", "_")


class Storage:
    @staticmethod
    def save_upload(upload: UploadFile, upload_dir: str, prefix: Optional[str] = None) -> str:
        """Spool a multipart part to a uniquely named file under ``upload_dir``."""
        os.makedirs(upload_dir, exist_ok=True)
        base = f"{prefix}_" if prefix else ""
        name = _safe_name(upload.filename, "upload.bin")
        path = os.path.join(upload_dir, f"{base}{uuid.uuid4().hex}_{name}")
        with open(path, "wb") as f:
            shutil.copyfileobj(upload.file, f)
        return path

    @staticmethod
    def read_bytes(path: str) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    @staticmethod
    def discard(*paths: Optional[str]) -> None:
        for path in paths:
            if not path:
                continue
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError:
                logger.warning("Could not remove temporary upload %s", path, exc_info=True)


class InlineImageStore:
    returns_urls = False

    def put(self, data: bytes, filename: str, content_type: str) -> str:
        return base64.b64encode(data).decode("ascii")


class S3ImageStore:
    """S3-compatible bucket (AWS S3, Supabase Storage, MinIO).

    Keys embed a uuid4 so concurrent requests never write the same object.
    """

    returns_urls = True

    def __init__(self, config: TryOnConfig, client: Any = None) -> None:
        self.bucket = config.require_s3()
        self.prefix = config.s3_prefix.rstrip("/")
        self.cdn_base_url = config.cdn_base_url
        self.presign_ttl_s = config.presign_ttl_s
        self.client = client or self._client(config)

    @staticmethod
    def _client(config: TryOnConfig):
        session = boto3.session.Session()
        return session.client(
            "s3",
            region_name=config.s3_region,
            endpoint_url=config.s3_endpoint_url,
            aws_access_key_id=config.s3_access_key_id,
            aws_secret_access_key=config.s3_secret_access_key,
            config=BotoConfig(signature_version="s3v4"),
        )

    def key_for(self, filename: str) -> str:
        name = _safe_name(filename, "image.jpg")
        return f"{self.prefix}/uploads/{uuid.uuid4()}-{name}" if self.prefix else f"uploads/{uuid.uuid4()}-{name}"

    def put(self, data: bytes, filename: str, content_type: str) -> str:
        key = self.key_for(filename)
        self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type or guess_content_type(filename))
        logger.info("Uploaded %s to s3://%s/%s", filename, self.bucket, key)
        if self.cdn_base_url:
            return f"{self.cdn_base_url.rstrip('/')}/{key}"
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=self.presign_ttl_s,
        )


def build_image_store(config: TryOnConfig, s3_client: Any = None):
    if config.image_store == "s3":
        return S3ImageStore(config, client=s3_client)
    return InlineImageStore()
