import logging
import re
import uuid
from datetime import datetime, timezone

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from app.config import settings

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"[^a-z0-9]+")


class StorageService:
    @staticmethod
    def is_configured() -> bool:
        return bool(
            settings.s3_endpoint_url
            and settings.s3_access_key
            and settings.s3_secret_key
        )

    @staticmethod
    def _get_client():  # type: ignore[return]
        if not StorageService.is_configured():
            raise RuntimeError(
                "S3 storage is not configured. "
                "Set S3_ENDPOINT_URL, S3_ACCESS_KEY, and S3_SECRET_KEY."
            )
        return boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            region_name=settings.s3_region,
            config=Config(
                signature_version="s3v4",
                connect_timeout=settings.s3_connect_timeout,
                read_timeout=settings.s3_read_timeout,
                retries={"max_attempts": settings.s3_max_attempts, "mode": "standard"},
            ),
        )

    @staticmethod
    def generate_locked_pdf_key(
        organisation_id: str, document_id: str, title: str, version_number: int
    ) -> str:
        slug = _SLUG_RE.sub("_", title.lower()).strip("_") or "document"
        timestamp = int(datetime.now(timezone.utc).timestamp() * 1000)
        return (
            f"{organisation_id}/{document_id}/{slug}_v{version_number}_{timestamp}.pdf"
        )

    @staticmethod
    def generate_evidence_key(
        organisation_id: str, document_id: str, file_name: str
    ) -> str:
        day = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        ext = file_name.rsplit(".", 1)[-1] if "." in file_name else "bin"
        return f"evidence/{organisation_id}/{document_id}/{day}/{uuid.uuid4()}.{ext}"

    @staticmethod
    def upload_bytes(bucket: str, key: str, data: bytes, content_type: str) -> None:
        client = StorageService._get_client()
        client.put_object(Bucket=bucket, Key=key, Body=data, ContentType=content_type)
        logger.info("Uploaded %d bytes to %s/%s", len(data), bucket, key)

    @staticmethod
    def download_bytes(bucket: str, key: str) -> bytes:
        client = StorageService._get_client()
        response = client.get_object(Bucket=bucket, Key=key)
        return response["Body"].read()

    @staticmethod
    def object_exists(bucket: str, key: str) -> bool:
        client = StorageService._get_client()
        try:
            client.head_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise
        return True

    @staticmethod
    def delete_object(bucket: str, key: str) -> None:
        client = StorageService._get_client()
        client.delete_object(Bucket=bucket, Key=key)
        logger.info("Deleted %s/%s", bucket, key)

    @staticmethod
    def generate_upload_url(bucket: str, key: str, mime_type: str) -> str:
        client = StorageService._get_client()
        url: str = client.generate_presigned_url(
            "put_object",
            Params={"Bucket": bucket, "Key": key, "ContentType": mime_type},
            ExpiresIn=settings.s3_presigned_url_expiry,
        )
        return url

    @staticmethod
    def generate_download_url(bucket: str, key: str) -> str:
        client = StorageService._get_client()
        url: str = client.generate_presigned_url(
            "get_object",
            Params={"Bucket": bucket, "Key": key},
            ExpiresIn=settings.s3_presigned_url_expiry,
        )
        return url


storage = StorageService()
