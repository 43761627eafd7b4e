import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _resolve_database_url() -> str:
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    environment = os.getenv("ENVIRONMENT", "").strip().lower()
    if environment == "development":
        return "postgresql+psycopg://localhost:5434/assessment_docs"

    raise ValueError(
        "DATABASE_URL is not set. Set DATABASE_URL for non-development "
        "environments or set ENVIRONMENT=development for local defaults."
    )


def _default_log_format() -> str:
    environment = os.getenv("ENVIRONMENT", "").strip().lower()
    return "readable" if environment in {"development", "test"} else "json"


@dataclass(frozen=True)
class Settings:
    environment: str = os.getenv("ENVIRONMENT", "production").strip().lower()
    database_url: str = _resolve_database_url()
    db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "5"))
    db_max_overflow: int = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    db_pool_timeout: int = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    db_pool_recycle: int = int(os.getenv("DB_POOL_RECYCLE", "1800"))

    # S3 / MinIO settings
    s3_endpoint_url: str = os.getenv("S3_ENDPOINT_URL", "")
    s3_access_key: str = os.getenv("S3_ACCESS_KEY", "")
    s3_secret_key: str = os.getenv("S3_SECRET_KEY", "")
    s3_region: str = os.getenv("S3_REGION", "us-east-1")
    s3_pdf_bucket_name: str = os.getenv("S3_PDF_BUCKET_NAME", "document-pdfs")
    s3_evidence_bucket_name: str = os.getenv("S3_EVIDENCE_BUCKET_NAME", "evidence")
    s3_presigned_url_expiry: int = int(os.getenv("S3_PRESIGNED_URL_EXPIRY", "3600"))
    s3_connect_timeout: int = int(os.getenv("S3_CONNECT_TIMEOUT", "5"))
    s3_read_timeout: int = int(os.getenv("S3_READ_TIMEOUT", "30"))
    s3_max_attempts: int = int(os.getenv("S3_MAX_ATTEMPTS", "3"))

    # Celery
    celery_broker_url: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    celery_result_backend: str = os.getenv(
        "CELERY_RESULT_BACKEND", "redis://localhost:6379/1"
    )
    celery_task_always_eager: bool = os.getenv(
        "CELERY_TASK_ALWAYS_EAGER", ""
    ).strip().lower() in {"1", "true", "yes", "on"}
    integrity_sweep_interval_seconds: int = int(
        os.getenv("INTEGRITY_SWEEP_INTERVAL_SECONDS", "3600")
    )

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "") or _default_log_format()

    app_name: str = os.getenv("APP_NAME", "Assessment Documents API")


settings = Settings()
