"""Project-wide configuration."""

import os
from pathlib import Path

from dotenv import load_dotenv

from s3_face_analysis.errors import ConfigurationError

PROJECT_ROOT = Path(os.environ.get("S3_FACE_ANALYSIS_PROJECT_ROOT", Path.cwd()))

load_dotenv(PROJECT_ROOT / ".env")

DB_PATH = PROJECT_ROOT / "s3_face_analysis.duckdb"

# AWS
AWS_REGION = os.environ.get("AWS_REGION", "us-east-1")
AWS_PROFILE = os.environ.get("AWS_PROFILE") or None
CONNECT_TIMEOUT_SECONDS = int(os.environ.get("CONNECT_TIMEOUT_SECONDS", "30"))
DETECT_TIMEOUT_SECONDS = int(os.environ.get("DETECT_TIMEOUT_SECONDS", "60"))

# S3 listing
S3_BUCKET_NAME = os.environ.get("S3_BUCKET_NAME", "")
S3_PREFIX = os.environ.get("S3_PREFIX") or None
S3_PAGE_SIZE = int(os.environ["S3_PAGE_SIZE"]) if os.environ.get("S3_PAGE_SIZE") else None
IMAGE_URI_SCHEME = os.environ.get("IMAGE_URI_SCHEME", "s3")

# Pipeline
DETECT_WORKERS = int(os.environ.get("DETECT_WORKERS", "1"))
MAX_DETECT_ERRORS = int(os.environ.get("MAX_DETECT_ERRORS", "100"))

# Row schema handed to sinks; order is fixed.
OUTPUT_FIELDS: tuple[str, ...] = ("ImageFile", "FaceId", "Property", "Value", "Confidence")


def require_bucket_name(bucket_name: str | None = None) -> str:
    """Return the bucket to analyze, falling back to S3_BUCKET_NAME.

    Raises:
        ConfigurationError: if neither the argument nor the environment names a bucket.
    """
    name = (bucket_name or S3_BUCKET_NAME).strip()
    if not name:
        raise ConfigurationError("Bucket name is required. Set S3_BUCKET_NAME in .env file.")
    return name


def missing_output_fields(fields: tuple[str, ...] | list[str]) -> list[str]:
    """Return the required output fields absent from ``fields``, in schema order."""
    present = set(fields)
    return [name for name in OUTPUT_FIELDS if name not in present]
