"""S3 bucket listing with continuation-token pagination."""

import logging
from collections.abc import Iterator
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from s3_face_analysis.cancellation import CancellationToken
from s3_face_analysis.config import (
    AWS_PROFILE,
    AWS_REGION,
    CONNECT_TIMEOUT_SECONDS,
    DETECT_TIMEOUT_SECONDS,
)
from s3_face_analysis.errors import CancellationError, ConfigurationError, ListingError
from s3_face_analysis.models import ObjectRef

logger = logging.getLogger(__name__)


def create_s3_client(
    region_name: str | None = None,
    profile_name: str | None = None,
    connect_timeout: int = CONNECT_TIMEOUT_SECONDS,
    read_timeout: int = DETECT_TIMEOUT_SECONDS,
) -> Any:
    """Build an S3 client from the configured region and profile."""
    session = boto3.Session(profile_name=profile_name or AWS_PROFILE)
    return session.client(
        "s3",
        region_name=region_name or AWS_REGION,
        config=Config(connect_timeout=connect_timeout, read_timeout=read_timeout),
    )


class BucketEnumerator:
    """Enumerate every object in a bucket, one ListObjectsV2 page at a time."""

    def __init__(
        self,
        client: Any,
        *,
        prefix: str | None = None,
        page_size: int | None = None,
        cancellation: CancellationToken | None = None,
    ) -> None:
        self.client = client
        self.prefix = prefix
        self.page_size = page_size
        self.cancellation = cancellation

    def iter_pages(self, bucket_name: str) -> Iterator[list[ObjectRef]]:
        """Yield each listing page's objects in the order the store returns them.

        Args:
            bucket_name: Bucket to list.

        Raises:
            ConfigurationError: if ``bucket_name`` is empty.
            ListingError: if a listing request fails. Pages already yielded
                are not retracted.
            CancellationError: if cancellation is observed before a page request.
        """
        if not bucket_name:
            raise ConfigurationError("Bucket name is required")

        params: dict[str, Any] = {"Bucket": bucket_name}
        if self.prefix:
            params["Prefix"] = self.prefix
        if self.page_size:
            params["MaxKeys"] = self.page_size

        page = 1
        while True:
            if self.cancellation is not None and self.cancellation.is_cancelled():
                raise CancellationError(f"Listing of '{bucket_name}' cancelled before page {page}")

            try:
                data = self.client.list_objects_v2(**params)
            except (ClientError, BotoCoreError) as exc:
                raise ListingError(f"Listing page {page} of '{bucket_name}' failed: {exc}") from exc

            objects = [
                ObjectRef(key=item["Key"], size_bytes=int(item.get("Size", 0)))
                for item in data.get("Contents", [])
            ]
            logger.debug("Listed page %d of %s: %d objects", page, bucket_name, len(objects))
            yield objects

            if not data.get("IsTruncated"):
                break
            token = data.get("NextContinuationToken")
            if not token:
                raise ListingError(
                    f"Page {page} of '{bucket_name}' is truncated but has no continuation token"
                )
            params["ContinuationToken"] = token
            page += 1

    def list_all(self, bucket_name: str) -> Iterator[ObjectRef]:
        """Lazily yield every object in the bucket. Single pass, not restartable."""
        for objects in self.iter_pages(bucket_name):
            yield from objects
