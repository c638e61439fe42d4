"""Amazon Rekognition wrapper for face attribute detection."""

from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError, ReadTimeoutError
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from s3_face_analysis.config import (
    AWS_PROFILE,
    AWS_REGION,
    CONNECT_TIMEOUT_SECONDS,
    DETECT_TIMEOUT_SECONDS,
)
from s3_face_analysis.errors import DetectionTimeoutError, RemoteAnalysisError
from s3_face_analysis.models import FaceAttributeBundle

THROTTLING_ERROR_CODES = frozenset(
    {"ThrottlingException", "ProvisionedThroughputExceededException"}
)


def create_rekognition_client(
    region_name: str | None = None,
    profile_name: str | None = None,
    connect_timeout: int = CONNECT_TIMEOUT_SECONDS,
    read_timeout: int = DETECT_TIMEOUT_SECONDS,
) -> Any:
    """Build a Rekognition client. ``read_timeout`` bounds each detect call."""
    session = boto3.Session(profile_name=profile_name or AWS_PROFILE)
    return session.client(
        "rekognition",
        region_name=region_name or AWS_REGION,
        config=Config(
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            retries={"max_attempts": 1, "mode": "standard"},
        ),
    )


def _is_throttled(exc: BaseException) -> bool:
    return (
        isinstance(exc, ClientError)
        and exc.response.get("Error", {}).get("Code") in THROTTLING_ERROR_CODES
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, max=10),
    retry=retry_if_exception(_is_throttled),
    reraise=True,
)
def _detect_faces(client: Any, bucket_name: str, object_key: str) -> dict:
    return client.detect_faces(
        Image={"S3Object": {"Bucket": bucket_name, "Name": object_key}},
        Attributes=["ALL"],
    )


class RekognitionDetector:
    """Detect faces in S3 objects and return one attribute bundle per face."""

    def __init__(self, client: Any) -> None:
        self.client = client

    def detect(self, bucket_name: str, object_key: str) -> list[FaceAttributeBundle]:
        """Run DetectFaces with all attributes on one object.

        Args:
            bucket_name: Bucket holding the image.
            object_key: Key of the image within the bucket.

        Returns:
            One FaceAttributeBundle per detected face, in service order.
            Empty when no face is found.

        Raises:
            DetectionTimeoutError: if the call exceeds the client's timeouts.
            RemoteAnalysisError: for any other service or transport failure.
        """
        try:
            resp = _detect_faces(self.client, bucket_name, object_key)
        except (ReadTimeoutError, ConnectTimeoutError) as exc:
            raise DetectionTimeoutError(
                f"DetectFaces timed out: {exc}", object_key=object_key
            ) from exc
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "Unknown")
            raise RemoteAnalysisError(
                f"DetectFaces failed with {code}: {exc}", object_key=object_key
            ) from exc
        except BotoCoreError as exc:
            raise RemoteAnalysisError(f"DetectFaces failed: {exc}", object_key=object_key) from exc

        return [FaceAttributeBundle.from_face_detail(detail) for detail in resp.get("FaceDetails", [])]
