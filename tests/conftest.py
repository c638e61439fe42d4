"""Shared test fixtures."""

import copy
import threading
import time

import duckdb
import pytest
from botocore.exceptions import ClientError

from s3_face_analysis.models import FaceAttributeBundle, ObjectRef
from s3_face_analysis.storage.schema import ensure_schema

FACE_DETAIL = {
    "AgeRange": {"Low": 20, "High": 30},
    "Beard": {"Value": True, "Confidence": 90.0},
    "Mustache": {"Value": False, "Confidence": 85.5},
    "Confidence": 99.9,
    "Emotions": [
        {"Type": "HAPPY", "Confidence": 80.0},
        {"Type": "CALM", "Confidence": 10.0},
    ],
    "Eyeglasses": {"Value": False, "Confidence": 97.0},
    "EyesOpen": {"Value": True, "Confidence": 98.0},
    "Gender": {"Value": "Female", "Confidence": 99.0},
    "MouthOpen": {"Value": False, "Confidence": 92.0},
    "Smile": {"Value": True, "Confidence": 95.0},
    "Sunglasses": {"Value": False, "Confidence": 99.5},
    "Pose": {"Pitch": 1.5, "Roll": -2.0, "Yaw": 10.25},
    "Quality": {"Brightness": 75.0, "Sharpness": 60.5},
}


@pytest.fixture
def db_conn():
    """In-memory DuckDB connection with schema initialized."""
    conn = duckdb.connect(":memory:")
    ensure_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def object_ref() -> ObjectRef:
    return ObjectRef(key="photos/team.jpg", size_bytes=204800)


@pytest.fixture
def bundle() -> FaceAttributeBundle:
    return FaceAttributeBundle.from_face_detail(make_face_detail())


def make_face_detail(drop: tuple[str, ...] = (), **overrides) -> dict:
    """Helper to create a Rekognition FaceDetail dict.

    ``drop`` removes top-level attributes; keyword arguments replace them.
    """
    detail = copy.deepcopy(FACE_DETAIL)
    detail.update(overrides)
    for name in drop:
        detail.pop(name, None)
    return detail


class FakeS3Client:
    """Serves ListObjectsV2 pages from a list of key lists."""

    def __init__(self, pages: list[list[str]], fail_on_call: int | None = None) -> None:
        self.pages = pages
        self.fail_on_call = fail_on_call
        self.calls: list[dict] = []

    def list_objects_v2(self, **params) -> dict:
        self.calls.append(params)
        index = len(self.calls) - 1
        if self.fail_on_call == len(self.calls):
            raise ClientError(
                {"Error": {"Code": "InternalError", "Message": "We encountered an internal error"}},
                "ListObjectsV2",
            )
        keys = self.pages[index]
        resp: dict = {"IsTruncated": index < len(self.pages) - 1, "KeyCount": len(keys)}
        if keys:
            resp["Contents"] = [{"Key": key, "Size": 1000 + i} for i, key in enumerate(keys)]
        if resp["IsTruncated"]:
            resp["NextContinuationToken"] = f"token-{index + 1}"
        return resp


class FakeDetector:
    """Returns canned face results per key; one default face otherwise."""

    def __init__(
        self,
        faces_by_key: dict[str, list[dict]] | None = None,
        errors: dict[str, Exception] | None = None,
        delays: dict[str, float] | None = None,
    ) -> None:
        self.faces_by_key = faces_by_key or {}
        self.errors = errors or {}
        self.delays = delays or {}
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def detect(self, bucket_name: str, object_key: str) -> list[FaceAttributeBundle]:
        with self._lock:
            self.calls.append(object_key)
        if object_key in self.delays:
            time.sleep(self.delays[object_key])
        if object_key in self.errors:
            raise self.errors[object_key]
        details = self.faces_by_key.get(object_key, [make_face_detail()])
        return [FaceAttributeBundle.from_face_detail(detail) for detail in details]
