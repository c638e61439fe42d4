"""Data models for listed objects, face results and flat attribute records."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ObjectRef:
    """A single object summary from a bucket listing."""

    key: str
    size_bytes: int

    def __post_init__(self) -> None:
        if not self.key:
            raise ValueError("Object key must be non-empty")
        if self.size_bytes < 0:
            raise ValueError(f"Object size must be non-negative, got {self.size_bytes}")

    def uri(self, bucket_name: str, scheme: str = "s3") -> str:
        return f"{scheme}://{bucket_name}/{self.key}"


@dataclass(frozen=True)
class ScalarAttribute:
    """A boolean or categorical value with the detector's confidence (0-100)."""

    value: bool | str | None
    confidence: float | None


@dataclass(frozen=True)
class AgeRange:
    low: int | None
    high: int | None


@dataclass(frozen=True)
class Emotion:
    type: str | None
    confidence: float | None


@dataclass(frozen=True)
class Pose:
    pitch: float | None
    roll: float | None
    yaw: float | None

    def axes(self) -> tuple[tuple[str, float | None], ...]:
        return (("pitch", self.pitch), ("roll", self.roll), ("yaw", self.yaw))


@dataclass(frozen=True)
class ImageQuality:
    brightness: float | None
    sharpness: float | None

    def metrics(self) -> tuple[tuple[str, float | None], ...]:
        return (("brightness", self.brightness), ("sharpness", self.sharpness))


@dataclass(frozen=True)
class FaceAttributeBundle:
    """All attributes detected for one face.

    A field is ``None`` when the detector response did not contain the
    sub-structure at all; the flattener rejects such bundles.
    """

    age_range: AgeRange | None
    beard: ScalarAttribute | None
    mustache: ScalarAttribute | None
    confidence: float | None
    emotions: tuple[Emotion, ...] | None
    eyeglasses: ScalarAttribute | None
    eyes_open: ScalarAttribute | None
    gender: ScalarAttribute | None
    mouth_open: ScalarAttribute | None
    smile: ScalarAttribute | None
    sunglasses: ScalarAttribute | None
    pose: Pose | None
    quality: ImageQuality | None

    @classmethod
    def from_face_detail(cls, detail: dict[str, Any]) -> "FaceAttributeBundle":
        """Build a bundle from one Rekognition ``FaceDetail`` dict."""
        age = detail.get("AgeRange")
        emotions = detail.get("Emotions")
        pose = detail.get("Pose")
        quality = detail.get("Quality")
        return cls(
            age_range=AgeRange(low=age.get("Low"), high=age.get("High")) if age is not None else None,
            beard=_scalar(detail, "Beard"),
            mustache=_scalar(detail, "Mustache"),
            confidence=detail.get("Confidence"),
            emotions=(
                tuple(Emotion(type=e.get("Type"), confidence=e.get("Confidence")) for e in emotions)
                if emotions is not None
                else None
            ),
            eyeglasses=_scalar(detail, "Eyeglasses"),
            eyes_open=_scalar(detail, "EyesOpen"),
            gender=_scalar(detail, "Gender"),
            mouth_open=_scalar(detail, "MouthOpen"),
            smile=_scalar(detail, "Smile"),
            sunglasses=_scalar(detail, "Sunglasses"),
            pose=(
                Pose(pitch=pose.get("Pitch"), roll=pose.get("Roll"), yaw=pose.get("Yaw"))
                if pose is not None
                else None
            ),
            quality=(
                ImageQuality(brightness=quality.get("Brightness"), sharpness=quality.get("Sharpness"))
                if quality is not None
                else None
            ),
        )


def _scalar(detail: dict[str, Any], name: str) -> ScalarAttribute | None:
    raw = detail.get(name)
    if raw is None:
        return None
    return ScalarAttribute(value=raw.get("Value"), confidence=raw.get("Confidence"))


@dataclass(frozen=True)
class FlatRecord:
    """One (entity, property, value, confidence) row for a detected face."""

    entity_id: str
    property: str
    value: str | None
    confidence: float | None
    object_key: str

    def to_row(self, bucket_name: str, scheme: str = "s3") -> tuple:
        """Return the row in OUTPUT_FIELDS order."""
        return (
            f"{scheme}://{bucket_name}/{self.object_key}",
            self.entity_id,
            self.property,
            self.value,
            self.confidence,
        )
