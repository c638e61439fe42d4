"""Flatten a face attribute bundle into (entity, property, value, confidence) records.

Each attribute is described once in ``ATTRIBUTE_DESCRIPTORS``; the tuple order
is the canonical record order for every face.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from s3_face_analysis.errors import MalformedBundleError
from s3_face_analysis.models import FaceAttributeBundle, FlatRecord, ObjectRef


class Shape(Enum):
    RANGE = "range"
    SCALAR = "scalar"
    SCORE = "score"
    REPEATED_WITH_CONFIDENCE = "repeated_with_confidence"
    REPEATED = "repeated"


@dataclass(frozen=True)
class AttributeDescriptor:
    """How to read one attribute from a bundle and which record shape it yields."""

    name: str
    extract: Callable[[FaceAttributeBundle], Any]
    shape: Shape


ATTRIBUTE_DESCRIPTORS: tuple[AttributeDescriptor, ...] = (
    AttributeDescriptor("age_range", lambda b: b.age_range, Shape.RANGE),
    AttributeDescriptor("beard", lambda b: b.beard, Shape.SCALAR),
    AttributeDescriptor("mustache", lambda b: b.mustache, Shape.SCALAR),
    AttributeDescriptor("confidence", lambda b: b.confidence, Shape.SCORE),
    AttributeDescriptor("emotion", lambda b: b.emotions, Shape.REPEATED_WITH_CONFIDENCE),
    AttributeDescriptor("eyeglasses", lambda b: b.eyeglasses, Shape.SCALAR),
    AttributeDescriptor("eyes_open", lambda b: b.eyes_open, Shape.SCALAR),
    AttributeDescriptor("gender", lambda b: b.gender, Shape.SCALAR),
    AttributeDescriptor("mouth_open", lambda b: b.mouth_open, Shape.SCALAR),
    AttributeDescriptor("smile", lambda b: b.smile, Shape.SCALAR),
    AttributeDescriptor("sunglasses", lambda b: b.sunglasses, Shape.SCALAR),
    AttributeDescriptor("pose", lambda b: b.pose.axes() if b.pose else None, Shape.REPEATED),
    AttributeDescriptor(
        "quality", lambda b: b.quality.metrics() if b.quality else None, Shape.REPEATED
    ),
)


def face_entity_id(object_key: str, face_index: int) -> str:
    """Identifier shared by all records of one face, unique within a bucket pass."""
    return f"{object_key}#{face_index}"


def format_value(value: Any) -> str | None:
    """Render a detector value as record text. Booleans are lowercase."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _format_range(low: Any, high: Any) -> str | None:
    if low is None or high is None:
        return None
    return f"{low}-{high}"


def flatten(object_ref: ObjectRef, face_index: int, bundle: FaceAttributeBundle) -> list[FlatRecord]:
    """Flatten one face's attributes into records in canonical order.

    Args:
        object_ref: The analyzed object.
        face_index: Position of this face in the detector's result (0-based).
        bundle: The face's attribute bundle.

    Returns:
        Records for every attribute. Repeated attributes contribute one record
        per element (possibly none); every other attribute contributes exactly
        one record, with ``value=None`` when its data is absent.

    Raises:
        MalformedBundleError: if a mandatory sub-structure is missing.
    """
    entity_id = face_entity_id(object_ref.key, face_index)
    records: list[FlatRecord] = []

    def emit(prop: str, value: str | None, confidence: float | None) -> None:
        records.append(
            FlatRecord(
                entity_id=entity_id,
                property=prop,
                value=value,
                confidence=confidence,
                object_key=object_ref.key,
            )
        )

    for descriptor in ATTRIBUTE_DESCRIPTORS:
        data = descriptor.extract(bundle)
        if data is None:
            raise MalformedBundleError(descriptor.name, object_key=object_ref.key)

        if descriptor.shape is Shape.RANGE:
            emit(descriptor.name, _format_range(data.low, data.high), None)
        elif descriptor.shape is Shape.SCALAR:
            emit(descriptor.name, format_value(data.value), data.confidence)
        elif descriptor.shape is Shape.SCORE:
            emit(descriptor.name, format_value(data), None)
        elif descriptor.shape is Shape.REPEATED_WITH_CONFIDENCE:
            for item in data:
                emit(descriptor.name, format_value(item.type), item.confidence)
        elif descriptor.shape is Shape.REPEATED:
            for label, measurement in data:
                emit(f"{descriptor.name}_{label}", format_value(measurement), None)

    return records
