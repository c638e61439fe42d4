"""Tests for the listing, detection and flattening pipeline."""

import pytest
from conftest import FakeDetector, FakeS3Client, make_face_detail

from s3_face_analysis.analysis.pipeline import FaceAnalysisPipeline, MemorySink, PipelineState
from s3_face_analysis.cancellation import CancellationToken
from s3_face_analysis.errors import (
    CancellationError,
    ConfigurationError,
    DetectionTimeoutError,
    ListingError,
    PipelineError,
    RemoteAnalysisError,
)
from s3_face_analysis.storage.bucket_client import BucketEnumerator

RECORDS_PER_FACE = 17  # 10 single-valued + 2 emotions + 3 pose + 2 quality


def _pipeline(pages, detector=None, fail_on_call=None, **kwargs):
    client = FakeS3Client(pages, fail_on_call=fail_on_call)
    detector = detector or FakeDetector()
    return FaceAnalysisPipeline(BucketEnumerator(client), detector, **kwargs), client, detector


def test_empty_bucket_emits_nothing():
    pipeline, _, detector = _pipeline([[]])
    sink = MemorySink()
    report = pipeline.run("photos", sink=sink)
    assert sink.rows == []
    assert detector.calls == []
    assert report.state is PipelineState.DONE
    assert report.objects_listed == 0


def test_object_without_faces_emits_nothing():
    pipeline, _, _ = _pipeline([["empty.jpg"]], FakeDetector(faces_by_key={"empty.jpg": []}))
    sink = MemorySink()
    report = pipeline.run("photos", sink=sink)
    assert sink.rows == []
    assert sink.image_files == ["s3://photos/empty.jpg"]
    assert report.state is PipelineState.DONE
    assert report.objects_succeeded == 1
    assert report.faces_detected == 0


def test_single_face_rows():
    pipeline, _, _ = _pipeline([["a.jpg"]])
    sink = MemorySink()
    report = pipeline.run("photos", sink=sink)

    assert len(sink.rows) == RECORDS_PER_FACE
    assert sink.rows[0] == ("s3://photos/a.jpg", "a.jpg#0", "age_range", "20-30", None)
    assert ("s3://photos/a.jpg", "a.jpg#0", "beard", "true", 90.0) in sink.rows
    assert ("s3://photos/a.jpg", "a.jpg#0", "emotion", "HAPPY", 80.0) in sink.rows
    assert ("s3://photos/a.jpg", "a.jpg#0", "emotion", "CALM", 10.0) in sink.rows
    assert report.records_emitted == RECORDS_PER_FACE
    assert report.faces_detected == 1


def test_emission_order_objects_then_faces():
    detector = FakeDetector(faces_by_key={"b.jpg": [make_face_detail(), make_face_detail()]})
    pipeline, _, _ = _pipeline([["a.jpg", "b.jpg"], ["c.jpg"]], detector)
    entity_ids = []
    for record in pipeline.iter_records("photos"):
        if not entity_ids or entity_ids[-1] != record.entity_id:
            entity_ids.append(record.entity_id)
    assert entity_ids == ["a.jpg#0", "b.jpg#0", "b.jpg#1", "c.jpg#0"]
    assert pipeline.state is PipelineState.DONE
    assert pipeline.report.pages == 2


def test_concurrent_workers_preserve_order():
    keys = [f"img-{i}.jpg" for i in range(8)]
    # Later objects finish first
    delays = {key: 0.01 * (len(keys) - i) for i, key in enumerate(keys)}
    pages = [keys[:5], keys[5:]]

    sequential, _, _ = _pipeline(pages)
    concurrent, _, detector = _pipeline(pages, FakeDetector(delays=delays), workers=4)

    expected = list(sequential.iter_records("photos"))
    actual = list(concurrent.iter_records("photos"))
    assert actual == expected
    assert sorted(detector.calls) == sorted(keys)
    assert concurrent.report.objects_succeeded == 8


def test_timeout_skips_object_and_continues():
    detector = FakeDetector(
        errors={"bad.jpg": DetectionTimeoutError("DetectFaces timed out", object_key="bad.jpg")}
    )
    pipeline, _, _ = _pipeline([["a.jpg", "bad.jpg", "c.jpg"]], detector)
    sink = MemorySink()
    report = pipeline.run("photos", sink=sink)

    assert report.state is PipelineState.DONE
    assert report.objects_succeeded == 2
    assert report.objects_failed == 1
    assert report.failures[0].object_key == "bad.jpg"
    assert report.failures[0].kind == "timeout"
    assert {row[0] for row in sink.rows} == {"s3://photos/a.jpg", "s3://photos/c.jpg"}
    assert sink.image_files == ["s3://photos/a.jpg", "s3://photos/c.jpg"]


def test_malformed_result_is_skipped():
    detector = FakeDetector(faces_by_key={"odd.jpg": [make_face_detail(drop=("Pose",))]})
    pipeline, _, _ = _pipeline([["odd.jpg", "a.jpg"]], detector)
    report = pipeline.run("photos")
    assert report.objects_failed == 1
    assert report.failures[0].kind == "malformed_bundle"
    assert report.failures[0].object_key == "odd.jpg"
    assert report.records_emitted == RECORDS_PER_FACE


def test_listing_failure_keeps_earlier_records():
    pipeline, _, _ = _pipeline([["a.jpg", "b.jpg"], ["c.jpg"]], fail_on_call=2)
    records = []
    with pytest.raises(ListingError) as excinfo:
        for record in pipeline.iter_records("photos"):
            records.append(record)

    assert {r.object_key for r in records} == {"a.jpg", "b.jpg"}
    assert len(records) == 2 * RECORDS_PER_FACE
    assert excinfo.value.processed == 2
    assert pipeline.state is PipelineState.FAILED


def test_listing_failure_drains_in_flight_work():
    pipeline, _, _ = _pipeline([["a.jpg", "b.jpg"], ["c.jpg"]], fail_on_call=2, workers=4)
    sink = MemorySink()
    with pytest.raises(ListingError):
        pipeline.run("photos", sink=sink)
    assert {row[0] for row in sink.rows} == {"s3://photos/a.jpg", "s3://photos/b.jpg"}
    assert pipeline.report.objects_succeeded == 2


def test_error_budget_exceeded():
    errors = {key: RemoteAnalysisError("boom") for key in ("b.jpg", "c.jpg")}
    pipeline, _, detector = _pipeline(
        [["a.jpg", "b.jpg", "c.jpg", "d.jpg"]], FakeDetector(errors=errors), max_errors=1
    )
    with pytest.raises(PipelineError) as excinfo:
        pipeline.run("photos")

    assert excinfo.value.object_key == "c.jpg"
    assert excinfo.value.processed == 1
    assert "d.jpg" not in detector.calls
    assert pipeline.state is PipelineState.FAILED


def test_error_budget_not_exceeded():
    errors = {"b.jpg": RemoteAnalysisError("boom")}
    pipeline, _, _ = _pipeline([["a.jpg", "b.jpg"]], FakeDetector(errors=errors), max_errors=1)
    assert pipeline.run("photos").state is PipelineState.DONE


def test_cancellation_stops_new_work():
    token = CancellationToken()
    pipeline, _, detector = _pipeline([["a.jpg", "b.jpg", "c.jpg"]], cancellation=token)

    with pytest.raises(CancellationError) as excinfo:
        pipeline.run("photos", on_result=lambda result: token.cancel())

    assert detector.calls == ["a.jpg"]
    assert excinfo.value.processed == 1
    assert pipeline.state is PipelineState.FAILED


def test_cancellation_lets_in_flight_work_finish():
    token = CancellationToken()
    keys = ["a.jpg", "b.jpg", "c.jpg", "d.jpg", "e.jpg"]
    pipeline, _, detector = _pipeline([keys], cancellation=token, workers=3)
    sink = MemorySink()

    with pytest.raises(CancellationError):
        pipeline.run("photos", sink=sink, on_result=lambda result: token.cancel())

    assert sorted(detector.calls) == ["a.jpg", "b.jpg", "c.jpg"]
    assert [row[0] for row in sink.rows[::RECORDS_PER_FACE]] == [
        "s3://photos/a.jpg",
        "s3://photos/b.jpg",
        "s3://photos/c.jpg",
    ]


def test_sink_missing_field_is_rejected_before_io():
    class NarrowSink(MemorySink):
        fields = ("ImageFile", "FaceId", "Property", "Value")

    pipeline, client, detector = _pipeline([["a.jpg"]])
    with pytest.raises(ConfigurationError) as excinfo:
        pipeline.run("photos", sink=NarrowSink())
    assert "Confidence" in str(excinfo.value)
    assert client.calls == []
    assert detector.calls == []


def test_empty_bucket_name_is_rejected():
    pipeline, client, _ = _pipeline([["a.jpg"]])
    with pytest.raises(ConfigurationError):
        pipeline.run("")
    assert client.calls == []


def test_invalid_worker_count():
    with pytest.raises(ConfigurationError):
        _pipeline([[]], workers=0)


def test_custom_uri_scheme():
    pipeline, _, _ = _pipeline([["a.jpg"]], scheme="s3a")
    sink = MemorySink()
    pipeline.run("photos", sink=sink)
    assert sink.rows[0][0] == "s3a://photos/a.jpg"


def test_skip_keys_are_listed_but_not_detected():
    pipeline, _, detector = _pipeline([["a.jpg", "b.jpg"], ["c.jpg"]], skip_keys={"b.jpg"})
    sink = MemorySink()
    report = pipeline.run("photos", sink=sink)
    assert detector.calls == ["a.jpg", "c.jpg"]
    assert sink.image_files == ["s3://photos/a.jpg", "s3://photos/c.jpg"]
    assert report.objects_listed == 3
    assert report.objects_skipped == 1
    assert report.objects_succeeded == 2
    assert report.state is PipelineState.DONE
