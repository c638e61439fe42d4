"""Drive bucket listing, face detection and flattening as one pass."""

import logging
from collections import deque
from collections.abc import Callable, Collection, Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from s3_face_analysis.analysis.flattener import flatten
from s3_face_analysis.cancellation import CancellationToken
from s3_face_analysis.config import OUTPUT_FIELDS, missing_output_fields
from s3_face_analysis.errors import (
    CancellationError,
    ConfigurationError,
    FaceAnalysisError,
    ListingError,
    MalformedBundleError,
    PipelineError,
    RemoteAnalysisError,
)
from s3_face_analysis.models import FaceAttributeBundle, FlatRecord, ObjectRef

logger = logging.getLogger(__name__)


class ObjectLister(Protocol):
    def iter_pages(self, bucket_name: str) -> Iterator[list[ObjectRef]]: ...


class FaceDetector(Protocol):
    def detect(self, bucket_name: str, object_key: str) -> list[FaceAttributeBundle]: ...


class RecordSink(Protocol):
    fields: tuple[str, ...]

    def write(self, image_file: str, rows: list[tuple]) -> None: ...


class PipelineState(Enum):
    NOT_STARTED = "not_started"
    LISTING = "listing"
    DETECTING = "detecting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ObjectFailure:
    object_key: str
    kind: str
    message: str


@dataclass
class ObjectResult:
    """Outcome of detecting and flattening one object."""

    object_ref: ObjectRef
    face_count: int = 0
    records: list[FlatRecord] = field(default_factory=list)
    error: FaceAnalysisError | None = None


@dataclass
class PipelineReport:
    """Counters for one pass over a bucket."""

    bucket_name: str
    state: PipelineState = PipelineState.NOT_STARTED
    pages: int = 0
    objects_listed: int = 0
    objects_skipped: int = 0
    objects_succeeded: int = 0
    objects_failed: int = 0
    faces_detected: int = 0
    records_emitted: int = 0
    failures: list[ObjectFailure] = field(default_factory=list)


class MemorySink:
    """Collect output rows in a list."""

    fields: tuple[str, ...] = OUTPUT_FIELDS

    def __init__(self) -> None:
        self.image_files: list[str] = []
        self.rows: list[tuple] = []

    def write(self, image_file: str, rows: list[tuple]) -> None:
        self.image_files.append(image_file)
        self.rows.extend(rows)


class FaceAnalysisPipeline:
    """List a bucket, detect faces in every object and flatten the results.

    Records are emitted in enumerator order, then face order, then canonical
    attribute order, for any number of workers: with ``workers > 1`` up to
    ``workers`` detect calls run concurrently and their results are consumed
    in submission order.

    Per-object detection failures are logged and skipped. When more than
    ``max_errors`` objects have failed the pass stops with PipelineError
    (``None`` disables the budget).

    Objects whose key is in ``skip_keys`` are counted as listed but never
    sent to the detector.
    """

    def __init__(
        self,
        enumerator: ObjectLister,
        detector: FaceDetector,
        *,
        workers: int = 1,
        max_errors: int | None = None,
        cancellation: CancellationToken | None = None,
        scheme: str = "s3",
        skip_keys: Collection[str] = (),
    ) -> None:
        if workers < 1:
            raise ConfigurationError(f"workers must be at least 1, got {workers}")
        self.enumerator = enumerator
        self.detector = detector
        self.workers = workers
        self.max_errors = max_errors
        self.cancellation = cancellation
        self.scheme = scheme
        self.skip_keys = frozenset(skip_keys)
        self.report = PipelineReport(bucket_name="")

    @property
    def state(self) -> PipelineState:
        return self.report.state

    def analyze_object(self, bucket_name: str, object_ref: ObjectRef) -> ObjectResult:
        """Detect faces in one object and flatten every face.

        Detection and malformed-result errors are captured on the result
        rather than raised.
        """
        result = ObjectResult(object_ref=object_ref)
        try:
            bundles = self.detector.detect(bucket_name, object_ref.key)
            records: list[FlatRecord] = []
            for face_index, bundle in enumerate(bundles):
                records.extend(flatten(object_ref, face_index, bundle))
        except (RemoteAnalysisError, MalformedBundleError) as exc:
            if exc.object_key is None:
                exc.object_key = object_ref.key
            result.error = exc
            return result
        result.face_count = len(bundles)
        result.records = records
        return result

    def iter_results(self, bucket_name: str) -> Iterator[ObjectResult]:
        """Yield one ObjectResult per listed object, in listing order.

        Raises:
            ConfigurationError: if ``bucket_name`` is empty.
            ListingError: if a listing page cannot be fetched.
            CancellationError: if cancellation is observed.
            PipelineError: if failed objects exceed ``max_errors``.
        """
        if not bucket_name:
            raise ConfigurationError("Bucket name is required")

        report = PipelineReport(bucket_name=bucket_name)
        self.report = report
        executor = ThreadPoolExecutor(max_workers=self.workers) if self.workers > 1 else None
        pending: deque[Future] = deque()

        try:
            pages = self.enumerator.iter_pages(bucket_name)
            while True:
                self._check_cancelled(bucket_name)
                report.state = PipelineState.LISTING
                objects = next(pages, None)
                if objects is None:
                    break
                report.pages += 1
                report.objects_listed += len(objects)

                report.state = PipelineState.DETECTING
                for object_ref in objects:
                    self._check_cancelled(bucket_name)
                    if object_ref.key in self.skip_keys:
                        report.objects_skipped += 1
                        continue
                    if executor is None:
                        yield self._settle(self.analyze_object(bucket_name, object_ref))
                        continue
                    pending.append(executor.submit(self.analyze_object, bucket_name, object_ref))
                    while len(pending) >= self.workers:
                        yield self._settle(pending.popleft().result())

            while pending:
                yield self._settle(pending.popleft().result())
            report.state = PipelineState.DONE
            logger.info(
                "Finished %s: %d objects, %d faces, %d records, %d failed",
                bucket_name,
                report.objects_succeeded,
                report.faces_detected,
                report.records_emitted,
                report.objects_failed,
            )
        except (ListingError, CancellationError) as exc:
            # Detect calls already issued are allowed to finish.
            while pending:
                yield self._settle(pending.popleft().result())
            self._fail(exc)
            raise
        except FaceAnalysisError as exc:
            self._fail(exc)
            raise
        except Exception:
            report.state = PipelineState.FAILED
            raise
        finally:
            if executor is not None:
                executor.shutdown(wait=True, cancel_futures=True)

    def iter_records(self, bucket_name: str) -> Iterator[FlatRecord]:
        for result in self.iter_results(bucket_name):
            yield from result.records

    def run(
        self,
        bucket_name: str,
        sink: RecordSink | None = None,
        on_result: Callable[[ObjectResult], None] | None = None,
    ) -> PipelineReport:
        """Run a full pass, writing each object's rows to ``sink`` as one batch.

        Every successfully analyzed object is written, including objects with
        no faces, so a sink can drop rows left over from an earlier pass.

        Args:
            bucket_name: Bucket to analyze.
            sink: Receives the object URI and its rows in OUTPUT_FIELDS order.
            on_result: Called after each object, e.g. to advance a progress bar.

        Returns:
            The pass report, with state DONE.

        Raises:
            ConfigurationError: if the sink lacks a required output field.
        """
        if sink is not None:
            missing = missing_output_fields(sink.fields)
            if missing:
                raise ConfigurationError(f"Sink is missing output fields: {', '.join(missing)}")

        for result in self.iter_results(bucket_name):
            if sink is not None and result.error is None:
                sink.write(
                    result.object_ref.uri(bucket_name, self.scheme),
                    [record.to_row(bucket_name, self.scheme) for record in result.records],
                )
            if on_result is not None:
                on_result(result)
        return self.report

    def _check_cancelled(self, bucket_name: str) -> None:
        if self.cancellation is not None and self.cancellation.is_cancelled():
            raise CancellationError(f"Analysis of '{bucket_name}' cancelled")

    def _settle(self, result: ObjectResult) -> ObjectResult:
        report = self.report
        if result.error is None:
            report.objects_succeeded += 1
            report.faces_detected += result.face_count
            report.records_emitted += len(result.records)
            return result

        error = result.error
        report.objects_failed += 1
        report.failures.append(
            ObjectFailure(object_key=result.object_ref.key, kind=error.kind, message=error.message)
        )
        logger.warning("Skipping %s: %s", result.object_ref.key, error.message)
        if self.max_errors is not None and report.objects_failed > self.max_errors:
            raise self._fail(
                PipelineError(
                    f"{report.objects_failed} objects failed, error budget is {self.max_errors}",
                    object_key=result.object_ref.key,
                )
            )
        return result

    def _fail(self, exc: FaceAnalysisError) -> FaceAnalysisError:
        self.report.state = PipelineState.FAILED
        if exc.processed is not None:
            return exc
        exc.processed = self.report.objects_succeeded
        logger.error("Analysis of %s failed: %s", self.report.bucket_name, exc)
        return exc
