"""Analysis CLI: detect faces in every bucket object and store flat attribute records."""

import argparse
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from s3_face_analysis.analysis.pipeline import PipelineReport


def main() -> None:
    """CLI entry point for face analysis."""
    parser = argparse.ArgumentParser(description="S3 face analysis")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log output")
    subparsers = parser.add_subparsers(dest="command")

    # run
    run_parser = subparsers.add_parser("run", help="Analyze every image in a bucket")
    run_parser.add_argument("--bucket", help="S3 bucket name (or set S3_BUCKET_NAME in .env)")
    run_parser.add_argument("--prefix", help="Only analyze keys under this prefix")
    run_parser.add_argument("--page-size", type=int, help="Keys per listing request (max 1000)")
    run_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Concurrent DetectFaces calls (default: DETECT_WORKERS or 1)",
    )
    run_parser.add_argument(
        "--max-errors",
        type=int,
        default=None,
        help="Abort after more than N failed objects (default: MAX_DETECT_ERRORS or 100)",
    )
    run_parser.add_argument(
        "--skip-analyzed",
        action="store_true",
        help="Skip objects already recorded in the database",
    )

    # status
    subparsers.add_parser("status", help="Show analysis status")

    args = parser.parse_args()

    from s3_face_analysis.log import setup_logging

    setup_logging(args.verbose)

    if args.command is None:
        parser.print_help()
        return

    if args.command == "run":
        _cmd_run(args)
    elif args.command == "status":
        _cmd_status()


def _cmd_run(args: argparse.Namespace) -> None:
    """Run one pass over the bucket and store the records."""
    from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

    from s3_face_analysis.analysis.pipeline import FaceAnalysisPipeline, ObjectResult
    from s3_face_analysis.analysis.rekognition_client import (
        RekognitionDetector,
        create_rekognition_client,
    )
    from s3_face_analysis.cancellation import CancellationToken
    from s3_face_analysis.config import (
        DETECT_WORKERS,
        IMAGE_URI_SCHEME,
        MAX_DETECT_ERRORS,
        S3_PAGE_SIZE,
        S3_PREFIX,
        require_bucket_name,
    )
    from s3_face_analysis.db import get_connection
    from s3_face_analysis.errors import FaceAnalysisError
    from s3_face_analysis.storage.bucket_client import BucketEnumerator, create_s3_client
    from s3_face_analysis.storage.repository import DuckDBSink, get_analyzed_keys, mark_object_analyzed

    try:
        bucket_name = require_bucket_name(args.bucket)
    except FaceAnalysisError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    conn = get_connection()
    skip_keys = get_analyzed_keys(conn, bucket_name, IMAGE_URI_SCHEME) if args.skip_analyzed else set()

    cancellation = CancellationToken()
    enumerator = BucketEnumerator(
        create_s3_client(),
        prefix=args.prefix or S3_PREFIX,
        page_size=args.page_size or S3_PAGE_SIZE,
        cancellation=cancellation,
    )
    pipeline = FaceAnalysisPipeline(
        enumerator,
        RekognitionDetector(create_rekognition_client()),
        workers=args.workers or DETECT_WORKERS,
        max_errors=args.max_errors if args.max_errors is not None else MAX_DETECT_ERRORS,
        cancellation=cancellation,
        scheme=IMAGE_URI_SCHEME,
        skip_keys=skip_keys,
    )
    sink = DuckDBSink(conn)

    with (
        cancellation,
        Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            TextColumn("{task.completed} objects"),
            TimeElapsedColumn(),
        ) as progress,
    ):
        task = progress.add_task(f"Analyzing {bucket_name}", total=None)

        def on_result(result: ObjectResult) -> None:
            if result.error is None:
                mark_object_analyzed(
                    conn,
                    result.object_ref.uri(bucket_name, IMAGE_URI_SCHEME),
                    result.object_ref.size_bytes,
                    result.face_count,
                )
            progress.advance(task)

        try:
            pipeline.run(bucket_name, sink=sink, on_result=on_result)
        except FaceAnalysisError as exc:
            print(f"Error: {exc}")
            _print_report(pipeline.report)
            sys.exit(1)
        finally:
            conn.close()

    _print_report(pipeline.report)


def _print_report(report: "PipelineReport") -> None:
    from s3_face_analysis.analysis.pipeline import PipelineState

    if report.state is PipelineState.DONE:
        print("\nDone.")
    else:
        print(f"\nStopped ({report.state.value}).")
    print(f"  Pages listed: {report.pages}")
    print(f"  Objects listed: {report.objects_listed}")
    if report.objects_skipped > 0:
        print(f"  Objects skipped: {report.objects_skipped}")
    print(f"  Objects analyzed: {report.objects_succeeded}")
    print(f"  Faces detected: {report.faces_detected}")
    print(f"  Records written: {report.records_emitted}")
    if report.objects_failed > 0:
        print(f"  Errors: {report.objects_failed}")
        for failure in report.failures[:10]:
            print(f"    {failure.object_key}: [{failure.kind}] {failure.message}")


def _cmd_status() -> None:
    """Show analysis status."""
    from s3_face_analysis.config import DB_PATH
    from s3_face_analysis.db import get_connection
    from s3_face_analysis.storage.repository import get_stats

    conn = get_connection()
    objects, faces, records = get_stats(conn)
    conn.close()
    print(f"DB: {DB_PATH}")
    print(f"Analyzed objects: {objects}")
    print(f"Faces detected: {faces}")
    print(f"Attribute records: {records}")
    if objects > 0:
        print(f"Average faces per object: {faces / objects:.1f}")
