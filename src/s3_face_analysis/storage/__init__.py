"""Storage CLI: inspect bucket contents and manage the DuckDB result store."""

import argparse
import sys


def main() -> None:
    """CLI entry point for storage operations."""
    parser = argparse.ArgumentParser(description="S3 face analysis storage")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log output")
    subparsers = parser.add_subparsers(dest="command")

    # init-db
    subparsers.add_parser("init-db", help="Initialize the database schema")

    # list-objects
    lo_parser = subparsers.add_parser("list-objects", help="List objects in an S3 bucket")
    lo_parser.add_argument("--bucket", help="S3 bucket name (or set S3_BUCKET_NAME in .env)")
    lo_parser.add_argument("--prefix", help="Only list keys under this prefix")
    lo_parser.add_argument("--page-size", type=int, help="Keys per listing request (max 1000)")

    # list-records
    lr_parser = subparsers.add_parser("list-records", help="List stored face attribute records")
    lr_parser.add_argument("--image-file", help="Filter by image URI (s3://bucket/key)")
    lr_parser.add_argument("--face-id", help="Filter by face ID")
    lr_parser.add_argument("--property", help="Filter by property name")

    # export
    ex_parser = subparsers.add_parser("export", help="Export stored records to CSV")
    ex_parser.add_argument("--output", required=True, help="Destination CSV file")

    args = parser.parse_args()

    from s3_face_analysis.log import setup_logging

    setup_logging(args.verbose)

    if args.command is None:
        parser.print_help()
        return

    if args.command == "init-db":
        from s3_face_analysis.db import get_connection

        conn = get_connection()
        conn.close()
        print("Database initialized successfully.")

    elif args.command == "list-objects":
        _cmd_list_objects(args)

    elif args.command == "list-records":
        from s3_face_analysis.db import get_connection
        from s3_face_analysis.storage.repository import list_rows

        conn = get_connection()
        rows = list_rows(
            conn,
            image_file=args.image_file,
            face_id=args.face_id,
            property_name=args.property,
        )
        conn.close()
        for image_file, face_id, prop, value, confidence in rows:
            conf = f"{confidence:6.2f}" if confidence is not None else "     -"
            print(f"{face_id}  {prop:<20} {conf}  {value if value is not None else ''}  [{image_file}]")

    elif args.command == "export":
        from s3_face_analysis.db import get_connection
        from s3_face_analysis.storage.repository import export_rows_csv

        conn = get_connection()
        count = export_rows_csv(conn, args.output)
        conn.close()
        print(f"Exported {count} records to {args.output}.")


def _cmd_list_objects(args: argparse.Namespace) -> None:
    """List every object in a bucket."""
    from s3_face_analysis.config import S3_PAGE_SIZE, S3_PREFIX, require_bucket_name
    from s3_face_analysis.errors import FaceAnalysisError
    from s3_face_analysis.storage.bucket_client import BucketEnumerator, create_s3_client

    try:
        bucket_name = require_bucket_name(args.bucket)
        enumerator = BucketEnumerator(
            create_s3_client(),
            prefix=args.prefix or S3_PREFIX,
            page_size=args.page_size or S3_PAGE_SIZE,
        )
        count = 0
        total_bytes = 0
        for obj in enumerator.list_all(bucket_name):
            print(f"  {obj.size_bytes:>12}  {obj.key}")
            count += 1
            total_bytes += obj.size_bytes
    except FaceAnalysisError as exc:
        print(f"Error: {exc}")
        sys.exit(1)
    print(f"{count} objects, {total_bytes} bytes in '{bucket_name}'.")
