"""CRUD operations for flattened face attributes in DuckDB."""

from pathlib import Path

import duckdb

from s3_face_analysis.config import OUTPUT_FIELDS


def insert_rows(conn: duckdb.DuckDBPyConnection, rows: list[tuple]) -> None:
    """Insert output rows (ImageFile, FaceId, Property, Value, Confidence)."""
    if not rows:
        return
    conn.executemany(
        """
        INSERT INTO face_attributes (image_file, face_id, property, value, confidence)
        VALUES (?, ?, ?, ?, ?)
        """,
        [list(row) for row in rows],
    )


def replace_rows(conn: duckdb.DuckDBPyConnection, image_file: str, rows: list[tuple]) -> None:
    """Replace every stored row for ``image_file`` with ``rows`` in one transaction.

    An empty ``rows`` clears the image, so an object that no longer has faces
    keeps no records from an earlier pass.
    """
    conn.begin()
    try:
        conn.execute("DELETE FROM face_attributes WHERE image_file = ?", [image_file])
        insert_rows(conn, rows)
    except Exception:
        conn.rollback()
        raise
    conn.commit()


def mark_object_analyzed(
    conn: duckdb.DuckDBPyConnection,
    image_file: str,
    size_bytes: int,
    face_count: int,
) -> None:
    """Record that an object has been analyzed (including zero-face objects)."""
    conn.execute(
        """
        INSERT INTO analyzed_objects (image_file, size_bytes, face_count)
        VALUES (?, ?, ?)
        ON CONFLICT (image_file) DO UPDATE SET
            size_bytes = EXCLUDED.size_bytes,
            face_count = EXCLUDED.face_count,
            analyzed_at = now()
        """,
        [image_file, size_bytes, face_count],
    )


def get_analyzed_image_files(conn: duckdb.DuckDBPyConnection, prefix: str | None = None) -> set[str]:
    """Return image files already analyzed, optionally under a URI prefix."""
    query = "SELECT image_file FROM analyzed_objects"
    params: list = []
    if prefix:
        query += " WHERE starts_with(image_file, ?)"
        params.append(prefix)
    rows = conn.execute(query, params).fetchall()
    return {row[0] for row in rows}


def get_analyzed_keys(conn: duckdb.DuckDBPyConnection, bucket_name: str, scheme: str = "s3") -> set[str]:
    """Return the object keys of ``bucket_name`` that are already analyzed."""
    prefix = f"{scheme}://{bucket_name}/"
    return {image_file[len(prefix):] for image_file in get_analyzed_image_files(conn, prefix=prefix)}


def list_rows(
    conn: duckdb.DuckDBPyConnection,
    image_file: str | None = None,
    face_id: str | None = None,
    property_name: str | None = None,
) -> list[tuple]:
    """List output rows in insertion order, with optional filters."""
    query = "SELECT image_file, face_id, property, value, confidence FROM face_attributes WHERE 1=1"
    params: list = []
    if image_file is not None:
        query += " AND image_file = ?"
        params.append(image_file)
    if face_id is not None:
        query += " AND face_id = ?"
        params.append(face_id)
    if property_name is not None:
        query += " AND property = ?"
        params.append(property_name)
    query += " ORDER BY seq"
    return conn.execute(query, params).fetchall()


def get_stats(conn: duckdb.DuckDBPyConnection) -> tuple[int, int, int]:
    """Return (analyzed objects, detected faces, attribute rows)."""
    objects, faces = conn.execute(
        "SELECT COUNT(*), COALESCE(SUM(face_count), 0) FROM analyzed_objects"
    ).fetchone()
    rows = conn.execute("SELECT COUNT(*) FROM face_attributes").fetchone()[0]
    return objects, faces, rows


def export_rows_csv(conn: duckdb.DuckDBPyConnection, path: Path | str) -> int:
    """Write all rows to a CSV file with the output field names as header."""
    columns = ", ".join(
        f"{column} AS {field}"
        for column, field in zip(
            ("image_file", "face_id", "property", "value", "confidence"), OUTPUT_FIELDS, strict=True
        )
    )
    target = str(path).replace("'", "''")
    conn.execute(
        f"COPY (SELECT {columns} FROM face_attributes ORDER BY seq) TO '{target}' (HEADER, DELIMITER ',')"
    )
    return conn.execute("SELECT COUNT(*) FROM face_attributes").fetchone()[0]


class DuckDBSink:
    """Pipeline sink writing rows to the face_attributes table.

    Each write replaces the rows previously stored for the same image, so
    re-analyzing a bucket does not duplicate records and objects that lost
    their faces are cleared.
    """

    fields: tuple[str, ...] = OUTPUT_FIELDS

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self.conn = conn

    def write(self, image_file: str, rows: list[tuple]) -> None:
        replace_rows(self.conn, image_file, rows)
