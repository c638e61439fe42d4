"""DuckDB schema definition and migration."""

import duckdb


def ensure_schema(conn: duckdb.DuckDBPyConnection) -> None:
    """Create tables and indexes if they do not exist."""
    # face_attributes: one row per flat record, in pipeline emission order
    conn.execute("CREATE SEQUENCE IF NOT EXISTS face_attributes_seq START 1")
    conn.execute("""
        CREATE TABLE IF NOT EXISTS face_attributes (
            seq         BIGINT PRIMARY KEY DEFAULT nextval('face_attributes_seq'),
            image_file  VARCHAR NOT NULL,
            face_id     VARCHAR NOT NULL,
            property    VARCHAR NOT NULL,
            value       VARCHAR,
            confidence  DOUBLE,
            created_at  TIMESTAMP DEFAULT current_timestamp
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_face_attributes_image ON face_attributes(image_file)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_face_attributes_face ON face_attributes(face_id)")

    # analyzed_objects tracks which objects have been analyzed,
    # including those with zero faces detected
    conn.execute("""
        CREATE TABLE IF NOT EXISTS analyzed_objects (
            image_file   VARCHAR PRIMARY KEY,
            size_bytes   BIGINT,
            face_count   INTEGER NOT NULL DEFAULT 0,
            analyzed_at  TIMESTAMP DEFAULT current_timestamp
        )
    """)

    _migrate(conn)


def _migrate(conn: duckdb.DuckDBPyConnection) -> None:
    """Add columns that may not exist in older schemas."""
    migrations: list[str] = []
    for sql in migrations:
        conn.execute(sql)
