from typing import Any

from psycopg.rows import dict_row

from file_worker.database.connection import ConnectionProvider
from file_worker.database.models import FileRecord, FileStatus

_COLUMNS = """
    id, user_id, original_filename, storage_path, title, description,
    status, extracted_data, processing_attempt, uploaded_at, created_at,
    updated_at
"""


def _to_record(row: dict[str, Any]) -> FileRecord:
    return FileRecord(
        id=row["id"],
        user_id=row["user_id"],
        original_filename=row["original_filename"],
        storage_path=row["storage_path"],
        status=FileStatus(row["status"]),
        title=row["title"],
        description=row["description"],
        extracted_data=row["extracted_data"],
        processing_attempt=row["processing_attempt"],
        uploaded_at=row["uploaded_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class FileRepository:
    """Database operations for the files table.

    Status writes carry the attempt number of the delivery performing them
    and only apply when no later attempt has touched the row.
    """

    def __init__(self, provider: ConnectionProvider) -> None:
        self._provider = provider

    def insert(
        self,
        user_id: int,
        original_filename: str,
        storage_path: str,
        title: str | None = None,
        description: str | None = None,
    ) -> FileRecord:
        """Insert a new file in status 'uploaded'."""
        with self._provider.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO files
                    (user_id, original_filename, storage_path, title, description, status)
                    VALUES (%s, %s, %s, %s, %s, 'uploaded')
                    RETURNING {_COLUMNS}
                    """,
                    (user_id, original_filename, storage_path, title, description),
                )
                row = cur.fetchone()
            conn.commit()

        if row is None:
            raise RuntimeError("INSERT INTO files returned no row")
        return _to_record(row)

    def find_by_id(self, file_id: int) -> FileRecord | None:
        """Find a file by ID, without its jobs."""
        with self._provider.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM files WHERE id = %s",
                    (file_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return _to_record(row)

    def list_by_owner(self, user_id: int, limit: int, offset: int) -> tuple[list[FileRecord], int]:
        """Return one page of a user's files (newest upload first) and the total count."""
        with self._provider.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT COUNT(*) AS total FROM files WHERE user_id = %s",
                    (user_id,),
                )
                count_row = cur.fetchone()
                cur.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM files
                    WHERE user_id = %s
                    ORDER BY uploaded_at DESC, id DESC
                    LIMIT %s OFFSET %s
                    """,
                    (user_id, limit, offset),
                )
                rows = cur.fetchall()

        total = count_row["total"] if count_row is not None else 0
        return [_to_record(row) for row in rows], total

    def mark_processing(self, file_id: int, attempt: int) -> bool:
        """Move the file to 'processing' for this attempt, clearing old metadata."""
        return self._update(
            """
            UPDATE files
            SET status = 'processing', extracted_data = NULL,
                processing_attempt = %s, updated_at = NOW()
            WHERE id = %s AND processing_attempt <= %s
            """,
            (attempt, file_id, attempt),
        )

    def mark_processed(self, file_id: int, attempt: int, extracted_data: str) -> bool:
        """Store the metadata payload and move the file to 'processed'."""
        return self._update(
            """
            UPDATE files
            SET status = 'processed', extracted_data = %s,
                processing_attempt = %s, updated_at = NOW()
            WHERE id = %s AND processing_attempt <= %s
            """,
            (extracted_data, attempt, file_id, attempt),
        )

    def mark_failed(self, file_id: int, attempt: int) -> bool:
        """Move the file to 'failed'. A failed file never carries metadata."""
        return self._update(
            """
            UPDATE files
            SET status = 'failed', extracted_data = NULL,
                processing_attempt = %s, updated_at = NOW()
            WHERE id = %s AND processing_attempt <= %s
            """,
            (attempt, file_id, attempt),
        )

    def find_orphan_candidates(self, older_than_seconds: int, limit: int = 100) -> list[FileRecord]:
        """Files still 'uploaded' whose job is still 'queued' after the grace period."""
        with self._provider.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM files f
                    WHERE f.status = 'uploaded'
                      AND f.created_at < NOW() - make_interval(secs => %s)
                      AND EXISTS (
                          SELECT 1 FROM jobs j
                          WHERE j.file_id = f.id AND j.status = 'queued'
                      )
                    ORDER BY f.id
                    LIMIT %s
                    """,
                    (older_than_seconds, limit),
                )
                rows = cur.fetchall()

        return [_to_record(row) for row in rows]

    def _update(self, sql: str, params: tuple[Any, ...]) -> bool:
        with self._provider.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                applied = cur.rowcount > 0
            conn.commit()
        return applied
