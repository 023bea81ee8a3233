from typing import Any

from psycopg.rows import dict_row

from file_worker.database.connection import ConnectionProvider
from file_worker.database.models import JobRecord, JobStatus, JobType

_COLUMNS = """
    id, file_id, job_type, status, error_message, attempt,
    started_at, completed_at, created_at, updated_at
"""


def _to_record(row: dict[str, Any]) -> JobRecord:
    return JobRecord(
        id=row["id"],
        file_id=row["file_id"],
        job_type=JobType(row["job_type"]),
        status=JobStatus(row["status"]),
        error_message=row["error_message"],
        attempt=row["attempt"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class JobRepository:
    """Database operations for the jobs table."""

    def __init__(self, provider: ConnectionProvider) -> None:
        self._provider = provider

    def insert(self, file_id: int) -> JobRecord:
        """Insert a queued file-processing job for a file."""
        with self._provider.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO jobs (file_id, job_type, status)
                    VALUES (%s, %s, 'queued')
                    RETURNING {_COLUMNS}
                    """,
                    (file_id, JobType.FILE_PROCESSING.value),
                )
                row = cur.fetchone()
            conn.commit()

        if row is None:
            raise RuntimeError("INSERT INTO jobs returned no row")
        return _to_record(row)

    def find_latest_for_file(self, file_id: int) -> JobRecord | None:
        """Return the newest job for a file, or None."""
        with self._provider.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM jobs
                    WHERE file_id = %s
                    ORDER BY id DESC
                    LIMIT 1
                    """,
                    (file_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return _to_record(row)

    def find_by_file_ids(self, file_ids: list[int]) -> dict[int, list[JobRecord]]:
        """Group the jobs of several files by file id, oldest job first."""
        if not file_ids:
            return {}
        with self._provider.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM jobs
                    WHERE file_id = ANY(%s)
                    ORDER BY id
                    """,
                    (file_ids,),
                )
                rows = cur.fetchall()

        grouped: dict[int, list[JobRecord]] = {file_id: [] for file_id in file_ids}
        for row in rows:
            grouped[row["file_id"]].append(_to_record(row))
        return grouped

    def mark_processing(self, job_id: int, attempt: int) -> bool:
        """Start an attempt: keep the first started_at, clear the previous outcome."""
        return self._update(
            """
            UPDATE jobs
            SET status = 'processing',
                started_at = COALESCE(started_at, NOW()),
                completed_at = NULL, error_message = NULL,
                attempt = %s, updated_at = NOW()
            WHERE id = %s AND attempt <= %s AND status <> 'completed'
            """,
            (attempt, job_id, attempt),
        )

    def mark_completed(self, job_id: int, attempt: int) -> bool:
        """Mark a job as completed."""
        return self._update(
            """
            UPDATE jobs
            SET status = 'completed',
                completed_at = COALESCE(completed_at, NOW()),
                error_message = NULL, attempt = %s, updated_at = NOW()
            WHERE id = %s AND attempt <= %s
            """,
            (attempt, job_id, attempt),
        )

    def mark_failed(self, job_id: int, attempt: int, error: str) -> bool:
        """Mark a job as failed with the error of this attempt."""
        return self._update(
            """
            UPDATE jobs
            SET status = 'failed', error_message = %s,
                completed_at = COALESCE(completed_at, NOW()),
                attempt = %s, updated_at = NOW()
            WHERE id = %s AND attempt <= %s AND status <> 'completed'
            """,
            (error, attempt, job_id, attempt),
        )

    def _update(self, sql: str, params: tuple[Any, ...]) -> bool:
        with self._provider.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                applied = cur.rowcount > 0
            conn.commit()
        return applied
