from dataclasses import replace
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from file_worker.database.models import (
    FileRecord,
    FileStatus,
    JobRecord,
    JobStatus,
)
from file_worker.queue.exceptions import EnqueueError
from file_worker.queue.models import (
    Delivery,
    NackResult,
    RetryPolicy,
    StalledTask,
    TaskMessage,
)


@pytest.fixture()
def mock_db() -> tuple[MagicMock, MagicMock, MagicMock]:
    """Wire up a mock provider -> connection -> cursor and return all three."""
    mock_cursor = MagicMock()
    mock_conn = MagicMock()
    mock_conn.cursor.return_value.__enter__.return_value = mock_cursor
    mock_conn.cursor.return_value.__exit__.return_value = False
    provider = MagicMock()
    provider.connection.return_value.__enter__.return_value = mock_conn
    provider.connection.return_value.__exit__.return_value = False
    return provider, mock_conn, mock_cursor


class FakeFileRepository:
    """In-memory stand-in for FileRepository with the same attempt guards."""

    def __init__(self) -> None:
        self.rows: dict[int, FileRecord] = {}
        self._next_id = 1
        self._epoch = datetime(2024, 1, 1, tzinfo=UTC)

    def insert(self, user_id, original_filename, storage_path, title=None, description=None):
        file_id = self._next_id
        self._next_id += 1
        stamp = self._epoch + timedelta(seconds=file_id)
        self.rows[file_id] = FileRecord(
            id=file_id,
            user_id=user_id,
            original_filename=original_filename,
            storage_path=storage_path,
            status=FileStatus.UPLOADED,
            title=title,
            description=description,
            uploaded_at=stamp,
            created_at=stamp,
            updated_at=stamp,
        )
        return replace(self.rows[file_id])

    def find_by_id(self, file_id):
        row = self.rows.get(file_id)
        return replace(row, jobs=[]) if row is not None else None

    def list_by_owner(self, user_id, limit, offset):
        owned = [row for row in self.rows.values() if row.user_id == user_id]
        owned.sort(key=lambda row: (row.uploaded_at, row.id), reverse=True)
        return [replace(row, jobs=[]) for row in owned[offset : offset + limit]], len(owned)

    def mark_processing(self, file_id, attempt):
        return self._set(file_id, attempt, FileStatus.PROCESSING, None)

    def mark_processed(self, file_id, attempt, extracted_data):
        return self._set(file_id, attempt, FileStatus.PROCESSED, extracted_data)

    def mark_failed(self, file_id, attempt):
        return self._set(file_id, attempt, FileStatus.FAILED, None)

    def _set(self, file_id, attempt, status, extracted_data):
        row = self.rows.get(file_id)
        if row is None or row.processing_attempt > attempt:
            return False
        row.status = status
        row.extracted_data = extracted_data
        row.processing_attempt = attempt
        return True


class FakeJobRepository:
    """In-memory stand-in for JobRepository with the same attempt guards."""

    def __init__(self) -> None:
        self.rows: dict[int, JobRecord] = {}
        self._next_id = 1
        self.completed_at_writes: list[tuple[int, int, datetime]] = []

    def insert(self, file_id):
        job_id = self._next_id
        self._next_id += 1
        self.rows[job_id] = JobRecord(id=job_id, file_id=file_id, status=JobStatus.QUEUED)
        return replace(self.rows[job_id])

    def find_latest_for_file(self, file_id):
        jobs = [row for row in self.rows.values() if row.file_id == file_id]
        return replace(max(jobs, key=lambda row: row.id)) if jobs else None

    def find_by_file_ids(self, file_ids):
        grouped = {file_id: [] for file_id in file_ids}
        for row in sorted(self.rows.values(), key=lambda row: row.id):
            if row.file_id in grouped:
                grouped[row.file_id].append(replace(row))
        return grouped

    def mark_processing(self, job_id, attempt):
        row = self.rows.get(job_id)
        if row is None or row.attempt > attempt or row.status == JobStatus.COMPLETED:
            return False
        row.status = JobStatus.PROCESSING
        row.started_at = row.started_at or datetime.now(UTC)
        row.completed_at = None
        row.error_message = None
        row.attempt = attempt
        return True

    def mark_completed(self, job_id, attempt):
        row = self.rows.get(job_id)
        if row is None or row.attempt > attempt:
            return False
        row.status = JobStatus.COMPLETED
        row.completed_at = row.completed_at or self._stamp(job_id, attempt)
        row.error_message = None
        row.attempt = attempt
        return True

    def mark_failed(self, job_id, attempt, error):
        row = self.rows.get(job_id)
        if row is None or row.attempt > attempt or row.status == JobStatus.COMPLETED:
            return False
        row.status = JobStatus.FAILED
        row.error_message = error
        row.completed_at = row.completed_at or self._stamp(job_id, attempt)
        row.attempt = attempt
        return True

    def _stamp(self, job_id, attempt):
        stamp = datetime.now(UTC)
        self.completed_at_writes.append((job_id, attempt, stamp))
        return stamp


class FakeQueue:
    """In-memory queue with a manual clock, following JobQueue's contract."""

    def __init__(self, retry_policy: RetryPolicy | None = None, stall_timeout_seconds: float = 300) -> None:
        self.retry_policy = retry_policy or RetryPolicy()
        self.stall_timeout_seconds = stall_timeout_seconds
        self.now = 0.0
        self.rows: dict[int, dict] = {}
        self.deliveries: list[tuple[int, int, float]] = []
        self.failures: list[tuple[int, int, float]] = []
        self.fail_enqueue = False
        self._next_id = 1

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def enqueue(self, task: TaskMessage, retry_policy: RetryPolicy | None = None) -> int:
        if self.fail_enqueue:
            raise EnqueueError("queue unavailable")
        policy = retry_policy or self.retry_policy
        task_id = self._next_id
        self._next_id += 1
        self.rows[task_id] = {
            "task": task,
            "status": "pending",
            "attempts": 0,
            "max_attempts": policy.max_attempts,
            "backoff_base_ms": policy.backoff_base_ms,
            "available_at": self.now,
            "locked_at": None,
        }
        return task_id

    def dequeue(self) -> Delivery | None:
        due = [
            (row["available_at"], task_id)
            for task_id, row in self.rows.items()
            if row["status"] == "pending" and row["available_at"] <= self.now
        ]
        if not due:
            return None
        _, task_id = min(due)
        row = self.rows[task_id]
        row["status"] = "active"
        row["attempts"] += 1
        row["locked_at"] = self.now
        self.deliveries.append((task_id, row["attempts"], self.now))
        return Delivery(
            task_id=task_id,
            task=row["task"],
            attempt=row["attempts"],
            max_attempts=row["max_attempts"],
            backoff_base_ms=row["backoff_base_ms"],
        )

    def ack(self, delivery: Delivery) -> bool:
        row = self.rows[delivery.task_id]
        if row["status"] != "active" or row["attempts"] != delivery.attempt:
            return False
        row["status"] = "completed"
        return True

    def nack(self, delivery: Delivery, error: str) -> NackResult:
        row = self.rows[delivery.task_id]
        if row["status"] != "active" or row["attempts"] != delivery.attempt:
            return NackResult(will_retry=False, applied=False)
        policy = delivery.retry_policy
        will_retry = policy.allows_retry(delivery.attempt)
        delay_ms = policy.delay_ms(delivery.attempt) if will_retry else 0
        row["status"] = "pending" if will_retry else "failed"
        row["available_at"] = self.now + delay_ms / 1000.0
        row["locked_at"] = None
        self.failures.append((delivery.task_id, delivery.attempt, self.now))
        return NackResult(will_retry=will_retry, delay_ms=delay_ms)

    def reclaim_stalled(self) -> list[StalledTask]:
        stalled = []
        for task_id, row in self.rows.items():
            if row["status"] != "active" or self.now - row["locked_at"] <= self.stall_timeout_seconds:
                continue
            policy = RetryPolicy(row["max_attempts"], row["backoff_base_ms"])
            will_retry = policy.allows_retry(row["attempts"])
            row["status"] = "pending" if will_retry else "failed"
            if will_retry:
                row["available_at"] = self.now + policy.delay_ms(row["attempts"]) / 1000.0
            row["locked_at"] = None
            stalled.append(
                StalledTask(
                    task_id=task_id,
                    kind=row["task"].kind,
                    payload=row["task"].to_payload(),
                    attempt=row["attempts"],
                    will_retry=will_retry,
                )
            )
        return stalled

    def enqueue_if_absent(self, task: TaskMessage, retry_policy: RetryPolicy | None = None) -> int | None:
        if any(
            row["task"].kind == task.kind and row["task"].file_id == task.file_id
            for row in self.rows.values()
        ):
            return None
        return self.enqueue(task, retry_policy)


@pytest.fixture()
def file_repo() -> FakeFileRepository:
    return FakeFileRepository()


@pytest.fixture()
def job_repo() -> FakeJobRepository:
    return FakeJobRepository()


@pytest.fixture()
def fake_queue() -> FakeQueue:
    return FakeQueue()
