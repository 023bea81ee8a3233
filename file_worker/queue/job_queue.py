from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from file_worker.database.connection import ConnectionProvider
from file_worker.logging.logger import Log
from file_worker.queue.exceptions import EnqueueError, UnknownTaskKindError
from file_worker.queue.models import (
    Delivery,
    NackResult,
    RetryPolicy,
    StalledTask,
    TaskMessage,
    decode_task,
)

STALLED_ERROR = "stalled: no ack within liveness window"


class JobQueue:
    """Durable at-least-once task queue on the task_queue table.

    A row is delivered to one consumer at a time: claiming takes a row lock
    with SKIP LOCKED and flips the row to 'active'. The row's `attempts`
    column counts deliveries; it is owned by the queue, not the application.
    """

    def __init__(
        self,
        provider: ConnectionProvider,
        retry_policy: RetryPolicy,
        stall_timeout_seconds: int,
    ) -> None:
        self._provider = provider
        self._retry_policy = retry_policy
        self._stall_timeout_seconds = stall_timeout_seconds

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def enqueue(self, task: TaskMessage, retry_policy: RetryPolicy | None = None) -> int:
        """Append a task and return its queue id.

        Raises:
            EnqueueError: if the row cannot be written, including when the
                file already has a task of this kind.
        """
        task_id = self._insert(task, retry_policy, skip_existing=False)
        if task_id is None:
            raise EnqueueError(f"Failed to enqueue {task.kind} task: no id returned")
        return task_id

    def enqueue_if_absent(
        self, task: TaskMessage, retry_policy: RetryPolicy | None = None
    ) -> int | None:
        """Append a task unless one of the same kind exists for its file.

        Returns the new queue id, or None when a row was already there. The
        check and the insert are one statement against a unique index, so
        concurrent callers cannot both insert.
        """
        return self._insert(task, retry_policy, skip_existing=True)

    def _insert(
        self, task: TaskMessage, retry_policy: RetryPolicy | None, skip_existing: bool
    ) -> int | None:
        policy = retry_policy or self._retry_policy
        conflict = "ON CONFLICT (kind, (payload->>'fileId')) DO NOTHING" if skip_existing else ""
        try:
            with self._provider.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        INSERT INTO task_queue (kind, payload, max_attempts, backoff_base_ms)
                        VALUES (%s, %s, %s, %s)
                        {conflict}
                        RETURNING id
                        """,
                        (
                            task.kind,
                            Jsonb(task.to_payload()),
                            policy.max_attempts,
                            policy.backoff_base_ms,
                        ),
                    )
                    row = cur.fetchone()
                conn.commit()
        except psycopg.Error as exc:
            raise EnqueueError(f"Failed to enqueue {task.kind} task: {exc}") from exc
        return int(row[0]) if row is not None else None

    def dequeue(self) -> Delivery | None:
        """Claim the oldest task that is due, or return None if there is none."""
        with self._provider.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, kind, payload, attempts, max_attempts, backoff_base_ms
                    FROM task_queue
                    WHERE status = 'pending'
                      AND available_at <= NOW()
                    ORDER BY available_at, id
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                    """
                )
                row = cur.fetchone()

            if row is None:
                conn.commit()
                return None

            conn.execute(
                """
                UPDATE task_queue
                SET status = 'active', attempts = attempts + 1,
                    locked_at = NOW(), updated_at = NOW()
                WHERE id = %s
                """,
                (row["id"],),
            )
            conn.commit()

        attempt = row["attempts"] + 1
        try:
            task = decode_task(row["kind"], row["payload"])
        except (UnknownTaskKindError, KeyError, TypeError, ValueError) as exc:
            Log.error(f"Task {row['id']} cannot be decoded, dropping it: {exc}")
            self._bury(row["id"], str(exc))
            return None

        return Delivery(
            task_id=row["id"],
            task=task,
            attempt=attempt,
            max_attempts=row["max_attempts"],
            backoff_base_ms=row["backoff_base_ms"],
        )

    def ack(self, delivery: Delivery) -> bool:
        """Mark a delivery as done. Returns False if it was already reclaimed."""
        with self._provider.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE task_queue
                    SET status = 'completed', locked_at = NULL, updated_at = NOW()
                    WHERE id = %s AND attempts = %s AND status = 'active'
                    """,
                    (delivery.task_id, delivery.attempt),
                )
                applied = cur.rowcount > 0
            conn.commit()
        if not applied:
            Log.warning(
                f"Ack for task {delivery.task_id} attempt {delivery.attempt} ignored: "
                "delivery no longer active"
            )
        return applied

    def nack(self, delivery: Delivery, error: str) -> NackResult:
        """Report a failed attempt; schedule a retry or fail the task for good."""
        policy = delivery.retry_policy
        will_retry = policy.allows_retry(delivery.attempt)
        delay_ms = policy.delay_ms(delivery.attempt) if will_retry else 0
        with self._provider.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE task_queue
                    SET status = %s,
                        available_at = NOW() + make_interval(secs => %s),
                        locked_at = NULL, last_error = %s, updated_at = NOW()
                    WHERE id = %s AND attempts = %s AND status = 'active'
                    """,
                    (
                        "pending" if will_retry else "failed",
                        delay_ms / 1000.0,
                        error,
                        delivery.task_id,
                        delivery.attempt,
                    ),
                )
                applied = cur.rowcount > 0
            conn.commit()
        if not applied:
            Log.warning(
                f"Nack for task {delivery.task_id} attempt {delivery.attempt} ignored: "
                "delivery no longer active"
            )
            return NackResult(will_retry=False, applied=False)
        return NackResult(will_retry=will_retry, delay_ms=delay_ms)

    def reclaim_stalled(self) -> list[StalledTask]:
        """Return deliveries idle past the liveness window to the queue.

        The stalled delivery keeps its attempt, so a stall consumes one retry;
        a stall on the last attempt fails the task.
        """
        with self._provider.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    UPDATE task_queue
                    SET status = CASE WHEN attempts < max_attempts THEN 'pending' ELSE 'failed' END,
                        available_at = CASE
                            WHEN attempts < max_attempts
                            THEN NOW() + make_interval(
                                secs => backoff_base_ms * power(2, attempts - 1) / 1000.0
                            )
                            ELSE available_at
                        END,
                        locked_at = NULL, last_error = %s, updated_at = NOW()
                    WHERE id IN (
                        SELECT id FROM task_queue
                        WHERE status = 'active'
                          AND locked_at < NOW() - make_interval(secs => %s)
                        FOR UPDATE SKIP LOCKED
                    )
                    RETURNING id, kind, payload, attempts, status
                    """,
                    (STALLED_ERROR, self._stall_timeout_seconds),
                )
                rows = cur.fetchall()
            conn.commit()

        return [
            StalledTask(
                task_id=row["id"],
                kind=row["kind"],
                payload=row["payload"],
                attempt=row["attempts"],
                will_retry=row["status"] == "pending",
            )
            for row in rows
        ]

    def _bury(self, task_id: int, error: str) -> None:
        with self._provider.connection() as conn:
            conn.execute(
                """
                UPDATE task_queue
                SET status = 'failed', locked_at = NULL, last_error = %s, updated_at = NOW()
                WHERE id = %s
                """,
                (error, task_id),
            )
            conn.commit()


def payload_file_id(payload: dict[str, Any]) -> int | None:
    """File id referenced by a raw task payload, if any."""
    value = payload.get("fileId")
    return int(value) if value is not None else None
