from dataclasses import dataclass
from typing import Any, ClassVar

from file_worker.queue.exceptions import UnknownTaskKindError


@dataclass(frozen=True)
class FileProcessingTask:
    """Inputs a worker needs to process one uploaded file."""

    kind: ClassVar[str] = "file_processing"

    file_id: int
    file_path: str
    original_name: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "fileId": self.file_id,
            "filePath": self.file_path,
            "originalName": self.original_name,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "FileProcessingTask":
        return cls(
            file_id=int(payload["fileId"]),
            file_path=str(payload["filePath"]),
            original_name=str(payload["originalName"]),
        )


# New task variants join this union and TASK_TYPES.
TaskMessage = FileProcessingTask

TASK_TYPES: dict[str, type[TaskMessage]] = {
    FileProcessingTask.kind: FileProcessingTask,
}


def decode_task(kind: str, payload: dict[str, Any]) -> TaskMessage:
    """Rebuild a task message from its queue row.

    Raises:
        UnknownTaskKindError: if no task type is registered for `kind`.
    """
    task_cls = TASK_TYPES.get(kind)
    if task_cls is None:
        raise UnknownTaskKindError(
            f"Unknown task kind '{kind}'. Choose from: {list(TASK_TYPES)}"
        )
    return task_cls.from_payload(payload)


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt limit and exponential backoff applied by the queue."""

    max_attempts: int = 3
    backoff_base_ms: int = 2000

    def delay_ms(self, attempt: int) -> int:
        """Delay before the delivery that follows failed attempt `attempt` (1-based)."""
        return self.backoff_base_ms * 2 ** (attempt - 1)

    def allows_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts


@dataclass(frozen=True)
class Delivery:
    """One delivery of a queued task to a worker."""

    task_id: int
    task: TaskMessage
    attempt: int
    max_attempts: int
    backoff_base_ms: int

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.max_attempts, backoff_base_ms=self.backoff_base_ms)

    @property
    def is_last_attempt(self) -> bool:
        return not self.retry_policy.allows_retry(self.attempt)


@dataclass(frozen=True)
class NackResult:
    """Outcome of a nack. `applied` is False when the delivery was already reclaimed."""

    will_retry: bool
    delay_ms: int = 0
    applied: bool = True


@dataclass(frozen=True)
class StalledTask:
    """A delivery whose consumer stopped responding, as found by the queue."""

    task_id: int
    kind: str
    payload: dict[str, Any]
    attempt: int
    will_retry: bool
