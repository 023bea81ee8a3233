from dataclasses import dataclass

from file_worker.database.models import FileStatus
from file_worker.database.repositories.file_repository import FileRepository
from file_worker.database.repositories.job_repository import JobRepository
from file_worker.logging.logger import Log
from file_worker.queue.exceptions import EnqueueError
from file_worker.queue.job_queue import JobQueue
from file_worker.queue.models import FileProcessingTask, RetryPolicy


@dataclass(frozen=True)
class SubmitResult:
    id: int
    status: FileStatus

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "status": self.status.value}


class Dispatcher:
    """Creates the File/Job pair for an upload and enqueues its processing task."""

    def __init__(
        self,
        file_repo: FileRepository,
        job_repo: JobRepository,
        queue: JobQueue,
        retry_policy: RetryPolicy,
    ) -> None:
        self._file_repo = file_repo
        self._job_repo = job_repo
        self._queue = queue
        self._retry_policy = retry_policy

    def submit(
        self,
        original_filename: str,
        storage_handle: str,
        owner_id: int,
        title: str | None = None,
        description: str | None = None,
    ) -> SubmitResult:
        """Register an already-stored upload and schedule it; does not wait for processing.

        Raises:
            EnqueueError: if the task cannot be queued. The File/Job rows are
                kept in uploaded/queued state for the orphan sweep to pick up.
        """
        file = self._file_repo.insert(
            user_id=owner_id,
            original_filename=original_filename,
            storage_path=storage_handle,
            title=title,
            description=description,
        )
        job = self._job_repo.insert(file.id)

        task = FileProcessingTask(
            file_id=file.id,
            file_path=storage_handle,
            original_name=original_filename,
        )
        try:
            task_id = self._queue.enqueue(task, self._retry_policy)
        except EnqueueError as exc:
            Log.error(f"File {file.id} stored but not queued (job {job.id}): {exc}")
            raise

        Log.info(f"File {file.id} uploaded by user {owner_id}, queued as task {task_id}")
        return SubmitResult(id=file.id, status=file.status)
