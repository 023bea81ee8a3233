from file_worker.database.repositories.file_repository import FileRepository
from file_worker.logging.logger import Log
from file_worker.queue.exceptions import EnqueueError
from file_worker.queue.job_queue import JobQueue
from file_worker.queue.models import FileProcessingTask


class OrphanSweeper:
    """Re-enqueues uploads whose task never reached the queue.

    A file is an orphan when it is still 'uploaded', its job is still
    'queued', it is older than the grace period, and the queue holds no row
    for it. The queue enforces the last condition, so sweepers running in
    several processes never enqueue the same file twice.
    """

    def __init__(
        self,
        file_repo: FileRepository,
        queue: JobQueue,
        grace_seconds: int,
        batch_size: int = 100,
    ) -> None:
        self._file_repo = file_repo
        self._queue = queue
        self._grace_seconds = grace_seconds
        self._batch_size = batch_size

    def sweep(self) -> list[int]:
        """Return the ids of files that were re-enqueued."""
        requeued: list[int] = []
        candidates = self._file_repo.find_orphan_candidates(
            self._grace_seconds, limit=self._batch_size
        )
        for file in candidates:
            task = FileProcessingTask(
                file_id=file.id,
                file_path=file.storage_path,
                original_name=file.original_filename,
            )
            try:
                task_id = self._queue.enqueue_if_absent(task)
            except EnqueueError as exc:
                Log.warning(f"Orphan sweep could not requeue file {file.id}: {exc}")
                continue
            if task_id is None:
                continue
            requeued.append(file.id)

        if requeued:
            Log.info(f"Orphan sweep requeued {len(requeued)} files: {requeued}")
        return requeued
