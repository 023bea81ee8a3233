from dataclasses import dataclass
from enum import Enum

from file_worker.database.models import JobStatus
from file_worker.database.repositories.file_repository import FileRepository
from file_worker.database.repositories.job_repository import JobRepository
from file_worker.logging.logger import Log


class BeginOutcome(Enum):
    STARTED = "started"
    ALREADY_COMPLETED = "already_completed"
    SUPERSEDED = "superseded"
    MISSING = "missing"


@dataclass(frozen=True)
class BeginResult:
    outcome: BeginOutcome
    job_id: int | None = None


class StatusReconciler:
    """Keeps File.status and Job.status moving together.

    Ordered-write protocol:
      begin:   Job -> processing, then File -> processing
      succeed: File -> processed (+ metadata), then Job -> completed
      fail:    File -> failed, then Job -> failed (+ error)

    Between the two writes of a finalize step the File may already be
    terminal while the Job is still processing, never the other way round,
    so a reader that sees Job=completed always finds the metadata.

    Every write carries the delivery's attempt number. A write from an
    attempt older than the one recorded on the row is dropped, and the
    second write of a pair is skipped when the first one was dropped.
    """

    def __init__(self, file_repo: FileRepository, job_repo: JobRepository) -> None:
        self._file_repo = file_repo
        self._job_repo = job_repo

    def begin(self, file_id: int, attempt: int) -> BeginResult:
        job = self._job_repo.find_latest_for_file(file_id)
        if job is None:
            return BeginResult(BeginOutcome.MISSING)
        if job.status == JobStatus.COMPLETED:
            return BeginResult(BeginOutcome.ALREADY_COMPLETED, job.id)
        if not self._job_repo.mark_processing(job.id, attempt):
            return BeginResult(BeginOutcome.SUPERSEDED, job.id)
        if not self._file_repo.mark_processing(file_id, attempt):
            return BeginResult(BeginOutcome.SUPERSEDED, job.id)
        return BeginResult(BeginOutcome.STARTED, job.id)

    def succeed(self, file_id: int, job_id: int, attempt: int, extracted_data: str) -> bool:
        if not self._file_repo.mark_processed(file_id, attempt, extracted_data):
            Log.warning(f"File {file_id}: success of attempt {attempt} superseded")
            return False
        if not self._job_repo.mark_completed(job_id, attempt):
            Log.warning(f"Job {job_id}: completion of attempt {attempt} superseded")
            return False
        return True

    def fail(self, file_id: int, attempt: int, error: str, job_id: int | None = None) -> bool:
        if job_id is None:
            job = self._job_repo.find_latest_for_file(file_id)
            if job is None:
                Log.warning(f"File {file_id}: no job to record failure on")
                return False
            if job.status == JobStatus.COMPLETED:
                Log.warning(f"Job {job.id} already completed, failure not recorded")
                return False
            job_id = job.id
        if not self._file_repo.mark_failed(file_id, attempt):
            Log.warning(f"File {file_id}: failure of attempt {attempt} superseded")
            return False
        if not self._job_repo.mark_failed(job_id, attempt, error):
            Log.warning(f"Job {job_id}: failure of attempt {attempt} superseded")
            return False
        return True

    def abandon(self, file_id: int, attempt: int, error: str) -> bool:
        """Record a terminal failure for an attempt whose worker never reported back."""
        return self.fail(file_id, attempt, error)
