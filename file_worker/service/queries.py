import math

from file_worker.database.models import FilePage, FileRecord
from file_worker.database.repositories.file_repository import FileRepository
from file_worker.database.repositories.job_repository import JobRepository
from file_worker.service.exceptions import AccessDeniedError, FileRecordNotFoundError


class FileQueryService:
    """Read-only views of files and their jobs for the reporting surface."""

    def __init__(self, file_repo: FileRepository, job_repo: JobRepository) -> None:
        self._file_repo = file_repo
        self._job_repo = job_repo

    def get_file(self, file_id: int, requesting_owner_id: int) -> FileRecord:
        """Return a file with its jobs.

        Raises:
            FileRecordNotFoundError: if the file does not exist.
            AccessDeniedError: if the file belongs to another user.
        """
        file = self._file_repo.find_by_id(file_id)
        if file is None:
            raise FileRecordNotFoundError(f"File {file_id} not found")
        if file.user_id != requesting_owner_id:
            raise AccessDeniedError("You can only access your own files")
        file.jobs = self._job_repo.find_by_file_ids([file.id]).get(file.id, [])
        return file

    def list_files(self, owner_id: int, page: int = 1, page_size: int = 10) -> FilePage:
        """List a user's files, newest upload first."""
        if page < 1:
            raise ValueError("page must be at least 1")
        if page_size < 1:
            raise ValueError("page_size must be at least 1")

        items, total = self._file_repo.list_by_owner(
            owner_id, limit=page_size, offset=(page - 1) * page_size
        )
        jobs_by_file = self._job_repo.find_by_file_ids([item.id for item in items])
        for item in items:
            item.jobs = jobs_by_file.get(item.id, [])

        return FilePage(
            items=items,
            total=total,
            page=page,
            total_pages=math.ceil(total / page_size),
        )
