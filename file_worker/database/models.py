from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class FileStatus(StrEnum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class JobStatus(StrEnum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(StrEnum):
    FILE_PROCESSING = "file_processing"


@dataclass
class JobRecord:
    """Represents a row from the jobs table."""

    id: int
    file_id: int
    status: JobStatus
    job_type: JobType = JobType.FILE_PROCESSING
    attempt: int = 0
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class FileRecord:
    """Represents a row from the files table, with its jobs when loaded."""

    id: int
    user_id: int
    original_filename: str
    storage_path: str
    status: FileStatus
    title: str | None = None
    description: str | None = None
    extracted_data: str | None = None
    processing_attempt: int = 0
    uploaded_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    jobs: list[JobRecord] = field(default_factory=list)


@dataclass
class FilePage:
    """One page of a user's files."""

    items: list[FileRecord]
    total: int
    page: int
    total_pages: int
