from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "file_worker"
    db_username: str = "file_worker"
    db_password: str = "secret"
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10

    # Queue database; unset fields fall back to the record store's values.
    queue_db_host: str | None = None
    queue_db_port: int | None = None
    queue_db_database: str | None = None
    queue_db_username: str | None = None
    queue_db_password: str | None = None

    max_job_attempts: int = 3
    retry_backoff_base_ms: int = 2000
    job_poll_interval_seconds: int = 5
    worker_concurrency: int = 4
    stall_timeout_seconds: int = 300

    processing_delay_min_seconds: float = 2.0
    processing_delay_max_seconds: float = 5.0

    storage_backend: str = "local"
    upload_root: str | None = None
    digest_chunk_size: int = 65536

    orphan_grace_seconds: int = 60
    orphan_sweep_interval_seconds: int = 60

    auto_create_schema: bool = False

    @model_validator(mode="after")
    def _check_limits(self) -> "Settings":
        if self.max_job_attempts < 1:
            raise ValueError("max_job_attempts must be at least 1")
        if self.retry_backoff_base_ms < 0:
            raise ValueError("retry_backoff_base_ms must not be negative")
        if self.worker_concurrency < 1:
            raise ValueError("worker_concurrency must be at least 1")
        if self.processing_delay_min_seconds > self.processing_delay_max_seconds:
            raise ValueError(
                "processing_delay_min_seconds must not exceed processing_delay_max_seconds"
            )
        if self.stall_timeout_seconds <= self.processing_delay_max_seconds:
            raise ValueError(
                "stall_timeout_seconds must exceed processing_delay_max_seconds"
            )
        return self

    def records_conninfo(self) -> str:
        """libpq connection string for the record store."""
        return (
            f"host={self.db_host} "
            f"port={self.db_port} "
            f"dbname={self.db_database} "
            f"user={self.db_username} "
            f"password={self.db_password}"
        )

    def queue_conninfo(self) -> str:
        """libpq connection string for the job queue."""
        return (
            f"host={self.queue_db_host or self.db_host} "
            f"port={self.queue_db_port or self.db_port} "
            f"dbname={self.queue_db_database or self.db_database} "
            f"user={self.queue_db_username or self.db_username} "
            f"password={self.queue_db_password or self.db_password}"
        )
