from file_worker.config.settings import Settings
from file_worker.database.connection import ConnectionProvider
from file_worker.database.repositories.file_repository import FileRepository
from file_worker.database.repositories.job_repository import JobRepository
from file_worker.database.schema import create_schema
from file_worker.logging.logger import Log
from file_worker.processor.processor import build_processor
from file_worker.queue.job_queue import JobQueue
from file_worker.queue.models import RetryPolicy
from file_worker.service.dispatcher import Dispatcher
from file_worker.service.reconciliation import OrphanSweeper
from file_worker.worker.job_runner import JobRunner
from file_worker.worker.pool import WorkerPool
from file_worker.worker.status import StatusReconciler


def build_retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.max_job_attempts,
        backoff_base_ms=settings.retry_backoff_base_ms,
    )


def build_queue(settings: Settings, queue_provider: ConnectionProvider) -> JobQueue:
    return JobQueue(
        queue_provider,
        build_retry_policy(settings),
        stall_timeout_seconds=settings.stall_timeout_seconds,
    )


def build_dispatcher(
    settings: Settings,
    records: ConnectionProvider,
    queue_provider: ConnectionProvider,
) -> Dispatcher:
    """Dispatcher for the upload path to call after the bytes are stored."""
    return Dispatcher(
        FileRepository(records),
        JobRepository(records),
        build_queue(settings, queue_provider),
        build_retry_policy(settings),
    )


def build_worker_pool(
    settings: Settings,
    records: ConnectionProvider,
    queue_provider: ConnectionProvider,
) -> WorkerPool:
    file_repo = FileRepository(records)
    job_repo = JobRepository(records)
    queue = build_queue(settings, queue_provider)
    reconciler = StatusReconciler(file_repo, job_repo)
    job_runner = JobRunner(build_processor(settings), reconciler, queue)
    sweeper = OrphanSweeper(file_repo, queue, grace_seconds=settings.orphan_grace_seconds)
    return WorkerPool(queue, job_runner, reconciler, settings, sweeper=sweeper)


def main() -> None:
    """Entry point: open pools -> build dependencies -> start worker pool."""
    settings = Settings()
    Log.configure(settings.log_level)

    records = ConnectionProvider(
        settings.records_conninfo(),
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )
    queue_provider = ConnectionProvider(
        settings.queue_conninfo(),
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )
    with records, queue_provider:
        if settings.auto_create_schema:
            with records.connection() as conn:
                create_schema(conn, records=True, queue=False)
            with queue_provider.connection() as conn:
                create_schema(conn, records=False, queue=True)
        build_worker_pool(settings, records, queue_provider).run()


if __name__ == "__main__":
    main()
