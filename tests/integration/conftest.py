import os
from collections.abc import Callable, Generator
from typing import Any

import psycopg
import pytest

from file_worker.config.settings import Settings
from file_worker.database.connection import ConnectionProvider
from file_worker.database.repositories.file_repository import FileRepository
from file_worker.database.repositories.job_repository import JobRepository
from file_worker.database.schema import create_schema
from file_worker.queue.job_queue import JobQueue
from file_worker.queue.models import RetryPolicy


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "file_worker_test")
    return Settings(
        processing_delay_min_seconds=0.0,
        processing_delay_max_seconds=0.0,
        job_poll_interval_seconds=1,
    )


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_provider(test_settings: Settings) -> Generator[ConnectionProvider, None, None]:
    provider = ConnectionProvider(test_settings.records_conninfo(), min_size=1, max_size=4)
    try:
        provider.open()
        with provider.connection() as conn:
            create_schema(conn)
    except Exception as e:
        provider.close()
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a disposable database"
        )
    try:
        yield provider
    finally:
        provider.close()


@pytest.fixture
def db_conn(integration_provider: ConnectionProvider) -> Generator[psycopg.Connection[Any], None, None]:
    with integration_provider.connection() as conn:
        yield conn


@pytest.fixture(autouse=True)
def clean_tables(request: pytest.FixtureRequest) -> Generator[None, None, None]:
    if "integration_provider" not in request.fixturenames:
        yield
        return
    provider: ConnectionProvider = request.getfixturevalue("integration_provider")
    yield
    with provider.connection() as conn:
        conn.execute("TRUNCATE task_queue, jobs, files RESTART IDENTITY CASCADE")
        conn.commit()


@pytest.fixture
def file_repository(integration_provider: ConnectionProvider) -> FileRepository:
    return FileRepository(integration_provider)


@pytest.fixture
def job_repository(integration_provider: ConnectionProvider) -> JobRepository:
    return JobRepository(integration_provider)


@pytest.fixture
def job_queue(integration_provider: ConnectionProvider) -> JobQueue:
    return JobQueue(
        integration_provider,
        RetryPolicy(max_attempts=3, backoff_base_ms=2000),
        stall_timeout_seconds=0,
    )


@pytest.fixture
def make_due(db_conn: psycopg.Connection[Any]) -> Callable[[int], None]:
    """Pull a scheduled retry forward so it can be claimed now."""

    def _make_due(task_id: int) -> None:
        db_conn.execute("UPDATE task_queue SET available_at = NOW() WHERE id = %s", (task_id,))
        db_conn.commit()

    return _make_due
