from collections.abc import Callable
from pathlib import Path

import pytest

from file_worker.config.settings import Settings


@pytest.fixture()
def fast_settings() -> Settings:
    """Settings with the simulated processing delay switched off."""
    return Settings(
        processing_delay_min_seconds=0.0,
        processing_delay_max_seconds=0.0,
        job_poll_interval_seconds=1,
        worker_concurrency=2,
    )


@pytest.fixture()
def stored_file(tmp_path: Path) -> Callable[[str, bytes], Path]:
    """Write bytes under tmp_path as if the upload handler had stored them."""

    def _store(name: str, content: bytes) -> Path:
        path = tmp_path / "uploads" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    return _store
