from typing import Any

import psycopg

RECORDS_DDL = """
CREATE TABLE IF NOT EXISTS files (
    id BIGSERIAL PRIMARY KEY,
    user_id BIGINT NOT NULL,
    original_filename TEXT NOT NULL,
    storage_path TEXT NOT NULL,
    title TEXT,
    description TEXT,
    status TEXT NOT NULL DEFAULT 'uploaded'
        CHECK (status IN ('uploaded', 'processing', 'processed', 'failed')),
    extracted_data TEXT,
    processing_attempt INTEGER NOT NULL DEFAULT 0,
    uploaded_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (extracted_data IS NULL OR status = 'processed')
);

CREATE INDEX IF NOT EXISTS files_user_uploaded_idx
    ON files (user_id, uploaded_at DESC);

CREATE TABLE IF NOT EXISTS jobs (
    id BIGSERIAL PRIMARY KEY,
    file_id BIGINT NOT NULL REFERENCES files (id) ON DELETE CASCADE,
    job_type TEXT NOT NULL DEFAULT 'file_processing',
    status TEXT NOT NULL DEFAULT 'queued'
        CHECK (status IN ('queued', 'processing', 'completed', 'failed')),
    error_message TEXT,
    attempt INTEGER NOT NULL DEFAULT 0,
    started_at TIMESTAMPTZ,
    completed_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (error_message IS NULL OR status = 'failed'),
    CHECK (completed_at IS NULL OR status IN ('completed', 'failed'))
);

CREATE INDEX IF NOT EXISTS jobs_file_idx ON jobs (file_id);
"""

QUEUE_DDL = """
CREATE TABLE IF NOT EXISTS task_queue (
    id BIGSERIAL PRIMARY KEY,
    kind TEXT NOT NULL,
    payload JSONB NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'active', 'completed', 'failed')),
    attempts INTEGER NOT NULL DEFAULT 0,
    max_attempts INTEGER NOT NULL,
    backoff_base_ms INTEGER NOT NULL,
    available_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    locked_at TIMESTAMPTZ,
    last_error TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS task_queue_ready_idx
    ON task_queue (status, available_at);

CREATE UNIQUE INDEX IF NOT EXISTS task_queue_file_task_idx
    ON task_queue (kind, (payload->>'fileId'));
"""


def create_schema(conn: psycopg.Connection[Any], *, records: bool = True, queue: bool = True) -> None:
    """Create the record store and/or queue tables if they do not exist."""
    if records:
        conn.execute(RECORDS_DDL)
    if queue:
        conn.execute(QUEUE_DDL)
    conn.commit()
