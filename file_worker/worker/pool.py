import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait

from file_worker.config.settings import Settings
from file_worker.logging.logger import Log
from file_worker.queue.job_queue import JobQueue, payload_file_id
from file_worker.service.reconciliation import OrphanSweeper
from file_worker.worker.job_runner import JobRunner
from file_worker.worker.status import StatusReconciler
from file_worker.worker.worker import Worker


class WorkerPool:
    """Runs `worker_concurrency` independent poll loops plus a maintenance loop.

    Workers share nothing in memory; they coordinate only through the queue
    and the record store. The maintenance loop reclaims stalled deliveries
    and, when configured, sweeps orphaned uploads.
    """

    def __init__(
        self,
        queue: JobQueue,
        job_runner: JobRunner,
        reconciler: StatusReconciler,
        settings: Settings,
        sweeper: OrphanSweeper | None = None,
    ) -> None:
        self._queue = queue
        self._job_runner = job_runner
        self._reconciler = reconciler
        self._settings = settings
        self._sweeper = sweeper
        self._stop = threading.Event()
        self._last_sweep = 0.0

    def run(self) -> None:
        """Start all loops and block until stop() or Ctrl-C."""
        concurrency = self._settings.worker_concurrency
        Log.info(f"Starting worker pool with {concurrency} workers")
        workers = [
            Worker(
                self._queue,
                self._job_runner,
                self._settings,
                stop_event=self._stop,
                name=f"worker-{index + 1}",
            )
            for index in range(concurrency)
        ]
        with ThreadPoolExecutor(max_workers=concurrency + 1, thread_name_prefix="file-worker") as executor:
            futures = [executor.submit(worker.run) for worker in workers]
            futures.append(executor.submit(self._maintenance_loop))
            try:
                while not self._stop.is_set():
                    self._stop.wait(1.0)
            except KeyboardInterrupt:
                Log.info("Worker pool shutting down gracefully")
            finally:
                self._stop.set()
                wait(futures)
        Log.info("Worker pool stopped")

    def stop(self) -> None:
        self._stop.set()

    def run_maintenance_once(self) -> None:
        """Reclaim stalled deliveries and run the orphan sweep when it is due."""
        for stalled in self._queue.reclaim_stalled():
            file_id = payload_file_id(stalled.payload)
            Log.event(
                "task.stalled",
                level=logging.WARNING,
                task_id=stalled.task_id,
                file_id=file_id,
                attempt=stalled.attempt,
                will_retry=stalled.will_retry,
            )
            if not stalled.will_retry and file_id is not None:
                self._reconciler.abandon(
                    file_id,
                    stalled.attempt,
                    f"Processing stalled after {stalled.attempt} attempts",
                )

        interval = self._settings.orphan_sweep_interval_seconds
        if self._sweeper is not None and interval > 0:
            now = time.monotonic()
            if now - self._last_sweep >= interval:
                self._last_sweep = now
                self._sweeper.sweep()

    def _maintenance_loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_maintenance_once()
            except Exception as exc:
                Log.warning(f"Maintenance pass failed, will retry: {exc}")
            self._stop.wait(self._settings.job_poll_interval_seconds)
