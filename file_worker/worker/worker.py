import threading

from file_worker.config.settings import Settings
from file_worker.logging.logger import Log
from file_worker.queue.job_queue import JobQueue
from file_worker.queue.models import Delivery
from file_worker.worker.job_runner import JobRunner


class Worker:
    """Poll loop: sleep -> claim -> dispatch."""

    def __init__(
        self,
        queue: JobQueue,
        job_runner: JobRunner,
        settings: Settings,
        stop_event: threading.Event | None = None,
        name: str = "worker",
    ) -> None:
        self._queue = queue
        self._job_runner = job_runner
        self._settings = settings
        self._stop = stop_event if stop_event is not None else threading.Event()
        self._name = name

    def run(self, max_jobs: int | None = None) -> None:
        """Main poll loop. Runs until the stop event is set or interrupted.

        If max_jobs is set, stop after processing that many jobs (for testing).
        """
        Log.info(f"{self._name} started, polling for tasks")
        jobs_done = 0
        try:
            while not self._stop.is_set():
                if max_jobs is not None and jobs_done >= max_jobs:
                    break
                delivery = self._try_claim_job()
                if delivery:
                    self._dispatch(delivery)
                    jobs_done += 1
                else:
                    Log.debug(f"{self._name}: no tasks available, sleeping")
                    self._stop.wait(self._settings.job_poll_interval_seconds)
        except KeyboardInterrupt:
            Log.info(f"{self._name} shutting down gracefully")
        Log.info(f"{self._name} stopped after {jobs_done} tasks")

    def _try_claim_job(self) -> Delivery | None:
        """Attempt to claim the next due task. Gracefully handle DB errors."""
        try:
            return self._queue.dequeue()
        except Exception as exc:
            Log.warning(f"Queue error, will retry: {exc}")
            return None

    def _dispatch(self, delivery: Delivery) -> None:
        # An error here (e.g. the ack itself failing) leaves the delivery
        # active; the stall sweep hands it out again.
        try:
            self._job_runner.run(delivery)
        except Exception as exc:
            Log.error(f"{self._name}: task {delivery.task_id} left unacknowledged: {exc}")
