import logging

from file_worker.logging.logger import Log
from file_worker.processor.processor import Processor
from file_worker.queue.job_queue import JobQueue
from file_worker.queue.models import Delivery
from file_worker.worker.status import BeginOutcome, StatusReconciler


class JobRunner:
    """Run one delivery through the worker state machine.

    Received -> Marking-Processing -> Executing -> Finalizing-Success | Finalizing-Failure.
    Every error is recorded on the File/Job rows and then handed to the
    queue as a nack so its retry/backoff accounting applies. If the error
    cannot be recorded, the delivery is not nacked and run() raises.
    """

    def __init__(
        self,
        processor: Processor,
        reconciler: StatusReconciler,
        queue: JobQueue,
    ) -> None:
        self._processor = processor
        self._reconciler = reconciler
        self._queue = queue

    def run(self, delivery: Delivery) -> None:
        """Execute a single delivery with error handling."""
        task = delivery.task
        Log.info(
            f"Running task {delivery.task_id} for file {task.file_id} "
            f"(attempt {delivery.attempt}/{delivery.max_attempts})"
        )
        job_id: int | None = None
        try:
            begin = self._reconciler.begin(task.file_id, delivery.attempt)
            job_id = begin.job_id
            if begin.outcome is not BeginOutcome.STARTED:
                self._skip(delivery, begin.outcome)
                return

            metadata = self._processor.process(task)
            recorded = self._reconciler.succeed(
                task.file_id, job_id, delivery.attempt, metadata.to_json()
            )
        except Exception as exc:
            self._handle_failure(delivery, exc, job_id)
            return

        if not recorded:
            self._skip(delivery, BeginOutcome.SUPERSEDED)
            return

        self._queue.ack(delivery)
        Log.info(f"Successfully processed file {task.file_id}")
        Log.event(
            "task.completed",
            task_id=delivery.task_id,
            file_id=task.file_id,
            attempt=delivery.attempt,
        )

    def _skip(self, delivery: Delivery, outcome: BeginOutcome) -> None:
        """Ack a delivery that has nothing left to do."""
        if outcome is BeginOutcome.ALREADY_COMPLETED:
            Log.info(f"File {delivery.task.file_id} already processed, acking redelivery")
        else:
            Log.warning(
                f"Task {delivery.task_id} for file {delivery.task.file_id} skipped: "
                f"{outcome.value}"
            )
        self._queue.ack(delivery)
        Log.event(
            "task.skipped",
            task_id=delivery.task_id,
            file_id=delivery.task.file_id,
            attempt=delivery.attempt,
            reason=outcome.value,
        )

    def _handle_failure(self, delivery: Delivery, exc: Exception, job_id: int | None) -> None:
        """Record Failed on File then Job, then nack so the queue retries or gives up."""
        task = delivery.task
        message = str(exc) or exc.__class__.__name__
        Log.error(f"Failed to process file {task.file_id}: {message}")

        try:
            self._reconciler.fail(task.file_id, delivery.attempt, message, job_id=job_id)
        except Exception as record_exc:
            # Left active without a nack; the stall sweep redelivers it or,
            # on the last attempt, records the failure through abandon().
            Log.error(f"Could not record failure for file {task.file_id}: {record_exc}")
            raise

        result = self._queue.nack(delivery, message)
        Log.event(
            "task.failed",
            level=logging.ERROR,
            task_id=delivery.task_id,
            file_id=task.file_id,
            attempt=delivery.attempt,
            will_retry=result.will_retry,
            error=message,
        )
        if result.will_retry:
            Log.warning(
                f"File {task.file_id} will be retried in {result.delay_ms} ms "
                f"(attempt {delivery.attempt + 1}/{delivery.max_attempts})"
            )
        elif result.applied:
            Log.error(
                f"File {task.file_id} permanently failed after {delivery.attempt} attempts"
            )
