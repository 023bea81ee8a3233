class QueueError(Exception):
    """Base exception for all job queue errors."""


class EnqueueError(QueueError):
    """Raised when a task cannot be written to the queue."""


class UnknownTaskKindError(QueueError):
    """Raised when a queued row carries a task kind no consumer understands."""
