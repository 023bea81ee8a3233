class ServiceError(Exception):
    """Base exception for errors surfaced to callers of the service layer."""


class FileRecordNotFoundError(ServiceError):
    """Raised when no file with the requested id exists."""


class AccessDeniedError(ServiceError):
    """Raised when a user asks for a file owned by someone else."""
