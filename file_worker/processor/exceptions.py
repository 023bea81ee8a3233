class ProcessorError(Exception):
    """Base exception for all processor-related errors."""


class ContentUnavailableError(ProcessorError):
    """Raised when a storage handle no longer resolves to readable content."""


class MetadataExtractionError(ProcessorError):
    """Raised when reading or hashing the content fails part-way."""


class UnsupportedStorageError(ProcessorError):
    """Raised when the configured storage backend is not supported."""
