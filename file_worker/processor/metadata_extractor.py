import hashlib
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import PurePath

from file_worker.processor.exceptions import MetadataExtractionError
from file_worker.processor.file_loader import FileLoader
from file_worker.processor.mime_types import guess_mime_type
from file_worker.processor.models import ExtractedMetadata


def _utc_now() -> datetime:
    return datetime.now(UTC)


class MetadataExtractor:
    """Computes size, SHA-256 and a MIME guess for one stored file."""

    def __init__(
        self,
        file_loader: FileLoader,
        chunk_size: int = 65536,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._file_loader = file_loader
        self._chunk_size = chunk_size
        self._clock = clock

    def extract(self, handle: str, original_name: str) -> ExtractedMetadata:
        """Stream the file once, hashing and counting bytes.

        The MIME guess uses the original filename and falls back to the
        storage handle when the original name has no extension.

        Raises:
            MetadataExtractionError: if the content cannot be read to the end.
        """
        digest = hashlib.sha256()
        size = 0
        try:
            for chunk in self._file_loader.iter_chunks(handle, self._chunk_size):
                digest.update(chunk)
                size += len(chunk)
        except OSError as exc:
            raise MetadataExtractionError(f"Failed to extract metadata: {exc}") from exc

        name_for_guess = original_name if PurePath(original_name).suffix else handle
        mime_type = guess_mime_type(name_for_guess)

        processed_at = self._clock().isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return ExtractedMetadata(
            file_size=size,
            sha256_hash=digest.hexdigest(),
            processed_at=processed_at,
            mime_type_guess=mime_type,
        )
