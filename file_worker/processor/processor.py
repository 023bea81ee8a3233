import random
import time
from collections.abc import Callable
from pathlib import Path

from file_worker.config.settings import Settings
from file_worker.logging.logger import Log
from file_worker.processor.file_loader import FileLoader
from file_worker.processor.metadata_extractor import MetadataExtractor
from file_worker.processor.models import ExtractedMetadata
from file_worker.queue.models import FileProcessingTask


class Processor:
    """Runs the processing routine for one file.

    Routine: simulated work -> verify content -> hash + size + MIME guess.
    Safe to re-run for the same task; it only reads the stored file.
    """

    def __init__(
        self,
        file_loader: FileLoader,
        metadata_extractor: MetadataExtractor,
        delay_min_seconds: float = 2.0,
        delay_max_seconds: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._file_loader = file_loader
        self._metadata_extractor = metadata_extractor
        self._delay_min_seconds = delay_min_seconds
        self._delay_max_seconds = delay_max_seconds
        self._sleep = sleep

    def process(self, task: FileProcessingTask) -> ExtractedMetadata:
        """Process a file and return its metadata.

        Raises:
            ContentUnavailableError: if the storage handle no longer resolves.
            MetadataExtractionError: if reading or hashing fails.
        """
        Log.info(f"Processing file {task.file_id}: {task.original_name}")

        # Step 1: Simulated processing time
        delay = random.uniform(self._delay_min_seconds, self._delay_max_seconds)
        if delay > 0:
            self._sleep(delay)

        # Step 2: Content must still be there
        path = self._file_loader.verify(task.file_path)
        Log.debug(f"Verified content for file {task.file_id} at {path}")

        # Step 3: Metadata
        metadata = self._metadata_extractor.extract(task.file_path, task.original_name)
        Log.info(
            f"Extracted metadata for file {task.file_id}: "
            f"{metadata.file_size} bytes, {metadata.mime_type_guess}"
        )
        return metadata


def build_processor(settings: Settings) -> Processor:
    """Build a Processor from application settings."""
    upload_root = Path(settings.upload_root) if settings.upload_root else None
    file_loader = FileLoader(backend=settings.storage_backend, upload_root=upload_root)
    metadata_extractor = MetadataExtractor(file_loader, chunk_size=settings.digest_chunk_size)
    return Processor(
        file_loader=file_loader,
        metadata_extractor=metadata_extractor,
        delay_min_seconds=settings.processing_delay_min_seconds,
        delay_max_seconds=settings.processing_delay_max_seconds,
    )
