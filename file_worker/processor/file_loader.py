from collections.abc import Iterator
from pathlib import Path

from file_worker.processor.exceptions import ContentUnavailableError, UnsupportedStorageError


class FileLoader:
    """Resolves a storage handle to a local file and streams its bytes."""

    SUPPORTED_BACKENDS = ("local",)

    def __init__(self, backend: str = "local", upload_root: Path | None = None) -> None:
        if backend not in self.SUPPORTED_BACKENDS:
            raise UnsupportedStorageError(
                f"storage backend '{backend}' is not supported. "
                f"Choose from: {list(self.SUPPORTED_BACKENDS)}"
            )
        self._upload_root = upload_root

    def resolve(self, handle: str) -> Path:
        """Turn a handle (absolute path, `file://` URI or root-relative path) into a Path."""
        raw = handle.removeprefix("file://")
        path = Path(raw)
        if not path.is_absolute() and self._upload_root is not None:
            path = self._upload_root / path
        return path

    def verify(self, handle: str) -> Path:
        """Check the handle resolves to a readable regular file.

        Raises:
            ContentUnavailableError: if the file is missing, not a file, or unreadable.
        """
        path = self.resolve(handle)
        try:
            if not path.is_file():
                raise ContentUnavailableError(f"File not accessible: {path} does not exist")
            with path.open("rb"):
                pass
        except OSError as exc:
            raise ContentUnavailableError(f"File not accessible: {exc}") from exc
        return path

    def iter_chunks(self, handle: str, chunk_size: int) -> Iterator[bytes]:
        """Yield the file's content in chunks of at most `chunk_size` bytes."""
        path = self.resolve(handle)
        with path.open("rb") as fh:
            while chunk := fh.read(chunk_size):
                yield chunk
