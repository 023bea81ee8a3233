import json
from dataclasses import dataclass


@dataclass(frozen=True)
class ExtractedMetadata:
    """Metadata stored in files.extracted_data after a successful run."""

    file_size: int
    sha256_hash: str
    processed_at: str
    mime_type_guess: str

    def to_json(self) -> str:
        return json.dumps(
            {
                "fileSize": self.file_size,
                "sha256Hash": self.sha256_hash,
                "processedAt": self.processed_at,
                "mimeTypeGuess": self.mime_type_guess,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "ExtractedMetadata":
        data = json.loads(raw)
        return cls(
            file_size=data["fileSize"],
            sha256_hash=data["sha256Hash"],
            processed_at=data["processedAt"],
            mime_type_guess=data["mimeTypeGuess"],
        )
