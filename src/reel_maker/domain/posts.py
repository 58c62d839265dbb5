"""Domain models for a single production run."""

from dataclasses import dataclass, replace
from pathlib import Path


@dataclass(frozen=True)
class StorageLocation:
    """Exclusively-owned directory for one run's artifacts."""

    path: Path
    date_bucket: str
    sequence: int

    @property
    def log_file(self) -> Path:
        return self.path / "activity.log"


@dataclass(frozen=True)
class CaptionFields:
    """Structured fields extracted from a photo caption."""

    title: str
    content: str
    hashtags: str
    date: str


@dataclass(frozen=True)
class PostRecord:
    """Working data for one run: text fields plus artifact paths."""

    title: str
    content: str
    hashtags_raw: str
    display_date: str
    source_image_path: Path
    audio_ref: str
    directory: StorageLocation
    preview_image_path: Path | None = None

    @classmethod
    def collected(
        cls,
        fields: CaptionFields,
        source_image_path: Path,
        audio_ref: str,
        directory: StorageLocation,
    ) -> "PostRecord":
        """Build a record for a run whose inputs have been collected."""
        return cls(
            title=fields.title,
            content=fields.content,
            hashtags_raw=fields.hashtags,
            display_date=fields.date,
            source_image_path=source_image_path,
            audio_ref=audio_ref,
            directory=directory,
        )

    def with_preview(self, preview_image_path: Path) -> "PostRecord":
        """Return the previewed record; the preview must live in the run directory."""
        if preview_image_path.parent != self.directory.path:
            raise ValueError("Preview must be stored inside the run directory")
        return replace(self, preview_image_path=preview_image_path)


@dataclass(frozen=True)
class RunListing:
    """Past runs grouped by date bucket, newest first."""

    date_bucket: str
    runs: list[str]
