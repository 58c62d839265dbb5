"""Video encoding and run metadata."""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from reel_maker.app_logging import SUCCESS
from reel_maker.domain.errors import EncodeError, EncodeErrorKind, StorageError
from reel_maker.domain.posts import PostRecord

VIDEO_FILENAME = "video.mp4"
METADATA_FILENAME = "metadata.json"
VIDEO_DURATION_SECONDS = 8
VIDEO_BITRATE = "5000k"
AUDIO_BITRATE = "320k"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Exit status and captured stderr of a finished process."""

    returncode: int
    stderr: str


class CommandRunner(Protocol):
    """Runs an external command given as an argument list."""

    async def run(self, args: list[str]) -> CommandResult:
        """Run the command to completion."""


class RunMetadata(BaseModel):
    """Durable summary written next to a run's artifacts."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    content: str
    hashtags: str
    date: str
    audio: str
    preview_path: str = Field(alias="previewPath")
    video_path: str = Field(alias="videoPath")
    created_at: datetime = Field(alias="createdAt")


def build_encoder_command(
    preview_path: Path,
    audio_path: Path,
    video_path: Path,
    ffmpeg_binary: str = "ffmpeg",
) -> list[str]:
    """Build the encoder argument list for a looped still plus audio."""
    return [
        ffmpeg_binary,
        "-y",
        "-loop",
        "1",
        "-i",
        str(preview_path),
        "-i",
        str(audio_path),
        "-c:v",
        "libx264",
        "-preset",
        "slow",
        "-crf",
        "18",
        "-b:v",
        VIDEO_BITRATE,
        "-pix_fmt",
        "yuv420p",
        "-c:a",
        "aac",
        "-b:a",
        AUDIO_BITRATE,
        "-af",
        "apad",
        "-t",
        str(VIDEO_DURATION_SECONDS),
        str(video_path),
    ]


@dataclass
class EncodePipeline:
    """Encode a fixed-duration video from a preview bitmap and an audio file."""

    runner: CommandRunner
    ffmpeg_binary: str = "ffmpeg"

    async def encode(
        self,
        preview_path: Path,
        audio_path: Path,
        out_dir: Path,
        run_log: logging.Logger | None = None,
    ) -> Path:
        """Write ``video.mp4`` into ``out_dir`` and return its path."""
        log = run_log or logger
        if not audio_path.is_file():
            raise EncodeError(
                EncodeErrorKind.MISSING_INPUT, f"Audio file not found: {audio_path}"
            )
        if not preview_path.is_file():
            raise EncodeError(
                EncodeErrorKind.MISSING_INPUT,
                f"Preview image not found: {preview_path}",
            )

        video_path = out_dir / VIDEO_FILENAME
        args = build_encoder_command(
            preview_path, audio_path, video_path, self.ffmpeg_binary
        )
        log.info("Executing encoder: %s", " ".join(args))
        try:
            result = await self.runner.run(args)
        except OSError as exc:
            raise EncodeError(
                EncodeErrorKind.ENCODER_FAILURE, f"Cannot start encoder: {exc}"
            ) from exc
        if result.returncode != 0:
            raise EncodeError(
                EncodeErrorKind.ENCODER_FAILURE,
                f"Encoder exited with {result.returncode}: {_tail(result.stderr)}",
            )
        log.log(SUCCESS, "Video created: %s", video_path)
        return video_path

    def write_metadata(
        self, post: PostRecord, video_path: Path, completed_at: datetime
    ) -> Path:
        """Persist the run summary as ``metadata.json`` in the run directory."""
        metadata = RunMetadata(
            title=post.title,
            content=post.content,
            hashtags=post.hashtags_raw,
            date=post.display_date,
            audio=post.audio_ref,
            preview_path=str(post.preview_image_path or ""),
            video_path=str(video_path),
            created_at=completed_at,
        )
        metadata_path = post.directory.path / METADATA_FILENAME
        try:
            metadata_path.write_text(
                metadata.model_dump_json(by_alias=True, indent=2), encoding="utf-8"
            )
        except OSError as exc:
            raise StorageError(f"Cannot write metadata: {exc}") from exc
        return metadata_path


def _tail(text: str, lines: int = 5) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])
