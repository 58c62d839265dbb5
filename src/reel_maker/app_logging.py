"""Logging configuration helpers."""

import logging
from datetime import UTC, datetime
from pathlib import Path

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

_RUN_LOGGER_PREFIX = "reel_maker.runs"
_BOT_LOGGER_PREFIX = "reel_maker.bot"


class ActivityFormatter(logging.Formatter):
    """Format records as ``[LEVEL] <iso timestamp> - <message>``."""

    def __init__(self) -> None:
        super().__init__("[%(levelname)s] %(asctime)s - %(message)s")

    def formatTime(  # noqa: N802
        self, record: logging.LogRecord, datefmt: str | None = None
    ) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        return created.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def configure_logging() -> None:
    """Configure application logging with a single stream handler."""
    logger = logging.getLogger("reel_maker")
    logger.setLevel(logging.INFO)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False


def file_logger(name: str, log_file: Path) -> logging.Logger:
    """Return a logger appending activity lines to ``log_file``.

    Records still propagate to the ``reel_maker`` stream handler. Calling this
    again for the same file reuses the existing handler.
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    target = str(log_file.resolve())
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            return logger
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(ActivityFormatter())
    logger.addHandler(handler)
    return logger


def run_logger(directory: Path) -> logging.Logger:
    """Return the logger writing to a run directory's ``activity.log``."""
    return file_logger(
        _logger_name(_RUN_LOGGER_PREFIX, directory), directory / "activity.log"
    )


def release_run_logger(directory: Path) -> None:
    """Close the file handler of a finished run."""
    logger = logging.getLogger(_logger_name(_RUN_LOGGER_PREFIX, directory))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def startup_logger(output_root: Path) -> logging.Logger:
    """Return the logger for events that are not tied to a run directory."""
    output_root.mkdir(parents=True, exist_ok=True)
    return file_logger(
        _logger_name(_BOT_LOGGER_PREFIX, output_root), output_root / "bot_startup.log"
    )


def _logger_name(prefix: str, directory: Path) -> str:
    return f"{prefix}.{directory.resolve().as_posix().replace('.', '_')}"
