"""Run directory allocation and history listing."""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from reel_maker.domain.errors import StorageError
from reel_maker.domain.posts import RunListing, StorageLocation


@dataclass
class DirectoryAllocator:
    """Allocate collision-free ``<root>/<YYYY-MM-DD>/<seq>_<HHMM>`` directories."""

    root: Path
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def allocate(self, now: datetime) -> StorageLocation:
        """Create and return the next run directory for ``now``'s date.

        Counting existing runs and creating the new directory happen under one
        process-wide lock, so concurrent callers never share a sequence number.
        An existing target is a hard failure; nothing is overwritten.
        """
        date_bucket = now.strftime("%Y-%m-%d")
        bucket_path = self.root / date_bucket
        with self._lock:
            try:
                bucket_path.mkdir(parents=True, exist_ok=True)
                sequence = len(_subdirectories(bucket_path)) + 1
                path = bucket_path / f"{sequence}_{now.strftime('%H%M')}"
                path.mkdir()
            except FileExistsError as exc:
                raise StorageError(
                    f"Run directory already exists: {exc.filename}"
                ) from exc
            except OSError as exc:
                raise StorageError(f"Cannot create run directory: {exc}") from exc
        return StorageLocation(path=path, date_bucket=date_bucket, sequence=sequence)

    def recent_runs(self, max_runs: int = 10, per_date: int = 5) -> list[RunListing]:
        """List past runs, newest date first, capped per date and overall."""
        if not self.root.is_dir():
            return []
        listings: list[RunListing] = []
        remaining = max_runs
        for bucket in sorted(_subdirectories(self.root), reverse=True):
            runs = sorted(
                (entry.name for entry in _subdirectories(bucket)),
                key=_run_sort_key,
                reverse=True,
            )
            if not runs:
                continue
            selected = runs[: min(per_date, remaining)]
            listings.append(RunListing(date_bucket=bucket.name, runs=selected))
            remaining -= len(selected)
            if remaining <= 0:
                break
        return listings


def _subdirectories(path: Path) -> list[Path]:
    return [entry for entry in path.iterdir() if entry.is_dir()]


def _run_sort_key(name: str) -> tuple[int, str]:
    sequence, _, _ = name.partition("_")
    return (int(sequence) if sequence.isdigit() else 0, name)
