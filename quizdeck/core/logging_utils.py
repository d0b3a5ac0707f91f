from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_FILENAME = "quizdeck.log"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class RotationPolicy:
    """Limits for the log file; a value <= 0 disables that limit."""

    max_bytes: int = 5 * 1024 * 1024
    max_age_hours: int = 24
    keep_files: int = 5

    @classmethod
    def from_env(cls) -> "RotationPolicy":
        return cls(
            max_bytes=_env_int("QUIZDECK_LOG_MAX_BYTES", cls.max_bytes),
            max_age_hours=_env_int("QUIZDECK_LOG_MAX_AGE_HOURS", cls.max_age_hours),
            keep_files=_env_int("QUIZDECK_LOG_MAX_FILES", cls.keep_files),
        )

    def is_due(self, path: Path, now: datetime) -> bool:
        try:
            stat = path.stat()
        except FileNotFoundError:
            return False
        if self.max_bytes > 0 and stat.st_size >= self.max_bytes:
            return True
        if self.max_age_hours > 0:
            written = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            return (now - written).total_seconds() >= self.max_age_hours * 3600
        return False


def _prune_rotated(path: Path, keep: int) -> None:
    rotated = sorted(
        path.parent.glob(f"{path.stem}.*{path.suffix}"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    for stale in rotated[keep:]:
        stale.unlink(missing_ok=True)


def rotate_log_if_needed(path: Path, policy: RotationPolicy | None = None) -> Path | None:
    """Move ``path`` aside with a timestamp suffix when it is too big or too old.

    Returns the rotated file, or None when nothing was moved.
    """
    policy = policy or RotationPolicy.from_env()
    if not path.is_file():
        return None
    now = datetime.now(timezone.utc)
    if not policy.is_due(path, now):
        return None

    rotated = path.with_name(f"{path.stem}.{now:%Y%m%d-%H%M%S}{path.suffix}")
    shutil.move(str(path), str(rotated))
    if policy.keep_files > 0:
        _prune_rotated(path, policy.keep_files)
    return rotated


def configure_logging(log_dir: Path, level: int = logging.INFO) -> Path:
    """Send ``quizdeck`` log records to ``log_dir/quizdeck.log``.

    The file is rotated first if it is too large or too old. Calling this
    again with the same directory does not add a second handler.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_FILENAME
    rotate_log_if_needed(log_path)

    logger = logging.getLogger("quizdeck")
    logger.setLevel(level)
    target = str(log_path.resolve())
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            return log_path

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return log_path
