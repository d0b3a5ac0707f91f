from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DB_FILENAME = "quizdeck.sqlite3"


@dataclass(frozen=True)
class RuntimePaths:
    root: Path
    db_path: Path
    reports_dir: Path
    logs_dir: Path

    def quiz_reports_dir(self, quiz_id: str) -> Path:
        path = self.reports_dir / quiz_id
        path.mkdir(parents=True, exist_ok=True)
        return path


def build_runtime_paths(root: Path) -> RuntimePaths:
    """Lay out the database, reports and logs under ``root``, creating folders as needed."""
    paths = RuntimePaths(
        root=root,
        db_path=root / "db" / DB_FILENAME,
        reports_dir=root / "reports",
        logs_dir=root / "logs",
    )
    for folder in (paths.db_path.parent, paths.reports_dir, paths.logs_dir):
        folder.mkdir(parents=True, exist_ok=True)
    return paths


def get_runtime_paths() -> RuntimePaths:
    env_path = os.environ.get("QUIZDECK_RUNTIME_DIR", "").strip()
    root = Path(env_path) if env_path else Path(__file__).resolve().parents[2] / "runtime-data"
    return build_runtime_paths(root)
