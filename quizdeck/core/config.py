"""Configuration loader for scheduling and grading defaults."""

from __future__ import annotations

import os
from dataclasses import fields
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from .types import SchedulerParams

DEFAULT_CONFIG: dict[str, dict[str, Any]] = {
    "scheduler": {
        "initial_difficulty": 2.5,
        "min_difficulty": 1.3,
        "max_difficulty": 3.0,
        "min_interval_days": 1,
        "second_interval_days": 6,
        "max_interval_days": 365,
    },
    "quiz": {
        "passing_score": None,
    },
}


class StudyConfigLoader:
    """Loads study settings from config/study.yaml, falling back to defaults."""

    def __init__(self, config_path: Optional[Path] = None) -> None:
        if config_path is None:
            env_path = os.environ.get("QUIZDECK_CONFIG", "").strip()
            if env_path:
                config_path = Path(env_path)
            else:
                project_root = Path(__file__).parent.parent.parent
                config_path = project_root / "config" / "study.yaml"
        self.config_path = config_path
        self._config: dict[str, Any] | None = None

    def _load_config(self) -> None:
        if self._config is not None:
            return
        if not self.config_path.exists():
            self._config = {}
            return
        with self.config_path.open("r", encoding="utf-8") as handle:
            self._config = yaml.safe_load(handle) or {}

    def get_section(self, name: str) -> dict[str, Any]:
        """Return a config section with defaults applied."""
        self._load_config()
        merged = dict(DEFAULT_CONFIG.get(name, {}))
        user_section = (self._config or {}).get(name, {})
        if isinstance(user_section, dict):
            merged.update({k: v for k, v in user_section.items() if v is not None})
        return merged

    def scheduler_params(self) -> SchedulerParams:
        section = self.get_section("scheduler")
        known = {f.name for f in fields(SchedulerParams)}
        return SchedulerParams(**{k: v for k, v in section.items() if k in known})

    def default_passing_score(self) -> Union[float, None]:
        return self.get_section("quiz").get("passing_score")
