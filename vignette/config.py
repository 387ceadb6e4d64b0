from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

StateBackend = Literal["memory", "redis"]


def project_root() -> Path:
    # vignette/config.py -> vignette/ -> project root
    return Path(__file__).resolve().parents[1]


@dataclass(frozen=True, slots=True)
class Settings:
    log_level: int = logging.INFO
    state_backend: StateBackend = "memory"
    redis_url: str = "redis://localhost:6379/0"
    # Per session: events kept in the game history and commands kept by the presentation.
    event_limit: int = 1000

    @staticmethod
    def from_env(*, load_dotenv_file: bool = True) -> "Settings":
        """Read settings from the environment, after loading the repo `.env` if present.

        Variables already set in the environment win over `.env`.
        """

        if load_dotenv_file:
            env_path = project_root() / ".env"
            if env_path.exists():
                from dotenv import load_dotenv

                load_dotenv(dotenv_path=env_path, override=False)

        level_name = os.environ.get("VIGNETTE_LOG_LEVEL", "INFO").upper()
        level = logging.getLevelName(level_name)
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level_name}")

        backend = os.environ.get("VIGNETTE_STATE_BACKEND", "memory").strip().lower()
        if backend not in ("memory", "redis"):
            raise ValueError(f"VIGNETTE_STATE_BACKEND must be 'memory' or 'redis', got '{backend}'")

        raw_limit = os.environ.get("VIGNETTE_EVENT_LIMIT", "1000").strip()
        try:
            event_limit = int(raw_limit)
        except ValueError:
            raise ValueError(f"VIGNETTE_EVENT_LIMIT must be an integer, got '{raw_limit}'") from None
        if event_limit < 1:
            raise ValueError("VIGNETTE_EVENT_LIMIT must be >= 1")

        return Settings(
            log_level=level,
            state_backend=backend,  # type: ignore[arg-type]
            redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
            event_limit=event_limit,
        )
