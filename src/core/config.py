"""Runtime settings, read from environment variables (prefix CARDGAME_)."""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Self

ENV_PREFIX = "CARDGAME_"


def _env(name: str, default: str) -> str:
    return os.environ.get(f"{ENV_PREFIX}{name}", default)


def _env_bool(name: str, default: bool) -> bool:
    return _env(name, str(default)).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./cardgame.db"
    log_level: str = "INFO"
    # --- abandonment sweeper
    enable_sweeper: bool = True
    abandon_after_minutes: int = 30
    stale_after_hours: int = 2
    sweep_short_interval_seconds: int = 600
    sweep_long_interval_seconds: int = 3600
    # --- match registry: completed matches younger than this are left alone by cleanup
    match_cleanup_grace_seconds: int = 5
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:5173"])

    @classmethod
    def from_env(cls) -> Self:
        defaults = cls()
        origins = _env("CORS_ORIGINS", ",".join(defaults.cors_origins))
        return cls(
            database_url=_env("DATABASE_URL", defaults.database_url),
            log_level=_env("LOG_LEVEL", defaults.log_level).upper(),
            enable_sweeper=_env_bool("ENABLE_SWEEPER", defaults.enable_sweeper),
            abandon_after_minutes=int(
                _env("ABANDON_AFTER_MINUTES", str(defaults.abandon_after_minutes))
            ),
            stale_after_hours=int(
                _env("STALE_AFTER_HOURS", str(defaults.stale_after_hours))
            ),
            sweep_short_interval_seconds=int(
                _env(
                    "SWEEP_SHORT_INTERVAL_SECONDS",
                    str(defaults.sweep_short_interval_seconds),
                )
            ),
            sweep_long_interval_seconds=int(
                _env(
                    "SWEEP_LONG_INTERVAL_SECONDS",
                    str(defaults.sweep_long_interval_seconds),
                )
            ),
            match_cleanup_grace_seconds=int(
                _env(
                    "MATCH_CLEANUP_GRACE_SECONDS",
                    str(defaults.match_cleanup_grace_seconds),
                )
            ),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
