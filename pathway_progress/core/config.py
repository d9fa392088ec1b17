from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUTHY = ("true", "1", "yes")
_FALSY = ("false", "0", "no")


def _getenv(name: str, default: str) -> str:
    # Centralize env access so type casting and validation stay in one place
    return os.environ.get(name, default).strip()


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    recompute_lock_timeout_seconds: int = 10
    rollup_precision: int = 2

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    log_json_raw = _getenv("LOG_JSON", "false").lower()
    port_raw = _getenv("PORT", "8000")
    lock_timeout_raw = _getenv("RECOMPUTE_LOCK_TIMEOUT_SECONDS", "10")
    precision_raw = _getenv("ROLLUP_PRECISION", "2")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    if log_json_raw in _TRUTHY:
        log_json = True
    elif log_json_raw in _FALSY:
        log_json = False
    else:
        raise ValueError(f"LOG_JSON must be a boolean (got {log_json_raw!r})")

    port = _parse_int("PORT", port_raw)

    lock_timeout = _parse_int("RECOMPUTE_LOCK_TIMEOUT_SECONDS", lock_timeout_raw)
    if lock_timeout <= 0:
        raise ValueError(
            f"RECOMPUTE_LOCK_TIMEOUT_SECONDS must be positive (got {lock_timeout})"
        )

    precision = _parse_int("ROLLUP_PRECISION", precision_raw)
    if not 0 <= precision <= 6:
        raise ValueError(f"ROLLUP_PRECISION must be within 0..6 (got {precision})")

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json,
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        recompute_lock_timeout_seconds=lock_timeout,
        rollup_precision=precision,
    )


# Module-level singleton so imports are cheap
SETTINGS = load_settings()
