from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]
WaitlistPolicyName = Literal["stop_on_first_failure", "advance_to_next_candidate"]

_TRUTHY = ("1", "true", "yes", "on")
_FALSY = ("0", "false", "no", "off", "")


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    waitlist_policy: WaitlistPolicyName = "stop_on_first_failure"
    course_lock_timeout: float = 5.0

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    log_json_raw = _getenv("LOG_JSON", "false").lower()
    port_raw = _getenv("PORT", "8000")
    policy_raw = _getenv("WAITLIST_POLICY", "stop_on_first_failure").lower()
    lock_timeout_raw = _getenv("COURSE_LOCK_TIMEOUT", "5")

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
        raise ValueError(f"LOG_JSON must be true|false (got {log_json_raw!r})")

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    if policy_raw not in ("stop_on_first_failure", "advance_to_next_candidate"):
        raise ValueError(
            "WAITLIST_POLICY must be stop_on_first_failure|advance_to_next_candidate "
            f"(got {policy_raw!r})"
        )

    try:
        course_lock_timeout = float(lock_timeout_raw)
    except ValueError:
        raise ValueError(
            f"COURSE_LOCK_TIMEOUT must be a number of seconds (got {lock_timeout_raw!r})"
        ) from None
    if course_lock_timeout <= 0:
        raise ValueError(
            f"COURSE_LOCK_TIMEOUT must be positive (got {lock_timeout_raw!r})"
        )

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json,
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        waitlist_policy=policy_raw,
        course_lock_timeout=course_lock_timeout,
    )


SETTINGS = load_settings()
