"""Environment-variable-driven configuration for the image search console.

All config comes from env vars; nothing is persisted between runs.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_csv(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def normalize_base_url(raw: str | None) -> str | None:
    """Strip whitespace and a trailing slash; blank means unset."""
    if raw is None:
        return None
    value = raw.strip().rstrip("/")
    return value or None


# -- Remote service -----------------------------------------------------------
IMGSEARCH_API_BASE_URL: str | None = normalize_base_url(os.getenv("IMGSEARCH_API_BASE_URL"))
IMGSEARCH_REQUEST_TIMEOUT_SECONDS: float = _env_float("IMGSEARCH_REQUEST_TIMEOUT_SECONDS", 30.0)
IMGSEARCH_ERROR_BODY_LIMIT: int = _env_int("IMGSEARCH_ERROR_BODY_LIMIT", 100)

# -- Training job -------------------------------------------------------------
IMGSEARCH_POLL_INTERVAL_SECONDS: float = _env_float("IMGSEARCH_POLL_INTERVAL_SECONDS", 2.0)
IMGSEARCH_METRICS_INTERVAL_SECONDS: float = _env_float("IMGSEARCH_METRICS_INTERVAL_SECONDS", 1.0)
IMGSEARCH_POLL_MAX_FAILURES: int = _env_int("IMGSEARCH_POLL_MAX_FAILURES", 5)

# -- Notifications ------------------------------------------------------------
IMGSEARCH_NOTIFICATION_TTL_SECONDS: float = _env_float("IMGSEARCH_NOTIFICATION_TTL_SECONDS", 3.0)

# -- Intake -------------------------------------------------------------------
IMGSEARCH_ALLOWED_EXTENSIONS: list[str] = [
    ext.lower().lstrip(".")
    for ext in _env_csv("IMGSEARCH_ALLOWED_EXTENSIONS", "png,jpg,jpeg,bmp,webp")
]

# -- Logging ------------------------------------------------------------------
IMGSEARCH_LOG_FORMAT: str = os.getenv("IMGSEARCH_LOG_FORMAT", "text").strip().lower()


@dataclass(frozen=True)
class ConsoleConfig:
    # Remote
    api_base_url: str | None
    request_timeout_seconds: float
    error_body_limit: int

    # Training
    poll_interval_seconds: float
    metrics_interval_seconds: float
    poll_max_failures: int

    # Notifications
    notification_ttl_seconds: float

    # Intake
    allowed_extensions: tuple[str, ...]

    @classmethod
    def from_env(cls) -> ConsoleConfig:
        return cls(
            api_base_url=normalize_base_url(os.getenv("IMGSEARCH_API_BASE_URL")),
            request_timeout_seconds=_env_float("IMGSEARCH_REQUEST_TIMEOUT_SECONDS", 30.0),
            error_body_limit=_env_int("IMGSEARCH_ERROR_BODY_LIMIT", 100),
            poll_interval_seconds=_env_float("IMGSEARCH_POLL_INTERVAL_SECONDS", 2.0),
            metrics_interval_seconds=_env_float("IMGSEARCH_METRICS_INTERVAL_SECONDS", 1.0),
            poll_max_failures=_env_int("IMGSEARCH_POLL_MAX_FAILURES", 5),
            notification_ttl_seconds=_env_float("IMGSEARCH_NOTIFICATION_TTL_SECONDS", 3.0),
            allowed_extensions=tuple(
                ext.lower().lstrip(".")
                for ext in _env_csv("IMGSEARCH_ALLOWED_EXTENSIONS", "png,jpg,jpeg,bmp,webp")
            ),
        )

    @classmethod
    def defaults(cls, *, api_base_url: str | None = None) -> ConsoleConfig:
        """Module-level defaults with an explicit base URL (handy for embedding and tests)."""
        return cls(
            api_base_url=normalize_base_url(api_base_url),
            request_timeout_seconds=IMGSEARCH_REQUEST_TIMEOUT_SECONDS,
            error_body_limit=IMGSEARCH_ERROR_BODY_LIMIT,
            poll_interval_seconds=IMGSEARCH_POLL_INTERVAL_SECONDS,
            metrics_interval_seconds=IMGSEARCH_METRICS_INTERVAL_SECONDS,
            poll_max_failures=IMGSEARCH_POLL_MAX_FAILURES,
            notification_ttl_seconds=IMGSEARCH_NOTIFICATION_TTL_SECONDS,
            allowed_extensions=tuple(IMGSEARCH_ALLOWED_EXTENSIONS),
        )

    def validate(self) -> None:
        # A missing base URL is not a config-load failure: operations fail
        # individually with ConfigurationError instead.
        for name, value in {
            "IMGSEARCH_REQUEST_TIMEOUT_SECONDS": self.request_timeout_seconds,
            "IMGSEARCH_POLL_INTERVAL_SECONDS": self.poll_interval_seconds,
            "IMGSEARCH_METRICS_INTERVAL_SECONDS": self.metrics_interval_seconds,
            "IMGSEARCH_NOTIFICATION_TTL_SECONDS": self.notification_ttl_seconds,
        }.items():
            if value <= 0:
                raise ValueError(f"{name} must be > 0")

        if self.error_body_limit < 1:
            raise ValueError("IMGSEARCH_ERROR_BODY_LIMIT must be >= 1")
        if self.poll_max_failures < 1:
            raise ValueError("IMGSEARCH_POLL_MAX_FAILURES must be >= 1")
        if not self.allowed_extensions:
            raise ValueError("IMGSEARCH_ALLOWED_EXTENSIONS was set but parsed as empty")
