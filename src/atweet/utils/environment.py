"""Settings resolved from environment variables."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Tuple

from atweet.auth.broker import DEFAULT_PULL_INTERVAL
from atweet.auth.models import DEFAULT_SCOPES, ClientConfig
from atweet.auth.transport import DEFAULT_TIMEOUT

logger = logging.getLogger("atweet.utils.environment")

_TRUTHY: Final[Tuple[str, ...]] = ("true", "1", "yes", "y", "on")
_PREFIX: Final[str] = "ATWEET_"


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def _env(key: str, default: str | None = None) -> str | None:
    value = os.getenv(_PREFIX + key)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_float(key: str, default: float) -> float:
    raw = _env(key)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s%s=%r", _PREFIX, key, raw)
        return default


@dataclass(frozen=True)
class Settings:
    """Per-instance runtime settings.

    Only the provider client id and the public site URL are needed to run the
    OAuth flow; the role flag and broker secrets are persisted options managed
    with ``atweet configure``.
    """

    client_id: str = ""
    site_url: str = ""
    scopes: tuple[str, ...] = DEFAULT_SCOPES
    storage_dir: Path = field(default_factory=lambda: Path.home() / ".atweet")
    log_dir: Path | None = None
    ssl_verify: bool = True
    http_timeout: float = DEFAULT_TIMEOUT
    pull_interval: float = DEFAULT_PULL_INTERVAL
    session_ttl: int = 3600

    @classmethod
    def from_env(cls) -> "Settings":
        storage_dir = Path(_env("STORAGE_DIR") or Path.home() / ".atweet").expanduser()
        log_dir_raw = _env("LOG_DIR")
        scopes_raw = _env("SCOPES")
        ssl_raw = _env("SSL_VERIFY")
        settings = cls(
            client_id=_env("CLIENT_ID", "") or "",
            site_url=(_env("SITE_URL", "") or "").rstrip("/"),
            scopes=tuple(scopes_raw.split()) if scopes_raw else DEFAULT_SCOPES,
            storage_dir=storage_dir,
            log_dir=Path(log_dir_raw).expanduser() if log_dir_raw else storage_dir / "logs",
            ssl_verify=True if ssl_raw is None else _truthy(ssl_raw),
            http_timeout=_env_float("HTTP_TIMEOUT", DEFAULT_TIMEOUT),
            pull_interval=_env_float("PULL_INTERVAL", DEFAULT_PULL_INTERVAL),
            session_ttl=int(_env_float("SESSION_TTL", 3600)),
        )
        if not settings.ssl_verify:
            logger.warning("TLS certificate verification is DISABLED (debug only)")
        return settings

    def client_config(self) -> ClientConfig:
        """Return the provider ClientConfig; raises ConfigurationError if incomplete."""
        return ClientConfig(
            client_id=self.client_id,
            redirect_base_url=self.site_url,
            scopes=self.scopes,
        )
