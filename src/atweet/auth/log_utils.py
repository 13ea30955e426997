"""Structured logging helpers for the OAuth and broker components.

This module purposefully restricts **which** contextual attributes are attached
to log records in order to avoid accidentally leaking secrets.  All helpers
ONLY inject the following *non-sensitive* fields:

- ``instance_id``    – Site URL (or other label) of the running instance
- ``role``           – ``main`` or ``satellite``
- ``correlation_id`` – Request correlation id set by the HTTP middleware

Usage
-----
>>> from atweet.auth.log_utils import get_auth_logger
>>> log = get_auth_logger(
...     base_logger_name="atweet.auth.client",
...     instance_id="https://site.example",
...     role="main",
... )
>>> log.info("Refresh token requested")

The per-day text log is attached with :func:`configure_logging`.
"""

from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Mapping, MutableMapping

LOG_FORMAT = (
    "[%(asctime)s] %(levelname)s %(name)s [%(role)s %(correlation_id)s]: %(message)s"
)
DATE_FORMAT = "%d-%m-%Y %H:%M:%S"


def mask_sensitive(value: str | None, keep: int = 4) -> str:
    """Return *value* with everything but the first *keep* characters hidden."""
    if not value:
        return "<empty>"
    if len(value) <= keep:
        return "*" * len(value)
    return f"{value[:keep]}****"


class _AuthLoggerAdapter(logging.LoggerAdapter):
    """Inject whitelisted auth context into log records."""

    extra_keys = ("instance_id", "role", "correlation_id")

    def __init__(self, logger: logging.Logger, extra: Mapping[str, Any] | None = None):
        extra_clean: MutableMapping[str, Any] = {}
        for k in self.extra_keys:
            if extra and extra.get(k) is not None:
                extra_clean[k] = extra[k]
        super().__init__(logger, extra_clean)

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        if "extra" not in kwargs or kwargs["extra"] is None:
            kwargs["extra"] = {}
        # merge but do not overwrite call-site provided extras
        for k, v in self.extra.items():
            kwargs["extra"].setdefault(k, v)
        return msg, kwargs


class _ContextDefaultsFilter(logging.Filter):
    """Give records logged without the auth adapter placeholder context."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key in _AuthLoggerAdapter.extra_keys:
            if getattr(record, key, None) is None:
                setattr(record, key, "-")
        return True


def get_auth_logger(
    *,
    base_logger_name: str = "atweet.auth",
    instance_id: str | None = None,
    role: str | None = None,
    correlation_id: str | None = None,
) -> logging.LoggerAdapter:
    """Return a LoggerAdapter pre-filled with auth context."""
    logger = logging.getLogger(base_logger_name)
    return _AuthLoggerAdapter(
        logger,
        {
            "instance_id": instance_id,
            "role": role,
            "correlation_id": correlation_id,
        },
    )


def configure_logging(
    log_dir: str | Path | None = None,
    *,
    level: int = logging.INFO,
    backup_count: int = 30,
) -> logging.Logger:
    """Attach console and (optionally) daily file handlers to the ``atweet`` logger.

    The file handler rotates at midnight, so each day gets its own
    ``atweet.log.YYYY-MM-DD`` file.  Calling this twice does not duplicate
    handlers.
    """
    root = logging.getLogger("atweet")
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if not any(getattr(h, "_atweet", False) for h in root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        console.addFilter(_ContextDefaultsFilter())
        console._atweet = True  # type: ignore[attr-defined]
        root.addHandler(console)

    if log_dir is not None:
        path = Path(log_dir).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        target = str((path / "atweet.log").resolve())
        if not any(
            isinstance(h, TimedRotatingFileHandler) and h.baseFilename == target
            for h in root.handlers
        ):
            file_handler = TimedRotatingFileHandler(
                target, when="midnight", backupCount=backup_count, encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            file_handler.addFilter(_ContextDefaultsFilter())
            root.addHandler(file_handler)
    return root
