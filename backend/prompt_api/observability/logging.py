"""Logging setup: request-scoped context fields and the access log file."""

from __future__ import annotations

import logging
from contextvars import ContextVar, Token
from pathlib import Path

from prompt_api.config.settings import Settings

ACCESS_LOGGER_NAME = "prompt_api.access"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [request_id=%(request_id)s] %(message)s"

_REQUEST_ID: ContextVar[str] = ContextVar("request_id", default="-")


def set_request_id(request_id: str) -> Token[str]:
    """Bind a request id to the current context and return the reset token."""
    return _REQUEST_ID.set(request_id)


def reset_request_id(token: Token[str]) -> None:
    _REQUEST_ID.reset(token)


def get_request_id() -> str:
    return _REQUEST_ID.get()


def install_log_context() -> None:
    """Install a LogRecord factory that injects the request id."""
    if getattr(install_log_context, "_installed", False):
        return

    old_factory = logging.getLogRecordFactory()

    def record_factory(*args, **kwargs):
        record = old_factory(*args, **kwargs)
        record.request_id = _REQUEST_ID.get()
        return record

    logging.setLogRecordFactory(record_factory)
    install_log_context._installed = True  # type: ignore[attr-defined]


def access_log_path(settings: Settings) -> Path:
    return Path(settings.log_dir) / settings.access_log_filename


def configure_access_log(settings: Settings) -> logging.Logger:
    """Attach an append-mode file handler for the access log.

    The log directory is created if it does not exist. Calling this again
    with the same path keeps the existing handler; a different path replaces it.
    """
    path = access_log_path(settings)
    path.parent.mkdir(parents=True, exist_ok=True)

    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)
    access_logger.setLevel(logging.INFO)
    access_logger.propagate = False

    resolved = str(path.resolve())
    for handler in list(access_logger.handlers):
        if not isinstance(handler, logging.FileHandler):
            continue
        if handler.baseFilename == resolved:
            return access_logger
        access_logger.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    access_logger.addHandler(handler)
    return access_logger


def configure_logging(settings: Settings) -> None:
    """Initialize root logging and the access log once per process."""
    install_log_context()

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    if not any(getattr(h, "_prompt_api", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._prompt_api = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    configure_access_log(settings)
    logging.getLogger(__name__).debug("Logging configured at level %s", settings.log_level.upper())
