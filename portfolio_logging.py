"""
portfolio_logging.py

Shared logging and audit helpers for the statement parser, the
portfolio state transitions and the command line runner.  Every module
in the project logs through a child of the ``asset_palette`` logger,
which is configured exactly once here: a console handler always, plus a
file handler under ``LOG_DIR`` unless ``LOG_TO_FILE`` is ``false``.

Audit events are file-level milestones (encoding chosen, header
resolved, rows extracted, reports written).  They are recorded in a
process-wide list of ``(timestamp, message)`` tuples so the runner can
print them with ``--show-audit``.  Set ``AUDIT=false`` to disable them.
"""

###############################################################################
# Metadata
#
# @file        portfolio_logging.py
# @brief       Logger configuration and audit trail
# @created     2025-10-07
# @modified    2025-11-02
###############################################################################

from __future__ import annotations

import datetime as _dt
import logging
import os
from typing import List, Tuple

LOGGER_NAME = "asset_palette"
LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_audit_log: List[Tuple[str, str]] = []


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _setup_file_logging(logger: logging.Logger, formatter: logging.Formatter) -> None:
    """Attach a file handler writing to ``LOG_DIR/app.log``.

    On each fresh run an existing ``app.log`` is archived with a
    timestamp suffix.  Any filesystem problem leaves console logging in
    place and is otherwise ignored.
    """
    log_dir = os.getenv("LOG_DIR", "logs")
    try:
        os.makedirs(log_dir, exist_ok=True)
    except OSError:
        return
    log_file = os.path.join(log_dir, "app.log")
    try:
        if os.path.exists(log_file):
            ts = _dt.datetime.now().strftime("%Y%m%d_%H%M%S")
            os.rename(log_file, os.path.join(log_dir, f"app_{ts}.log"))
    except OSError:
        pass
    try:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError:
        return
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def configure_logging(debug: bool | None = None) -> logging.Logger:
    """Configure the project logger once and return it.

    Calling this again only adjusts the level, so the runner can switch
    on ``--debug`` after the modules have been imported.

    Args:
        debug: Force DEBUG (True) or INFO (False).  ``None`` reads the
            ``DEBUG`` environment variable.

    Returns:
        The ``asset_palette`` logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if debug is None:
        debug = _env_flag("DEBUG", "false")
    if not logger.handlers:
        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)
        if _env_flag("LOG_TO_FILE", "true"):
            _setup_file_logging(logger, formatter)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child of the project logger, configuring it if needed."""
    configure_logging_once()
    short = name.rsplit(".", 1)[-1]
    return logging.getLogger(f"{LOGGER_NAME}.{short}")


def configure_logging_once() -> None:
    if not logging.getLogger(LOGGER_NAME).handlers:
        configure_logging()


def audit(message: str) -> None:
    """Record an audit event with the current timestamp.

    The message is appended to the global audit log and forwarded to
    the project logger at INFO level.

    Args:
        message: Human-readable description of the event to record.
    """
    if not _env_flag("AUDIT", "true"):
        return
    timestamp = _dt.datetime.now().isoformat(timespec="seconds")
    _audit_log.append((timestamp, message))
    logging.getLogger(LOGGER_NAME).info(f"AUDIT: {message}")


def get_audit_log() -> List[Tuple[str, str]]:
    """Return a copy of the audit log as (timestamp, message) tuples."""
    return list(_audit_log)


def clear_audit_log() -> None:
    _audit_log.clear()


__all__ = [
    "configure_logging",
    "get_logger",
    "audit",
    "get_audit_log",
    "clear_audit_log",
]
