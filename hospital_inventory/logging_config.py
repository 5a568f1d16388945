"""Centralised logging setup shared by the dashboard and the CLI jobs."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Third-party loggers that flood DEBUG output with connection chatter.
NOISY_LOGGERS = ("urllib3", "httpx", "multipart")


def _level_from_name(level_name: str | int | None) -> int:
    if isinstance(level_name, int):
        return level_name
    if not level_name:
        return logging.INFO
    return getattr(logging, str(level_name).upper(), logging.INFO)


def _has_file_handler(root_logger: logging.Logger, path: Path) -> bool:
    return any(
        isinstance(handler, logging.FileHandler)
        and getattr(handler, "baseFilename", None) == str(path.resolve())
        for handler in root_logger.handlers
    )


def configure_logging(level: str | int = "INFO", log_file: Optional[str] = None) -> None:
    """Configure root handlers for the web app or a command-line job.

    Calling it more than once only adjusts levels; handlers are never duplicated.
    """

    numeric_level = _level_from_name(level)
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers:
        handler.setLevel(numeric_level)

    formatter = logging.Formatter(DEFAULT_FORMAT)
    if not root_logger.handlers:
        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(numeric_level)
        stream_handler.setFormatter(formatter)
        root_logger.addHandler(stream_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        if not _has_file_handler(root_logger, path):
            file_handler = logging.FileHandler(path)
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
