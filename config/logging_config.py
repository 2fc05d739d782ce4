"""Logging setup: rotating application log, action audit log, optional console."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

APP_LOG = "bookflow.log"
ACTION_LOG = "workflow_actions.log"
ACTION_LOGGER = "workflow.controller"

# Third-party loggers that flood INFO with telemetry and HTTP chatter
NOISY_LOGGERS = ("chromadb", "httpx", "urllib3", "posthog")

_MAX_BYTES = 10 * 1024 * 1024
_BACKUPS = 5


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(str(path), maxBytes=_MAX_BYTES, backupCount=_BACKUPS, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _reset_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str | Path] = None,
    console_enabled: bool = True,
) -> None:
    """Configure application-wide logging.

    Every record goes to ``bookflow.log``. Records from the workflow
    controller are additionally written to ``workflow_actions.log`` at DEBUG,
    so each action a book went through can be replayed from one file.
    Safe to call repeatedly; previously installed handlers are replaced.

    Args:
        level: Level for the root logger and the application log.
        log_dir: Directory for log files. Defaults to ./data/logs.
        console_enabled: Also log to stderr (the CLI enables this with --verbose).
    """
    log_dir = Path(log_dir or "./data/logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    _reset_handlers(root_logger)

    if console_enabled:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)
    root_logger.addHandler(_rotating_handler(log_dir / APP_LOG, level, formatter))

    action_logger = logging.getLogger(ACTION_LOGGER)
    _reset_handlers(action_logger)
    action_logger.addHandler(_rotating_handler(log_dir / ACTION_LOG, logging.DEBUG, formatter))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.getLogger(__name__).debug("Logging initialized: level=%s, dir=%s", level, log_dir)
