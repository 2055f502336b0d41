"""
Logging for every strikewarden component.

Each component asks for its own named logger through :func:`get_logger`. Named
loggers do not propagate; each one carries two handlers:

* a console handler that prints through prompt_toolkit, coloured by level when
  stderr is a terminal, at the level named by ``STRIKEWARDEN_LOG_LEVEL``;
* a rotating file handler at DEBUG level that writes to one file per process
  under ``STRIKEWARDEN_LOGS_DIR`` (``logs/`` next to the project by default).

Messages are prefixed with a bracketed component tag, for example
``logger.info("[LEDGER] Strike recorded for %s", user_id)``.
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Iterable, Optional

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H-%M-%S"

MAX_LOG_BYTES = 1_000_000
LOG_BACKUP_COUNT = 5

LEVEL_COLORS: Dict[int, str] = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}
RESET = "\033[0m"

NOISY_LOGGERS = ("aiosqlite", "asyncio")

_session_log_file: Optional[Path] = None


class ColorFormatter(logging.Formatter):
    """Formatter that colours the whole line by record level."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        if color is None:
            return line
        return f"{color}{line}{RESET}"


class PromptToolkitHandler(logging.Handler):
    """
    Console handler backed by ``print_formatted_text``.

    Writing through prompt_toolkit keeps log output from corrupting an active
    prompt when the CLI runs interactively.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print_formatted_text(ANSI(self.format(record)))
        except Exception:
            self.handleError(record)


def should_use_color() -> bool:
    """True when stderr is a terminal."""
    try:
        return sys.stderr.isatty()
    except Exception:
        return False


def resolve_log_level() -> int:
    """Console level from ``STRIKEWARDEN_LOG_LEVEL``; unknown names fall back to INFO."""
    name = os.getenv("STRIKEWARDEN_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def logs_directory() -> Path:
    configured = os.getenv("STRIKEWARDEN_LOGS_DIR")
    directory = Path(configured) if configured else Path(__file__).resolve().parents[3] / "logs"
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def get_log_filepath() -> Path:
    """
    Path of this process's log file.

    Chosen on the first call as ``<logs>/<start time>.log`` and reused by every
    logger afterwards.
    """
    global _session_log_file
    if _session_log_file is None:
        _session_log_file = logs_directory() / f"{datetime.now().strftime(DATE_FORMAT)}.log"
    return _session_log_file


def _console_handler() -> logging.Handler:
    formatter_cls = ColorFormatter if should_use_color() else logging.Formatter
    handler = PromptToolkitHandler()
    handler.setFormatter(formatter_cls(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.setLevel(resolve_log_level())
    return handler


def _file_handler() -> logging.Handler:
    handler = RotatingFileHandler(
        get_log_filepath(), maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.setLevel(logging.DEBUG)
    return handler


def get_logger(name: str) -> logging.Logger:
    """
    Return the component logger ``name``, attaching handlers on first use.

    Args:
        name: Component name, e.g. ``"strike_ledger"``.

    Returns:
        logging.Logger: A non-propagating logger with console and file handlers.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(logging.DEBUG)
        logger.propagate = False
        logger.addHandler(_console_handler())
        logger.addHandler(_file_handler())
    return logger


def silence_loggers(names: Iterable[str], level: int = logging.ERROR) -> None:
    """Raise the threshold of third-party loggers and detach them from the root."""
    for name in names:
        noisy = logging.getLogger(name)
        noisy.setLevel(level)
        noisy.propagate = False
        noisy.handlers.clear()


def handle_exception(exc_type, exc_value, exc_traceback) -> None:
    """
    ``sys.excepthook`` that routes uncaught exceptions to the main logger.

    KeyboardInterrupt goes to the default hook so Ctrl+C exits quietly.
    """
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return
    get_logger("main").critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))


silence_loggers(NOISY_LOGGERS)
