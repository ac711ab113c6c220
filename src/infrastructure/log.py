"""
Logging setup - **loguru** for every module.

Modules only do ``from loguru import logger``. Entry points call
``setup_logging()`` once::

    from infrastructure.log import setup_logging
    setup_logging()                                  # INFO to stderr
    setup_logging("DEBUG")                           # classifier scores, fan-out timings
    setup_logging(audit_file="logs/audit.jsonl")     # delegation events as JSON lines

Records bound with ``audit=True`` (see ``LoguruAuditSink``) can be split
into their own serialized file so delegation history survives without a
database.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from loguru import logger

_CONSOLE_FMT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Chatty client libraries kept at WARNING unless DEBUG is requested
_NOISY_LIBRARIES = ("httpx", "httpcore", "openai", "langfuse", "urllib3")


def _is_audit(record) -> bool:
    return bool(record["extra"].get("audit"))


class _InterceptHandler(logging.Handler):
    """Forward stdlib ``logging`` records (SQLAlchemy, LangChain, httpx) to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # caller depth, skipping logging's own frames
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(
    level: str = "INFO",
    *,
    intercept_stdlib: bool = True,
    log_file: Optional[str] = None,
    audit_file: Optional[str] = None,
) -> None:
    """
    Configure loguru for this process.

    Args:
        level: Minimum level for the console (and ``log_file``).
        intercept_stdlib: Send stdlib ``logging`` through loguru.
        log_file: Rotating plain-text log of everything.
        audit_file: JSON-lines file receiving only audit records; when set,
            audit records are left out of the console.
    """
    level = level.upper()
    logger.remove()

    console_filter = (lambda r: not _is_audit(r)) if audit_file else None
    logger.add(
        sys.stderr,
        format=_CONSOLE_FMT,
        level=level,
        filter=console_filter,
        colorize=True,
        backtrace=True,
        diagnose=False,
    )

    if log_file:
        logger.add(log_file, format=_CONSOLE_FMT, level=level,
                   rotation="10 MB", retention="7 days", compression="gz")

    if audit_file:
        logger.add(audit_file, level="INFO", filter=_is_audit, serialize=True,
                   rotation="50 MB", enqueue=True)

    if intercept_stdlib:
        logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
        if level != "DEBUG":
            for name in _NOISY_LIBRARIES:
                logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug("Logging ready (level={}, audit_file={})", level, audit_file)
