"""structlog setup for HawkEye.

Every event carries ``app`` (bound once at startup) and ``component`` (the
name given to ``get_logger``). Scan runs add ``scan_category`` through
``scan_context`` so per-target events can be grouped by run.
"""

import logging
import os
import sys
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from typing import Iterator, Optional

import structlog

APP_NAME = "hawkeye"


def setup_logging(
    debug: bool = False,
    log_dir: Optional[str] = "logs",
    log_max_bytes: int = 10_000_000,
    log_backup_count: int = 5,
    app_name: str = APP_NAME,
) -> None:
    """Configure structlog and the stdlib root logger.

    structlog events go to stdout, JSON unless ``debug``. Library loggers
    (uvicorn, sqlalchemy) go through the root logger to stdout and, when
    ``log_dir`` is writable, to ``<log_dir>/<app_name>.log``.
    """
    log_level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer(sort_keys=True),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(app=app_name)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    if log_dir:
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                os.path.join(log_dir, f"{app_name}.log"),
                maxBytes=log_max_bytes,
                backupCount=log_backup_count,
                encoding="utf-8",
            )
        except OSError as e:
            structlog.get_logger().warning("log_file_unavailable", log_dir=log_dir, error=str(e))
        else:
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

    # SQL echo stays off unless debugging
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)


def get_logger(name: str) -> structlog.BoundLogger:
    """Named logger; ``name`` is emitted as ``component``."""
    return structlog.get_logger(component=name)


@contextmanager
def scan_context(category: str, **extra) -> Iterator[None]:
    """Bind ``scan_category`` (and ``extra``) to every event logged inside the block.

    Tasks started inside the block inherit the binding.
    """
    with structlog.contextvars.bound_contextvars(scan_category=category, **extra):
        yield
