"""
Centralized logging configuration for StoryPrint.

Every log line carries the name of the thread that wrote it. Order tasks
run on threads named after the order (Order-xxxxxxxx) and the vendor sweep
runs on a thread named Reconcile, so one order's history can be followed
across webhook, task and sweep threads.

Log Format:
    2026-03-02 10:15:30 [INFO    ] [MainThread] storyprint.app - Starting application
    2026-03-02 10:15:31 [INFO    ] [Order-a1b2c3d4] storyprint.order.a1b2c3d4 - Interior composed
    2026-03-02 11:00:00 [INFO    ] [Reconcile] storyprint.services.reconciliation_service - Sweep complete

Usage:
    from logging_config import setup_logging, get_logger

    setup_logging(log_level=logging.INFO, enable_file_logging=True)

    logger = get_logger(__name__)
    order_logger = get_order_logger(order_id)
"""

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

APP_NAMESPACE = "storyprint"


# =============================================================================
# THREAD CONTEXT FILTER
# =============================================================================

class ThreadContextFilter(logging.Filter):
    """
    Adds thread_name and thread_id to every record.

    The format string below relies on thread_name being present.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        current_thread = threading.current_thread()
        record.thread_name = current_thread.name
        record.thread_id = threading.get_ident()
        return True


# =============================================================================
# LOGGING SETUP
# =============================================================================

def _rotating_handler(path: Path, level: int, formatter: logging.Formatter,
                      thread_filter: logging.Filter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        filename=path,
        maxBytes=10 * 1024 * 1024,  # 10 MB per file
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(thread_filter)
    return handler


def setup_logging(
    app_name: str = APP_NAMESPACE,
    log_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = True,
) -> logging.Logger:
    """
    Configure application logging with thread context.

    Sets up a console handler, and optionally a rotating application log
    plus a separate rotating error log (ERROR and above).

    Args:
        app_name: Name of the application root logger
        log_level: Minimum log level
        log_dir: Directory for log files (default: ./logs next to this file)
        enable_file_logging: Whether to write log files

    Returns:
        Configured application root logger
    """
    logger = logging.getLogger(app_name)
    logger.setLevel(log_level)
    logger.propagate = False

    # Allows re-configuration (app factory may run more than once in tests)
    logger.handlers.clear()

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)-8s] [%(thread_name)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    thread_filter = ThreadContextFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(thread_filter)
    logger.addHandler(console_handler)

    if enable_file_logging:
        if log_dir is None:
            log_dir = Path(__file__).parent / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        app_log_file = log_dir / f"{app_name}.log"
        logger.addHandler(_rotating_handler(app_log_file, log_level, formatter, thread_filter))
        logger.addHandler(_rotating_handler(
            log_dir / f"{app_name}_error.log", logging.ERROR, formatter, thread_filter
        ))

        logger.info(f"File logging enabled: {app_log_file}")

    logger.info(f"Logging configured at level {logging.getLevelName(log_level)}")
    return logger


# =============================================================================
# LOGGER FACTORY FUNCTIONS
# =============================================================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger under the application namespace.

    Example:
        get_logger("services.order_orchestrator")
        # -> "storyprint.services.order_orchestrator"
    """
    if not name.startswith(APP_NAMESPACE):
        name = f"{APP_NAMESPACE}.{name}"
    return logging.getLogger(name)


def get_order_logger(order_id: str) -> logging.Logger:
    """
    Get a logger for one print order.

    Only the first 8 characters of the id are used in the logger name,
    which is enough to grep one order's history out of the log.
    """
    short_id = order_id[:8] if len(order_id) >= 8 else order_id
    return logging.getLogger(f"{APP_NAMESPACE}.order.{short_id}")


def set_thread_name(name: str) -> None:
    """
    Set the name of the current thread (shown as [thread_name] in logs).

    Example:
        set_thread_name("Reconcile")
        set_thread_name(f"Order-{order_id[:8]}")
    """
    threading.current_thread().name = name
