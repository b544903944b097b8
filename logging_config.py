"""
Structured logging configuration for commit-search.

Provides configurable logging with environment variable control.
Log level can be set via COMMIT_SEARCH_LOG_LEVEL environment variable.
"""

from __future__ import annotations

import logging
import os
import sys
import time
from contextlib import contextmanager
from datetime import datetime
from typing import TextIO

# Default log level from environment or INFO
LOG_LEVEL = os.environ.get("COMMIT_SEARCH_LOG_LEVEL", "INFO").upper()

# Log format with timestamp, module, level, and message
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Track if logging has been initialized
_initialized = False


@contextmanager
def log_timing(operation_name: str, logger: logging.Logger):
    """Context manager to log operation timing.

    Args:
        operation_name: Name of the operation being timed.
        logger: Logger instance to use for logging.

    Example:
        with log_timing("Submitting batch", logger):
            # ... write code ...
    """
    start = time.perf_counter()
    logger.debug(f"{operation_name} started")
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        logger.info(f"{operation_name} completed in {elapsed:.2f}s")


def setup_logging(level: str = LOG_LEVEL, stream: TextIO = sys.stderr) -> logging.Logger:
    """Configure structured logging for commit-search.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        stream: Output stream for logs (default: stderr)

    Returns:
        Configured root logger for commit_search
    """
    global _initialized

    logger = logging.getLogger("commit_search")

    # Avoid adding duplicate handlers
    if _initialized and logger.handlers:
        return logger

    level_value = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(level_value)

    handler = logging.StreamHandler(stream)
    handler.setLevel(level_value)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handler.setFormatter(formatter)

    logger.handlers.clear()
    logger.addHandler(handler)

    # Prevent propagation to root logger
    logger.propagate = False

    _initialized = True
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific module.

    Args:
        name: Module name (e.g., "indexer", "db", "queries")

    Returns:
        Logger instance for the module
    """
    if not _initialized:
        setup_logging()

    return logging.getLogger(f"commit_search.{name}")


class OperationLogger:
    """Context manager for logging public operations with timing.

    Usage:
        with OperationLogger("search", query="fix", min_score=0.5) as log:
            records = run_search()
            log.set_result_count(len(records))
    """

    def __init__(self, operation_name: str, **params):
        self.operation_name = operation_name
        self.params = params
        self.logger = get_logger("operations")
        self.start_time: datetime | None = None
        self.result_count: int | None = None
        self.error: str | None = None

    def __enter__(self) -> OperationLogger:
        self.start_time = datetime.now()
        safe_params = {k: v for k, v in self.params.items() if v is not None}
        self.logger.info(f"Operation started: {self.operation_name} params={safe_params}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = self.elapsed_ms()

        if exc_type is not None:
            self.error = str(exc_val)
            self.logger.error(
                f"Operation failed: {self.operation_name} error={self.error} duration={duration_ms:.1f}ms"
            )
        else:
            count_str = f" count={self.result_count}" if self.result_count is not None else ""
            self.logger.info(
                f"Operation completed: {self.operation_name}{count_str} duration={duration_ms:.1f}ms"
            )

        return False  # Don't suppress exceptions

    def elapsed_ms(self) -> float:
        """Milliseconds since the operation started."""
        if self.start_time is None:
            return 0.0
        return (datetime.now() - self.start_time).total_seconds() * 1000

    def set_result_count(self, count: int) -> None:
        """Set the number of results returned by the operation."""
        self.result_count = count


class IndexingLogger:
    """Logger for commit graph indexing with progress tracking."""

    def __init__(self, repo_label: str):
        self.repo_label = repo_label
        self.logger = get_logger("indexing")
        self.branches_walked = 0
        self.commits_indexed = 0
        self.commits_skipped = 0
        self.start_time: datetime | None = None

    def start(self, index_path: str) -> None:
        """Log the start of an indexing run."""
        self.start_time = datetime.now()
        self.logger.info(f"Starting commit indexing: repo={self.repo_label} index={index_path}")

    def branch_walked(self, name: str, new_commits: int) -> None:
        """Log a finished walk from one branch tip."""
        self.branches_walked += 1
        self.logger.debug(f"Walked branch {name}: {new_commits} new commits")

    def commit_indexed(self, commit_id: str) -> None:
        self.commits_indexed += 1
        if self.commits_indexed % 1000 == 0:
            self.logger.debug(f"Indexed {self.commits_indexed} commits so far (last {commit_id[:7]})")

    def commit_skipped(self, commit_id: str, reason: str) -> None:
        """Log a commit whose record could not be written."""
        self.commits_skipped += 1
        self.logger.warning(f"Skipped commit {commit_id}: {reason}")

    def complete(self) -> None:
        """Log completion of indexing."""
        duration_ms = (datetime.now() - self.start_time).total_seconds() * 1000 if self.start_time else 0
        self.logger.info(
            f"Completed commit indexing: repo={self.repo_label} "
            f"branches={self.branches_walked} commits={self.commits_indexed} "
            f"skipped={self.commits_skipped} duration={duration_ms:.1f}ms"
        )
