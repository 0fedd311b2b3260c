"""
Structured logging system for prfinder.

One logger per process writes human-readable lines to the console and a
daily file, with keyword context appended as JSON. It also keeps the run
metrics (provider health, oracle usage, deep-fetch cost, outcomes per tier)
that the CLI prints once a batch finishes. Safe to share between worker
threads.
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Optional
from datetime import datetime
import json

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=DATE_FORMAT))
    return handler


def empty_metrics() -> dict:
    return {
        "searches_attempted": 0,
        "searches_failed": 0,
        "oracle_calls": 0,
        "oracle_failures": 0,
        "deep_fetches": 0,
        "cache_hits": 0,
        "errors_by_type": {},
        "source_success_rate": {},
        "outcomes_by_tier": {},
    }


class StructuredLogger:
    """
    Wraps a stdlib logger and the run metrics.

    Args:
        name: Logger name
        level: Console level (DEBUG, INFO, WARNING, ERROR, CRITICAL). The
            file always receives DEBUG.
        log_dir: Directory for ``prfinder_YYYYMMDD.log`` (default: logs/)
        enable_file: Write logs to file
        enable_console: Output logs to stdout
    """

    def __init__(
        self,
        name: str = "prfinder",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        console_level = getattr(logging, level.upper())
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if enable_file else console_level)
        self.logger.handlers.clear()
        self.logger.propagate = False
        self._lock = threading.Lock()
        self.metrics = empty_metrics()

        if enable_console:
            self.logger.addHandler(_handler(logging.StreamHandler(sys.stdout), console_level, CONSOLE_FORMAT))
        if enable_file:
            log_dir = Path(log_dir or "logs")
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file = log_dir / f"prfinder_{datetime.now():%Y%m%d}.log"
            self.logger.addHandler(
                _handler(logging.FileHandler(log_file, encoding="utf-8"), logging.DEBUG, FILE_FORMAT)
            )

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_search_attempt(self, source: str):
        with self._lock:
            self.metrics["searches_attempted"] += 1
            stats = self.metrics["source_success_rate"].setdefault(
                source, {"attempts": 0, "successes": 0}
            )
            stats["attempts"] += 1

    def record_search_success(self, source: str):
        with self._lock:
            stats = self.metrics["source_success_rate"].get(source)
            if stats is not None:
                stats["successes"] += 1

    def record_search_failure(self, source: str, error_type: str):
        with self._lock:
            self.metrics["searches_failed"] += 1
            self._count_error(error_type)

    def record_error(self, error_type: str):
        """Count an error that is not itself a failed search."""
        with self._lock:
            self._count_error(error_type)

    def _count_error(self, error_type: str):
        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def record_oracle_call(self, failed: bool = False):
        with self._lock:
            self.metrics["oracle_calls"] += 1
            if failed:
                self.metrics["oracle_failures"] += 1

    def record_deep_fetch(self, cache_hit: bool = False):
        with self._lock:
            if cache_hit:
                self.metrics["cache_hits"] += 1
            else:
                self.metrics["deep_fetches"] += 1

    def record_outcome(self, tier: str):
        with self._lock:
            tiers = self.metrics["outcomes_by_tier"]
            tiers[tier] = tiers.get(tier, 0) + 1

    def get_metrics(self) -> dict:
        """Return a snapshot of current metrics with success rates filled in."""
        with self._lock:
            snapshot = json.loads(json.dumps(self.metrics))
        for stats in snapshot["source_success_rate"].values():
            if stats["attempts"]:
                stats["success_rate"] = round(stats["successes"] / stats["attempts"], 3)
        return snapshot

    def log_metrics_summary(self):
        m = self.get_metrics()
        attempted = m["searches_attempted"]
        succeeded = attempted - m["searches_failed"]
        rate = round(succeeded / attempted * 100, 1) if attempted else 0

        self.info("=== Resolution Session Metrics ===")
        self.info(f"Searches: {succeeded}/{attempted} ({rate}% success)")
        self.info(f"Oracle calls: {m['oracle_calls']} ({m['oracle_failures']} failed)")
        self.info(f"Deep fetches: {m['deep_fetches']} (cache hits: {m['cache_hits']})")

        for source, stats in m["source_success_rate"].items():
            self.info(
                f"  source {source}: {stats['successes']}/{stats['attempts']} "
                f"({stats.get('success_rate', 0) * 100:.1f}%)"
            )
        for tier, count in m["outcomes_by_tier"].items():
            self.info(f"  tier {tier}: {count}")
        for error_type, count in m["errors_by_type"].items():
            self.info(f"  error {error_type}: {count}")


_global_logger: Optional[StructuredLogger] = None
_global_lock = threading.Lock()


def get_logger(name: str = "prfinder", level: str = "INFO", **kwargs) -> StructuredLogger:
    """Return the process logger, creating it on first use."""
    global _global_logger
    with _global_lock:
        if _global_logger is None:
            _global_logger = StructuredLogger(name=name, level=level, **kwargs)
        return _global_logger


def reset_logger():
    global _global_logger
    with _global_lock:
        _global_logger = None
