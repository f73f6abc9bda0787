"""
Structured logging system for the job tracker.

Provides centralized logging with console and file outputs, log levels,
and in-process metrics on job operations and status transitions.
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks operation counts, failures and status transitions.
    """

    def __init__(
        self,
        name: str = "jobtracker",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        level = level.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level {level!r}; expected one of: {', '.join(LOG_LEVELS)}")

        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level))
        self.logger.handlers.clear()
        self.logger.propagate = False

        self.metrics = {
            "operations": {},
            "failures": {},
            "errors_by_type": {},
            "status_transitions": {},
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"jobtracker_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)
            # File handler captures DEBUG regardless of the console level
            self.logger.setLevel(logging.DEBUG)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_operation(self, operation: str):
        """Count one call of a service operation."""
        ops = self.metrics["operations"]
        ops[operation] = ops.get(operation, 0) + 1

    def record_failure(self, operation: str, error_type: str):
        """Record a failed service operation."""
        failures = self.metrics["failures"]
        failures[operation] = failures.get(operation, 0) + 1

        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def record_status_transition(self, old: str, new: str):
        """Record a status change appended to a job's history."""
        key = f"{old} -> {new}"
        transitions = self.metrics["status_transitions"]
        transitions[key] = transitions.get(key, 0) + 1

    def get_metrics(self) -> dict:
        """Return current metrics with per-operation failure rates."""
        metrics_copy = {k: dict(v) for k, v in self.metrics.items()}
        rates = {}
        for operation, calls in metrics_copy["operations"].items():
            if calls > 0:
                failed = metrics_copy["failures"].get(operation, 0)
                rates[operation] = round(failed / calls, 3)
        metrics_copy["failure_rate"] = rates
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        total_ops = sum(metrics["operations"].values())
        total_failed = sum(metrics["failures"].values())

        self.info("=== Job Tracker Session Metrics ===")
        self.info(f"Operations: {total_ops} ({total_failed} failed)")

        for operation, calls in sorted(metrics["operations"].items()):
            rate = metrics["failure_rate"].get(operation, 0) * 100
            self.info(f"  {operation}: {calls} calls ({rate:.1f}% failed)")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")

        if metrics["status_transitions"]:
            self.info("Status Transitions:")
            for transition, count in metrics["status_transitions"].items():
                self.info(f"  {transition}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "jobtracker",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
