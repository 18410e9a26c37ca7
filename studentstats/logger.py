"""
Structured logging system for studentstats.

Provides centralized logging with console and file outputs, log levels,
and metrics tracking for monitoring the health of the aggregation engine.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for event routing, summary deltas and rebuilds.
    """

    def __init__(
        self,
        name: str = "studentstats",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = False,
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
        self.logger = logging.getLogger(name)
        self.reset_metrics()
        self.configure(
            level=level,
            log_dir=log_dir,
            enable_file=enable_file,
            enable_console=enable_console,
        )

    def configure(
        self,
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = False,
        enable_console: bool = True,
    ):
        """Replace handlers in place so module-level references stay valid."""
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers
        self.logger.propagate = False

        # Console handler
        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        # File handler
        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"studentstats_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

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
        """Internal logging method with context."""
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def reset_metrics(self):
        """Zero all counters."""
        self.metrics = {
            "events_by_kind": {},
            "deltas_applied": 0,
            "deltas_failed": 0,
            "projection_recomputes": 0,
            "projection_failures": 0,
            "reconciliations": 0,
            "errors_by_type": {},
        }

    def record_event(self, kind: str):
        """Record a routed mutation event."""
        by_kind = self.metrics["events_by_kind"]
        by_kind[kind] = by_kind.get(kind, 0) + 1

    def record_delta(self, success: bool):
        """Record the outcome of a summary delta."""
        if success:
            self.metrics["deltas_applied"] += 1
        else:
            self.metrics["deltas_failed"] += 1

    def record_projection(self, success: bool):
        """Record the outcome of a waiting-list recompute."""
        if success:
            self.metrics["projection_recomputes"] += 1
        else:
            self.metrics["projection_failures"] += 1

    def record_reconciliation(self):
        """Record a completed full rebuild."""
        self.metrics["reconciliations"] += 1

    def record_error(self, error_type: str):
        """Track an error by type."""
        if error_type not in self.metrics["errors_by_type"]:
            self.metrics["errors_by_type"][error_type] = 0
        self.metrics["errors_by_type"][error_type] += 1

    def get_metrics(self) -> dict:
        """Return current metrics."""
        metrics_copy = self.metrics.copy()
        attempts = metrics_copy["deltas_applied"] + metrics_copy["deltas_failed"]
        if attempts > 0:
            metrics_copy["delta_success_rate"] = round(
                metrics_copy["deltas_applied"] / attempts, 3
            )
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        total_events = sum(metrics["events_by_kind"].values())
        applied = metrics["deltas_applied"]
        attempts = applied + metrics["deltas_failed"]
        overall_rate = 0
        if attempts > 0:
            overall_rate = round(applied / attempts * 100, 1)

        self.info("=== Aggregation Session Metrics ===")
        self.info(f"Events routed: {total_events}")
        self.info(f"Summary deltas: {applied}/{attempts} ({overall_rate}% success)")
        self.info(
            f"Waiting list recomputes: {metrics['projection_recomputes']} "
            f"(failed: {metrics['projection_failures']})"
        )
        self.info(f"Reconciliations: {metrics['reconciliations']}")

        if metrics["events_by_kind"]:
            self.info("Events by kind:")
            for kind, count in metrics["events_by_kind"].items():
                self.info(f"  {kind}: {count}")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "studentstats",
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
