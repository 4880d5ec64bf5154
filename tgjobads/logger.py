"""
Structured logging system for tgjobads.

Provides centralized logging with console and file outputs, plus
metrics tracking used to report a per-status summary at the end of a
batch run.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks per-stage status counts and error types for batch summaries.
    """

    def __init__(
        self,
        name: str = "tgjobads",
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
            log_dir: Directory for log files (default: $TGJOBADS_LOG_DIR or logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers

        # Metrics tracking
        self.metrics = {
            "external_calls": 0,
            "ads_vectorized": 0,
            "stack_events": {},
            "status_by_stage": {},
            "errors_by_type": {},
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path(os.getenv("TGJOBADS_LOG_DIR", "logs"))
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"tgjobads_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def set_level(self, level: str):
        """Change the logger and console level; the file keeps DEBUG."""
        value = getattr(logging, level.upper())
        self.logger.setLevel(value)
        for handler in self.logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(value)

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
            message = f"{message} | Context: {json.dumps(context, ensure_ascii=False, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_external_call(self):
        """Increment external service call counter."""
        self.metrics["external_calls"] += 1

    def record_vectorized(self, count: int = 1):
        """Count ads whose signature was (re)computed."""
        self.metrics["ads_vectorized"] += count

    def record_status(self, stage: str, status: str, count: int = 1):
        """Record records reaching a status within a pipeline stage."""
        stage_stats = self.metrics["status_by_stage"].setdefault(stage, {})
        stage_stats[status] = stage_stats.get(status, 0) + count

    def record_stack_event(self, event: str, count: int = 1):
        """Record clustering events (created, merged, transferred, joined)."""
        events = self.metrics["stack_events"]
        events[event] = events.get(event, 0) + count

    def record_error(self, error_type: str):
        """Record an error by type."""
        if error_type not in self.metrics["errors_by_type"]:
            self.metrics["errors_by_type"][error_type] = 0
        self.metrics["errors_by_type"][error_type] += 1

    def get_metrics(self) -> dict:
        """Return current metrics with per-stage totals."""
        metrics_copy = self.metrics.copy()
        for stage, stats in metrics_copy["status_by_stage"].items():
            stats["total"] = sum(v for k, v in stats.items() if k != "total")

        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Batch Run Summary ===")
        self.info(f"Ads vectorized: {metrics['ads_vectorized']}")
        self.info(f"External calls: {metrics['external_calls']}")

        if metrics["stack_events"]:
            self.info("Stack events:")
            for event, count in metrics["stack_events"].items():
                self.info(f"  {event}: {count}")

        if metrics["status_by_stage"]:
            self.info("Status by stage:")
            for stage, stats in metrics["status_by_stage"].items():
                parts = ", ".join(f"{k}={v}" for k, v in stats.items() if k != "total")
                self.info(f"  {stage}: {parts} (total {stats['total']})")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "tgjobads",
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
