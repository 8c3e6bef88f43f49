"""
Structured logging system for better log analysis and debugging.
Provides JSON-formatted logs with context and metadata.
"""

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any


class StructuredLogger:
    """
    Logger that outputs both human-readable and machine-parseable logs.

    Usage:
        logger = StructuredLogger("tubemp3")
        logger.info("job_completed",
                    job_id="9f2c0a1b3d4e5f60",
                    size_mb=7.4,
                    duration_s=12.8)
    """

    def __init__(
        self,
        name: str,
        log_dir: Path | None = None,
        enable_json: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize structured logger.

        Args:
            name: Logger name
            log_dir: Directory for JSON log files (None = disabled)
            enable_json: Enable JSON file logging
            enable_console: Enable console output
        """
        self.name = name
        self.log_dir = log_dir
        self.enable_json = enable_json and log_dir is not None
        self.enable_console = enable_console

        self._logger = logging.getLogger(name)

        self._json_file = None
        if self.enable_json:
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            json_log_path = log_dir / f"tubemp3_{timestamp}.jsonl"
            self._json_file = open(json_log_path, "a", encoding="utf-8")  # noqa: SIM115

        # Session context (added to all log entries)
        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
            "start_time": datetime.now().isoformat(),
        }

    def _format_message(self, event: str, **context) -> str:
        parts = [f"[{event}]"]
        for key, value in context.items():
            if key not in ("level", "timestamp"):
                parts.append(f"{key}={value}")
        return " ".join(parts)

    def _write_json(self, level: str, event: str, **context) -> None:
        if not self._json_file or self._json_file.closed:
            return

        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            **self._session_context,
            **context,
        }

        try:
            self._json_file.write(json.dumps(entry, default=str) + "\n")
            self._json_file.flush()
        except (OSError, TypeError, ValueError) as e:
            print(f"JSON logging failed: {e}", file=sys.stderr)

    def _emit(self, level: int, event: str, **context) -> None:
        if self.enable_console:
            self._logger.log(level, self._format_message(event, **context))
        if self.enable_json:
            self._write_json(logging.getLevelName(level), event, **context)

    def debug(self, event: str, **context) -> None:
        self._emit(logging.DEBUG, event, **context)

    def info(self, event: str, **context) -> None:
        self._emit(logging.INFO, event, **context)

    def warning(self, event: str, **context) -> None:
        self._emit(logging.WARNING, event, **context)

    def error(self, event: str, **context) -> None:
        self._emit(logging.ERROR, event, **context)

    def close(self) -> None:
        """Close JSON log file."""
        if self._json_file and not self._json_file.closed:
            self._json_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class JobLogger:
    """Specialized logger for job lifecycle events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def job_started(self, job_id: str, url: str):
        self.logger.info("job_started", job_id=job_id, url=url)

    def job_stage(self, job_id: str, stage: str, **context):
        self.logger.debug("job_stage", job_id=job_id, stage=stage, **context)

    def job_completed(
        self, job_id: str, title: str, size_bytes: int, duration_s: float
    ):
        self.logger.info(
            "job_completed",
            job_id=job_id,
            title=title,
            size_bytes=size_bytes,
            size_mb=round(size_bytes / (1024 * 1024), 2),
            duration_s=round(duration_s, 2),
        )

    def job_failed(self, job_id: str, stage: str, kind: str, error: str):
        self.logger.error(
            "job_failed", job_id=job_id, stage=stage, kind=kind, error=error
        )

    def job_cleaned_up(self, job_id: str, removed: int):
        self.logger.debug("job_cleaned_up", job_id=job_id, removed=removed)


class ServiceLogger:
    """Specialized logger for service lifecycle events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def service_started(
        self, host: str, port: int, temp_dir: str, max_concurrent_jobs: int
    ):
        self.logger.info(
            "service_started",
            host=host,
            port=port,
            temp_dir=temp_dir,
            max_concurrent_jobs=max_concurrent_jobs,
        )

    def service_stopped(self, jobs_completed: int, jobs_failed: int, uptime_s: float):
        self.logger.info(
            "service_stopped",
            jobs_completed=jobs_completed,
            jobs_failed=jobs_failed,
            uptime_s=round(uptime_s, 2),
        )


def create_structured_logger(
    log_dir: Path | None = None, enable_json: bool = False
) -> tuple[StructuredLogger, JobLogger, ServiceLogger]:
    """
    Create all structured loggers.

    Returns:
        Tuple of (base_logger, job_logger, service_logger)
    """
    base = StructuredLogger("tubemp3", log_dir=log_dir, enable_json=enable_json)
    return base, JobLogger(base), ServiceLogger(base)
