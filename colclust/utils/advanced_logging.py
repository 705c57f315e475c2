"""
Structured logging for colclust.

structlog renders every event either as one JSON object per line (the
default, for piping CLI runs into log collectors) or through the console
renderer. Events emitted while a run is active carry its `run_id`, so the
lines of one fit or dendrogram build can be grouped.
"""

import contextlib
import logging
import logging.handlers
import time
from pathlib import Path
from typing import Any, Iterator, Optional

import structlog
from structlog.types import EventDict, Processor

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 3


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    service_name: str = "colclust",
) -> None:
    """
    Route structlog through stdlib logging.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: "json" or "console"
        log_file: Also write to this rotating file when set
        service_name: Value of the `service` field on every event
    """
    level = getattr(logging, log_level.upper())

    # stderr only; stdout is reserved for command output
    logging.basicConfig(format="%(message)s", level=level)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
        )
        file_handler.setLevel(level)
        logging.root.addHandler(file_handler)

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_run_context(service_name),
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def add_run_context(service_name: str) -> Processor:
    """Processor stamping the service name and the active run ID."""

    def processor(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict["service"] = service_name
        run_id = LogContext.get_run_id()
        if run_id:
            event_dict.setdefault("run_id", run_id)
        return event_dict

    return processor


class LogContext:
    """The run ID of the clustering call in progress, if any."""

    _run_id: Optional[str] = None

    @classmethod
    def get_run_id(cls) -> Optional[str]:
        return cls._run_id

    @classmethod
    @contextlib.contextmanager
    def run_context(cls, run_id: str) -> Iterator[None]:
        """
        Tag events logged inside the block with `run_id`.

        Example:
            with LogContext.run_context("kmeans-1f2e3d4c"):
                engine.cluster(vectors, "kmeans")
        """
        previous_id = cls._run_id
        cls._run_id = run_id
        try:
            yield
        finally:
            cls._run_id = previous_id


def get_logger(name: str) -> structlog.BoundLogger:
    """Module logger; the run ID is added per event, not at creation."""
    return structlog.get_logger(name)


class PerformanceLogger:
    """
    Times a block and logs `operation_completed` or `operation_failed`.

    With `item_count` set, the completion event also reports throughput.
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[structlog.BoundLogger] = None,
        log_level: str = "info",
        item_count: Optional[int] = None,
        **extra_context: Any,
    ):
        self.operation = operation
        self.logger = logger or get_logger(__name__)
        self.log_level = log_level
        self.item_count = item_count
        self.extra_context = extra_context
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.perf_counter()
        self.logger.debug("operation_started", operation=self.operation, **self.extra_context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.end_time = time.perf_counter()
        duration = self.elapsed_time

        log_data = {
            "operation": self.operation,
            "duration_seconds": round(duration, 3),
            **self.extra_context,
        }
        if self.item_count and duration > 0:
            log_data["item_count"] = self.item_count
            log_data["items_per_second"] = round(self.item_count / duration, 2)

        if exc_type is not None:
            self.logger.error(
                "operation_failed",
                error=str(exc_val),
                error_type=exc_type.__name__,
                **log_data,
            )
        else:
            getattr(self.logger, self.log_level)("operation_completed", **log_data)

    @property
    def elapsed_time(self) -> float:
        """Seconds since entry; frozen once the block exits."""
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return end - self.start_time


@contextlib.contextmanager
def log_exceptions(
    logger: Optional[structlog.BoundLogger] = None,
    operation: Optional[str] = None,
) -> Iterator[None]:
    """
    Log any exception leaving the block as `exception_caught`, then re-raise.

    Example:
        with log_exceptions(logger, operation="dendrogram"):
            engine.build_dendrogram(vectors)
    """
    log = logger or get_logger(__name__)
    try:
        yield
    except Exception as e:
        log.error(
            "exception_caught",
            error=str(e),
            error_type=type(e).__name__,
            operation=operation,
            exc_info=True,
        )
        raise
