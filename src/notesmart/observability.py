"""Logging setup, per-operation timing and tracing for notesmart.

Every traced call gets a short correlation id that ties its START and END
debug lines together, and its duration and outcome feed the process-wide
``metrics`` collector.
"""
import functools
import inspect
import logging
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path.home() / ".notesmart" / "logs"
LOG_FILE_NAME = "notesmart.log"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Arguments copied into trace log lines; titles and content never are
_TRACED_IDS = ("user_id", "note_id", "notebook_id", "tag_id")

F = TypeVar('F', bound=Callable[..., Any])


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Send the ``notesmart`` logger tree to a rotating file.

    Calling this again with the same directory only adjusts the level; it
    never stacks a second handler on the same file.

    Args:
        log_dir: Where ``notesmart.log`` lives. Defaults to ~/.notesmart/logs
        level: Level for the package logger and its handlers
        max_bytes: Size at which the file is rotated
        backup_count: Rotated files kept next to the live one
        console: Also echo records to stderr

    Returns:
        The log directory in use
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = (log_path / LOG_FILE_NAME).resolve()

    package_logger = logging.getLogger("notesmart")
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handlers = [
        h for h in package_logger.handlers
        if isinstance(h, RotatingFileHandler) and Path(h.baseFilename).resolve() == log_file
    ]
    if not file_handlers:
        file_handler = RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)
        file_handlers.append(file_handler)

    consoles = [
        h for h in package_logger.handlers
        if type(h) is logging.StreamHandler
    ]
    if console and not consoles:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)
        consoles.append(console_handler)

    for handler in file_handlers + consoles:
        handler.setLevel(level)

    package_logger.info(f"Logging to {log_file} (rotating at {max_bytes} bytes, keeping {backup_count})")
    return log_path


@dataclass
class OperationMetrics:
    """Running totals for one operation name."""
    count: int = 0
    error_count: int = 0
    total_ms: float = 0.0
    min_ms: Optional[float] = None
    max_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    def record(self, duration_ms: float, error: Optional[str]) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = duration_ms if self.min_ms is None else min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)
        if error is not None:
            self.error_count += 1
            self.last_error = error
            self.last_error_at = datetime.now(timezone.utc)

    def snapshot(self) -> Dict[str, Any]:
        successes = self.count - self.error_count
        return {
            'count': self.count,
            'success_count': successes,
            'error_count': self.error_count,
            'success_rate': successes / self.count if self.count else 0,
            'avg_duration_ms': round(self.total_ms / self.count, 2) if self.count else 0,
            'min_duration_ms': round(self.min_ms or 0, 2),
            'max_duration_ms': round(self.max_ms, 2),
            'last_error': self.last_error,
            'last_error_time': self.last_error_at.isoformat() if self.last_error_at else None,
        }


class MetricsCollector:
    """Thread-safe, in-memory timings keyed by operation name."""

    def __init__(self):
        self._operations: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._lock = Lock()

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        """Add one finished call of ``operation``."""
        with self._lock:
            self._operations[operation].record(
                duration_ms, None if success else (error or "unknown error")
            )

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Per-operation figures as plain dicts."""
        with self._lock:
            return {name: m.snapshot() for name, m in self._operations.items()}

    def reset(self) -> None:
        with self._lock:
            self._operations.clear()


metrics = MetricsCollector()


def _format_fields(fields: Dict[str, Any]) -> str:
    return ', '.join(f'{key}={value}' for key, value in fields.items())


@contextmanager
def timed_operation(operation: str, **context) -> Iterator[Dict[str, Any]]:
    """Time a block and record it in ``metrics`` under ``operation``.

    ``context`` goes on the START line. The yielded dict collects result
    details for the END line, e.g. ``op['result_count'] = len(rows)``.
    Exceptions are recorded as failures and re-raised unchanged.
    """
    correlation_id = uuid.uuid4().hex[:8]
    details: Dict[str, Any] = {}
    logger.debug(f"[{correlation_id}] START {operation} ({_format_fields(context)})")

    started = time.perf_counter()
    error: Optional[str] = None
    try:
        yield details
    except Exception as e:
        error = str(e) or e.__class__.__name__
        raise
    finally:
        duration_ms = (time.perf_counter() - started) * 1000
        metrics.record_operation(operation, duration_ms, error is None, error)
        status = 'OK' if error is None else f'ERROR: {error}'
        logger.debug(
            f"[{correlation_id}] END {operation} ({duration_ms:.2f}ms) "
            f"[{status}] {_format_fields(details)}"
        )


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Run every call of the decorated function inside ``timed_operation``.

    Entity ids among the arguments, positional or keyword, are logged with
    the call; list and dict results are logged by size.
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                bound = signature.bind_partial(*args, **kwargs).arguments
            except TypeError:
                bound = kwargs
            context = {key: bound[key] for key in _TRACED_IDS if key in bound}

            with timed_operation(op_name, **context) as op:
                result = func(*args, **kwargs)
                if isinstance(result, (list, dict)):
                    op['result_count'] = len(result)
                elif result is not None:
                    op['has_result'] = True
                return result

        return wrapper  # type: ignore
    return decorator
