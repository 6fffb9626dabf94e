"""Logging setup and operation metrics for the note vault.

Every store write, load, search and sync pass is timed. Besides timing,
an operation can report named counters (notes loaded, files reloaded,
search hits...) which are summed per operation name.
"""
import functools
import logging
import time
import uuid
from collections import Counter, defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

# All package loggers hang off this name (logging.getLogger(__name__))
ROOT_LOGGER_NAME = "notevault"
LOG_FILE_NAME = "notevault.log"

# Logging format with ISO 8601 timestamps
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

F = TypeVar('F', bound=Callable[..., Any])


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB per file
    backup_count: int = 5,
    console: bool = True,
) -> Optional[Path]:
    """Attach handlers to the ``notevault`` logger.

    Calling this again with the same ``log_dir`` does not add duplicate
    handlers.

    Args:
        log_dir: Directory for ``notevault.log``. No file logging when None.
        level: Logging level (default: INFO)
        max_bytes: Size at which the log file rotates (default: 10 MB)
        backup_count: Rotated files to keep (default: 5)
        console: Also log to stderr (default: True)

    Returns:
        The log directory, or None when only console logging is set up.
    """
    vault_logger = logging.getLogger(ROOT_LOGGER_NAME)
    vault_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    log_path: Optional[Path] = None
    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        log_file = (log_path / LOG_FILE_NAME).resolve()
        if not any(
            isinstance(h, RotatingFileHandler) and Path(h.baseFilename) == log_file
            for h in vault_logger.handlers
        ):
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            vault_logger.addHandler(file_handler)

    if console and not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        for h in vault_logger.handlers
    ):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        vault_logger.addHandler(console_handler)

    if log_path is not None:
        vault_logger.info(f"Logging to {log_path / LOG_FILE_NAME}")
    return log_path


@dataclass
class OperationStats:
    """Accumulated figures for one operation name."""
    calls: int = 0
    errors: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    last_error: Optional[str] = None
    counts: Counter = field(default_factory=Counter)


class MetricsCollector:
    """Thread-safe per-operation timings and counters."""

    def __init__(self):
        self._stats: Dict[str, OperationStats] = defaultdict(OperationStats)
        self._lock = Lock()

    def record(
        self,
        operation: str,
        duration_ms: float,
        success: bool = True,
        error: Optional[str] = None,
        counts: Optional[Dict[str, int]] = None,
    ) -> None:
        """Add one call of ``operation``.

        Args:
            operation: Operation name ('save', 'sync_pass', ...)
            duration_ms: Wall time of the call
            success: False when the call raised
            error: Message of the exception the call raised
            counts: Named counters to add, e.g. ``{"reloaded": 2}``
        """
        with self._lock:
            stats = self._stats[operation]
            stats.calls += 1
            stats.total_ms += duration_ms
            stats.max_ms = max(stats.max_ms, duration_ms)
            if not success:
                stats.errors += 1
                stats.last_error = error
            if counts:
                stats.counts.update(counts)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Copy of the figures, keyed by operation name."""
        with self._lock:
            return {
                name: {
                    "calls": s.calls,
                    "errors": s.errors,
                    "avg_ms": round(s.total_ms / s.calls, 2) if s.calls else 0.0,
                    "max_ms": round(s.max_ms, 2),
                    "last_error": s.last_error,
                    "counts": dict(s.counts),
                }
                for name, s in self._stats.items()
            }

    def summary(self) -> str:
        """One line per operation, for the shutdown log."""
        lines = []
        for name, s in sorted(self.snapshot().items()):
            line = f"{name}: {s['calls']} calls, {s['errors']} errors, avg {s['avg_ms']}ms"
            if s["counts"]:
                line += " (" + ", ".join(
                    f"{key}={value}" for key, value in sorted(s["counts"].items())
                ) + ")"
            lines.append(line)
        return "\n".join(lines) or "no operations recorded"


# Global metrics collector instance
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context) -> Iterator[Dict[str, int]]:
    """Time a block and record it under ``operation``.

    Yields a dict for the block to fill with counters; they are added to
    the operation's totals when the block exits.

    Example:
        with timed_operation('sync_pass', root=str(root)) as counts:
            counts['reloaded'] = reload_changed_files()
    """
    correlation_id = uuid.uuid4().hex[:8]
    context_str = ', '.join(f'{k}={v}' for k, v in context.items())
    logger.debug(f"[{correlation_id}] START {operation} ({context_str})")

    counts: Dict[str, int] = {}
    error_msg = None
    start = time.perf_counter()
    try:
        yield counts
    except Exception as e:
        error_msg = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        metrics.record(
            operation,
            duration_ms,
            success=error_msg is None,
            error=error_msg,
            counts=counts,
        )
        status = 'OK' if error_msg is None else f'ERROR: {error_msg}'
        counts_str = ', '.join(f'{k}={v}' for k, v in counts.items())
        logger.debug(
            f"[{correlation_id}] END {operation} ({duration_ms:.2f}ms) [{status}] {counts_str}"
        )


def traced(
    operation_name: Optional[str] = None,
    counts: Optional[Callable[[Any], Dict[str, int]]] = None,
) -> Callable[[F], F]:
    """Decorator form of :func:`timed_operation`.

    Args:
        operation_name: Name to record under (default: the function name)
        counts: Maps the function's return value to counters

    Example:
        @traced('search', counts=lambda hits: {'hits': len(hits)})
        def search(self, query):
            ...
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with timed_operation(op_name) as op_counts:
                result = func(*args, **kwargs)
                if counts is not None:
                    op_counts.update(counts(result))
                return result

        return wrapper  # type: ignore
    return decorator
