"""Observability utilities for tagnotes.

Provides rotating file logging, timing metrics and operation tracing for
store mutations and MCP tool calls.
"""
import functools
import inspect
import json
import logging
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

# Default log directory (can be overridden via configure_logging)
DEFAULT_LOG_DIR = Path.home() / ".tagnotes" / "logs"

# Logging format with ISO 8601 timestamps
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Every module logger lives under this name
ROOT_LOGGER_NAME = "tagnotes"

# Type variable for decorators
F = TypeVar('F', bound=Callable[..., Any])

# Global flag to track if logging has been configured
_logging_configured = False


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,  # 5 MB per file
    backup_count: int = 3,
    console: bool = True,
) -> Path:
    """Configure persistent file logging with rotation.

    Sets up a rotating file handler on the ``tagnotes`` logger so every
    module logger (``tagnotes.services.note_store`` and friends) writes to it.

    Args:
        log_dir: Directory for log files. Defaults to ~/.tagnotes/logs/
        level: Logging level (default: INFO)
        max_bytes: Maximum size per log file before rotation (default: 5 MB)
        backup_count: Number of rotated files to keep (default: 3)
        console: Also log to console (default: True)

    Returns:
        Path to the log directory
    """
    global _logging_configured

    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    log_file = log_path / "tagnotes.log"
    if not any(isinstance(h, RotatingFileHandler) for h in root_logger.handlers):
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # stdout carries the MCP stdio transport, so the console handler uses stderr
    if console and not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        for h in root_logger.handlers
    ):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    _logging_configured = True
    root_logger.info(f"Logging configured: {log_file} (max {max_bytes} bytes, {backup_count} backups)")

    return log_path


def is_logging_configured() -> bool:
    """Check if file logging has been configured."""
    return _logging_configured


@dataclass
class OperationMetrics:
    """Metrics for a single operation type."""
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: float = float('inf')
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None


class MetricsCollector:
    """In-memory metrics for store and server operations.

    Collects timing, success/failure counts and the last error for each
    operation name (add_note, rename_tag, tn_list_notes, ...). Everything in
    tagnotes runs on one thread, so no locking is done here.
    """

    def __init__(self) -> None:
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._start_time = datetime.now(timezone.utc)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        """Record metrics for an operation.

        Args:
            operation: The operation name (e.g., 'add_note', 'tn_list_notes')
            duration_ms: Duration in milliseconds
            success: Whether the operation succeeded
            error: Error message if the operation failed
        """
        m = self._metrics[operation]
        m.count += 1
        m.total_duration_ms += duration_ms
        m.min_duration_ms = min(m.min_duration_ms, duration_ms)
        m.max_duration_ms = max(m.max_duration_ms, duration_ms)

        if success:
            m.success_count += 1
        else:
            m.error_count += 1
            m.last_error = error
            m.last_error_time = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Get a snapshot of all metrics, keyed by operation name."""
        result = {}
        for op, m in self._metrics.items():
            avg_duration = m.total_duration_ms / m.count if m.count > 0 else 0
            min_dur = m.min_duration_ms if m.min_duration_ms != float('inf') else 0
            result[op] = {
                'count': m.count,
                'success_count': m.success_count,
                'error_count': m.error_count,
                'success_rate': m.success_count / m.count if m.count > 0 else 0,
                'avg_duration_ms': round(avg_duration, 2),
                'min_duration_ms': round(min_dur, 2),
                'max_duration_ms': round(m.max_duration_ms, 2),
                'last_error': m.last_error,
                'last_error_time': m.last_error_time.isoformat() if m.last_error_time else None
            }
        return result

    def get_summary(self) -> Dict[str, Any]:
        """Get aggregate statistics across all operations."""
        total_ops = sum(m.count for m in self._metrics.values())
        total_success = sum(m.success_count for m in self._metrics.values())
        total_errors = sum(m.error_count for m in self._metrics.values())

        return {
            'uptime_seconds': (datetime.now(timezone.utc) - self._start_time).total_seconds(),
            'total_operations': total_ops,
            'total_success': total_success,
            'total_errors': total_errors,
            'overall_success_rate': total_success / total_ops if total_ops > 0 else 1.0,
            'operations_tracked': list(self._metrics.keys())
        }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        self._metrics.clear()
        self._start_time = datetime.now(timezone.utc)

    def save_metrics(self, path: Union[str, Path]) -> bool:
        """Write the current metrics snapshot to a JSON file.

        Returns:
            True if saved successfully, False otherwise.
        """
        metrics_file = Path(path)
        try:
            metrics_file.parent.mkdir(parents=True, exist_ok=True)
            data = {
                "start_time": self._start_time.isoformat(),
                "saved_at": datetime.now(timezone.utc).isoformat(),
                "summary": self.get_summary(),
                "operations": self.get_metrics(),
            }
            temp_file = metrics_file.with_suffix(".tmp")
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            temp_file.replace(metrics_file)
            return True
        except (OSError, TypeError) as e:
            logger.error(f"Failed to save metrics to {metrics_file}: {e}")
            return False


# Global metrics collector instance
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Context manager for timing and logging operations.

    Args:
        operation: Name of the operation being performed
        **context: Additional context to include in log messages

    Yields:
        A dictionary where you can store result info (e.g., result_count)

    Example:
        with timed_operation('tn_list_notes', tag='work') as op:
            notes = board.visible_notes()
            op['result_count'] = len(notes)
    """
    correlation_id = str(uuid.uuid4())[:8]
    start_time = time.perf_counter()
    result_info: Dict[str, Any] = {'correlation_id': correlation_id}

    context_str = ', '.join(f'{k}={v}' for k, v in context.items())
    logger.debug(f"[{correlation_id}] START {operation} ({context_str})")

    error_msg = None
    success = True

    try:
        yield result_info
    except Exception as e:
        success = False
        error_msg = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        metrics.record_operation(operation, duration_ms, success, error_msg)

        result_str = ', '.join(f'{k}={v}' for k, v in result_info.items() if k != 'correlation_id')
        status = 'OK' if success else f'ERROR: {error_msg}'
        logger.debug(
            f"[{correlation_id}] END {operation} "
            f"({duration_ms:.2f}ms) [{status}] {result_str}"
        )


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Decorator for automatic operation tracing.

    Times the function, records metrics, and logs start/end with a
    correlation ID. A ``note_id`` or ``name`` argument is added to the log
    context whether it was passed by position or by keyword.

    Args:
        operation_name: Name to use for the operation. If None, uses function name.

    Example:
        @traced('rename_tag')
        def rename_tag(self, old_name: str, new_name: str) -> None:
            ...
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                arguments = signature.bind_partial(*args, **kwargs).arguments
            except TypeError:
                # The call itself will raise with the real message
                arguments = kwargs
            context = {}
            if 'note_id' in arguments:
                context['note_id'] = arguments['note_id']
            elif 'name' in arguments:
                context['name'] = arguments['name']

            with timed_operation(op_name, **context) as op:
                result = func(*args, **kwargs)
                if isinstance(result, (list, tuple)):
                    op['result_count'] = len(result)
                elif result is not None:
                    op['has_result'] = True
                return result

        return wrapper  # type: ignore
    return decorator
