"""
Process-wide diagnostic collection for the HTML parser.

Mirrors libxml2's "internal errors" switch: when collection is off, every
diagnostic reported by a parse is emitted through logging; when it is on,
diagnostics are appended to a shared buffer that callers read and clear.

Both the switch and the buffer are global, so loads hold ``engine_lock`` for
as long as they are collecting.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional
from diagnostics.types import ErrorLevel, ErrorRecord

logger = logging.getLogger(__name__)

# Re-entrant so a batch callback can run a nested load on the same thread
engine_lock = threading.RLock()

_state_lock = threading.Lock()
_use_internal_errors = False
_errors: List[ErrorRecord] = []

_LOG_LEVELS = {
    ErrorLevel.WARNING: logging.WARNING,
    ErrorLevel.ERROR: logging.ERROR,
    ErrorLevel.FATAL: logging.CRITICAL,
}


def use_internal_errors(enabled: Optional[bool] = None) -> bool:
    """
    Query or change the collection mode.

    Args:
        enabled: New mode, or None to leave it unchanged

    Returns:
        The mode in effect before the call
    """
    global _use_internal_errors

    with _state_lock:
        previous = _use_internal_errors
        if enabled is not None:
            _use_internal_errors = bool(enabled)
            if not _use_internal_errors:
                _errors.clear()
        return previous


def get_errors() -> List[ErrorRecord]:
    """Return a copy of the buffered diagnostics in reported order."""
    with _state_lock:
        return list(_errors)


def clear_errors() -> None:
    with _state_lock:
        _errors.clear()


def report(records: Iterable[ErrorRecord]) -> None:
    """
    Hand diagnostics from one parse to the engine.

    Buffered in collection mode, logged otherwise.
    """
    with _state_lock:
        collecting = _use_internal_errors
        if collecting:
            _errors.extend(records)
            return

    for record in records:
        logger.log(
            _LOG_LEVELS[record.level],
            f"HTML parser {record.level.name.lower()} {record.code} at line {record.line}, "
            f"column {record.column}: {record.message}"
        )


@contextmanager
def collecting_errors() -> Iterator[None]:
    """
    Switch to collection mode for the duration of the block.

    Holds ``engine_lock`` and restores the previous mode on every exit path.
    """
    with engine_lock:
        previous = use_internal_errors(True)
        try:
            yield
        finally:
            use_internal_errors(previous)
