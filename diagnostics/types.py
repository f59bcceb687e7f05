from dataclasses import dataclass
from enum import IntEnum
from typing import Any
import lxml.etree


class ErrorLevel(IntEnum):
    """Diagnostic severity, using libxml2's numeric levels."""
    WARNING = 1
    ERROR = 2
    FATAL = 3


@dataclass(frozen=True)
class ErrorRecord:
    """A single diagnostic reported by the parser for one load."""
    level: ErrorLevel
    message: str
    code: int
    line: int
    column: int

    @property
    def is_fatal(self) -> bool:
        return self.level == ErrorLevel.FATAL

    @classmethod
    def from_log_entry(cls, entry: Any) -> "ErrorRecord":
        """
        Build a record from an lxml error log entry.

        Args:
            entry: lxml ``_LogEntry`` taken from a parser's ``error_log``

        Returns:
            Immutable error record
        """
        try:
            level = ErrorLevel(entry.level)
        except ValueError:
            # libxml2 also has XML_ERR_NONE (0); treat anything unknown as a warning
            level = ErrorLevel.WARNING

        return cls(
            level=level,
            message=(entry.message or "").strip(),
            code=int(entry.type),
            line=int(entry.line or 0),
            column=int(entry.column or 0),
        )

    @classmethod
    def from_syntax_error(cls, exc: lxml.etree.XMLSyntaxError) -> "ErrorRecord":
        """Build a FATAL record from a parse failure raised by lxml."""
        line, column = exc.position if exc.position else (0, 0)
        return cls(
            level=ErrorLevel.FATAL,
            message=(exc.msg or str(exc)).strip(),
            code=int(exc.code or 0),
            line=int(line or 0),
            column=int(column or 0),
        )
