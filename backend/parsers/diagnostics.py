"""
Parse diagnostics

Every parser entry point returns a best-effort result together with a list
of Diagnostic records instead of raising. The coordinator collects them so
the UI can show non-blocking warnings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from loguru import logger


class DiagnosticSeverity(Enum):
    """Severity levels for parse and decode issues"""
    ERROR = 'error'      # Part of the file could not be used
    WARNING = 'warning'  # Recovered, but the user should know
    INFO = 'info'


@dataclass
class Diagnostic:
    """A single issue found while decoding, parsing or saving a file"""
    severity: DiagnosticSeverity
    source: str  # resource kind or file name
    message: str
    line: Optional[int] = None  # 1-based line number when known

    def to_dict(self) -> dict:
        return {
            'severity': self.severity.value,
            'source': self.source,
            'message': self.message,
            'line': self.line,
        }


@dataclass
class DiagnosticLog:
    """Collects diagnostics for one file and mirrors them to the log"""
    source: str
    entries: List[Diagnostic] = field(default_factory=list)

    def warning(self, message: str, line: Optional[int] = None):
        self._add(DiagnosticSeverity.WARNING, message, line)

    def error(self, message: str, line: Optional[int] = None):
        self._add(DiagnosticSeverity.ERROR, message, line)

    def info(self, message: str, line: Optional[int] = None):
        self._add(DiagnosticSeverity.INFO, message, line)

    def extend(self, diagnostics: List[Diagnostic]):
        self.entries.extend(diagnostics)

    def _add(self, severity: DiagnosticSeverity, message: str, line: Optional[int]):
        self.entries.append(Diagnostic(severity, self.source, message, line))
        where = f"{self.source}:{line}" if line else self.source
        if severity is DiagnosticSeverity.ERROR:
            logger.error(f"{where} - {message}")
        elif severity is DiagnosticSeverity.WARNING:
            logger.warning(f"{where} - {message}")
        else:
            logger.debug(f"{where} - {message}")

    @property
    def has_errors(self) -> bool:
        return any(d.severity is DiagnosticSeverity.ERROR for d in self.entries)

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.entries if d.severity is DiagnosticSeverity.WARNING]
