"""Exception hierarchy for the reconciliation engine.

All engine exceptions inherit from ``ReconcileError`` so callers can catch
one base class while still telling failure stages apart::

    ReconcileError
    ├── ConnectError            transport / authentication, retried
    ├── LockError               candidate lock refused
    ├── ApplyError              load of set/delete lines rejected
    ├── CommitError             device-side validation failure
    ├── QueryError              read-only command failed
    ├── ParseError              unexpected configuration dump shape
    ├── ExistenceMismatchError  existence check found the opposite
    └── SchemaError             invalid field-rule catalog
"""
from typing import Optional


class ReconcileError(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        message: str,
        device: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.message = message
        self.device = device
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.device:
            return f"[{self.device}] {self.message}"
        return self.message


class ConnectError(ReconcileError):
    """Raised when the device session cannot be established."""


class LockError(ReconcileError):
    """Raised when the exclusive candidate lock cannot be taken."""


class ApplyError(ReconcileError):
    """Raised when the device rejects submitted set/delete lines."""

    def __init__(
        self,
        message: str,
        lines: Optional[list[str]] = None,
        offending: Optional[list[str]] = None,
        device: Optional[str] = None,
    ):
        self.lines = list(lines or [])
        self.offending = list(offending or [])
        super().__init__(message, device=device)

    def _format_message(self) -> str:
        msg = super()._format_message()
        if self.offending:
            msg += "\n" + "\n".join(self.offending)
        return msg


class CommitError(ReconcileError):
    """Raised when the commit is refused; carries the device diagnostic."""

    def __init__(
        self,
        message: str,
        warnings: Optional[list[str]] = None,
        device: Optional[str] = None,
    ):
        self.diagnostic = message
        self.warnings = list(warnings or [])
        super().__init__(message, device=device)


class QueryError(ReconcileError):
    """Raised when a read-only command fails."""


class ParseError(ReconcileError):
    """Raised when a configuration line cannot be reconstructed."""

    def __init__(self, message: str, line: Optional[str] = None):
        self.line = line
        super().__init__(message)

    def _format_message(self) -> str:
        if self.line is not None:
            return f"{self.message}: {self.line!r}"
        return self.message


class ExistenceMismatchError(ReconcileError):
    """Raised when an existence check finds the opposite of what is expected."""

    def __init__(
        self,
        path: str,
        expected_present: bool,
        device: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.path = path
        self.expected_present = expected_present
        if message is None and expected_present:
            message = f"{path} not exists after commit => check your config"
        elif message is None:
            message = f"{path} already exists"
        super().__init__(message, device=device)


class SchemaError(ReconcileError):
    """Raised for an invalid field-rule catalog declaration."""
