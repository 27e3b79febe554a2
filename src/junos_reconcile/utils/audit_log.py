"""Audit trail of configuration changes.

Every create/update/delete run by the engine produces one JSON change
record: device, operation, resource path, submitted lines, outcome and
device warnings. Dry-run operations are recorded too, flagged as such.

Records go to the ``junos_reconcile.audit`` logger. Nothing is written to
disk until :func:`setup_audit_logging` attaches the file handler.
"""
import json
import logging
import os
from collections import deque
from datetime import datetime, timezone
from dataclasses import dataclass, asdict, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator, Optional, Union

audit_logger = logging.getLogger("junos_reconcile.audit")

DEFAULT_AUDIT_DIR = "~/.junos-reconcile"
AUDIT_FILE_NAME = "audit.log"


def audit_file_path(log_dir: Optional[Union[str, Path]] = None) -> Path:
    """Location of the audit file inside ``log_dir`` (default ~/.junos-reconcile)."""
    return Path(log_dir or DEFAULT_AUDIT_DIR).expanduser() / AUDIT_FILE_NAME


def setup_audit_logging(log_dir: Optional[str] = None) -> Path:
    """Attach a rotating JSON-lines file handler to the audit logger.

    Returns:
        Path of the audit log file
    """
    audit_file = audit_file_path(log_dir)
    audit_file.parent.mkdir(parents=True, exist_ok=True)

    for handler in list(audit_logger.handlers):
        audit_logger.removeHandler(handler)
        handler.close()

    handler = RotatingFileHandler(
        audit_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    audit_logger.setLevel(logging.INFO)
    audit_logger.addHandler(handler)
    audit_logger.propagate = False
    return audit_file


@dataclass
class ChangeRecord:
    """Record of one engine operation."""
    timestamp: str
    device_id: str
    operation: str  # create, update, delete
    path: str
    dry_run: bool
    success: bool
    lines: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        return cls(**json.loads(json_str))

    def matches(self, device_id: Optional[str] = None, operation: Optional[str] = None) -> bool:
        if device_id and self.device_id != device_id:
            return False
        if operation and self.operation != operation:
            return False
        return True


class ChangeTracker:
    """Writes the change records of one device."""

    def __init__(self, device_id: str):
        self.device_id = device_id

    def log_change(
        self,
        operation: str,
        path: str,
        success: bool,
        lines: Optional[list[str]] = None,
        warnings: Optional[list[str]] = None,
        error: Optional[str] = None,
        dry_run: bool = False,
    ) -> ChangeRecord:
        """Log a configuration change.

        Args:
            operation: create, update or delete
            path: Path prefix of the resource
            success: Whether the operation succeeded
            lines: Command lines submitted (or written in dry-run)
            warnings: Device warnings gathered during the operation
            error: Error message if failed
            dry_run: Lines went to the set file instead of the device

        Returns:
            The ChangeRecord that was logged
        """
        record = ChangeRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            device_id=self.device_id,
            operation=operation,
            path=path,
            dry_run=dry_run,
            success=success,
            lines=list(lines or []),
            warnings=list(warnings or []),
            error=error,
        )
        audit_logger.info(record.to_json())
        return record


def iter_changes(log_file: Union[str, Path]) -> Iterator[ChangeRecord]:
    """Yield the records of an audit file in write order, skipping malformed lines."""
    with open(log_file, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                yield ChangeRecord.from_json(line)
            except (json.JSONDecodeError, TypeError):
                continue  # Skip malformed lines


def get_recent_changes(
    log_file: Optional[str] = None,
    device_id: Optional[str] = None,
    operation: Optional[str] = None,
    limit: int = 100,
) -> list[ChangeRecord]:
    """Read recent changes from the audit log.

    Args:
        log_file: Path to audit log. Defaults to ~/.junos-reconcile/audit.log
        device_id: Filter by device ID
        operation: Filter by operation type
        limit: Maximum number of records to return

    Returns:
        List of ChangeRecords, most recent first
    """
    path = Path(log_file) if log_file else audit_file_path()
    if not os.path.exists(path):
        return []

    recent: deque[ChangeRecord] = deque(maxlen=limit)
    for record in iter_changes(path):
        if record.matches(device_id, operation):
            recent.append(record)
    return list(reversed(recent))
