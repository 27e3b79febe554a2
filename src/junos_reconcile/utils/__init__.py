"""Utility modules for logging, auditing and connection retries."""
from .connection import RETRYABLE_EXCEPTIONS, clamp_retries, connect_retrying
from .logging_config import (
    setup_logging,
    timed,
    timed_section,
    perf_logger,
    netconf_logger,
)
from .audit_log import (
    ChangeRecord,
    ChangeTracker,
    get_recent_changes,
    iter_changes,
    setup_audit_logging,
)

__all__ = [
    "RETRYABLE_EXCEPTIONS",
    "clamp_retries",
    "connect_retrying",
    "setup_logging",
    "timed",
    "timed_section",
    "perf_logger",
    "netconf_logger",
    "ChangeRecord",
    "ChangeTracker",
    "get_recent_changes",
    "iter_changes",
    "setup_audit_logging",
]
