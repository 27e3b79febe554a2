"""Logging configuration for junos-reconcile.

Three loggers are configured:

- ``junos_reconcile``: application log, console plus rotating file
- ``junos_reconcile.perf``: one timing line per device operation, own file
- ``junos_reconcile.netconf``: every RPC and reply, only when a trace path
  is configured

Environment Variables:
    JUNOS_RECONCILE_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    JUNOS_RECONCILE_LOG_FILE: Path to log file
        (default: ~/.junos-reconcile/junos-reconcile.log)
    JUNOS_RECONCILE_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    JUNOS_RECONCILE_LOG_BACKUPS: Number of backup files to keep (default: 5)
    JUNOS_LOG_PATH: Path of the NETCONF trace file (disabled when unset)

Usage:
    from junos_reconcile.utils.logging_config import setup_logging, timed

    setup_logging()  # Call once at startup

    @timed("commit")
    async def commit(self, log_message):
        ...

    async with timed_section("create", device_id="srx-edge", path="protocols lldp"):
        ...
"""
import asyncio
import functools
import logging
import os
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Callable, Any

perf_logger = logging.getLogger("junos_reconcile.perf")
main_logger = logging.getLogger("junos_reconcile")
netconf_logger = logging.getLogger("junos_reconcile.netconf")

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAIN_FORMAT = "%(asctime)s.%(msecs)03d | %(name)-30s | %(levelname)-7s | %(message)s"
PERF_FORMAT = "%(asctime)s.%(msecs)03d | PERF | %(message)s"


def get_log_level() -> int:
    """Get log level from environment."""
    level_str = os.environ.get("JUNOS_RECONCILE_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".junos-reconcile" / "junos-reconcile.log"
    return Path(os.environ.get("JUNOS_RECONCILE_LOG_FILE", str(default_path)))


def get_netconf_log_file() -> Optional[Path]:
    """Get NETCONF trace file path from environment, None when disabled."""
    path_str = os.environ.get("JUNOS_LOG_PATH", "")
    return Path(path_str) if path_str else None


def _reset_handlers(*loggers: logging.Logger) -> None:
    for logger in loggers:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()


def _rotating_handler(path: Path, fmt: str, max_bytes: int, backups: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
    return handler


def setup_logging() -> None:
    """Configure logging for the application.

    Safe to call more than once; handlers of a previous call are replaced.
    """
    log_level = get_log_level()
    log_file = get_log_file()
    max_bytes = int(os.environ.get("JUNOS_RECONCILE_LOG_MAX_SIZE", "10")) * 1024 * 1024
    backups = int(os.environ.get("JUNOS_RECONCILE_LOG_BACKUPS", "5"))
    netconf_log_file = get_netconf_log_file()

    log_file.parent.mkdir(parents=True, exist_ok=True)
    perf_log_file = log_file.parent / "junos-reconcile-perf.log"

    _reset_handlers(main_logger, perf_logger, netconf_logger)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(MAIN_FORMAT, datefmt=DATE_FORMAT))

    main_logger.setLevel(logging.DEBUG)  # handlers filter
    main_logger.addHandler(console_handler)
    main_logger.addHandler(_rotating_handler(log_file, MAIN_FORMAT, max_bytes, backups))

    # perf records also reach the console through main_logger
    perf_logger.setLevel(logging.DEBUG)
    perf_logger.addHandler(_rotating_handler(perf_log_file, PERF_FORMAT, max_bytes, backups))

    if netconf_log_file is not None:
        netconf_log_file.parent.mkdir(parents=True, exist_ok=True)
        trace_handler = logging.FileHandler(netconf_log_file, encoding="utf-8")
        trace_handler.setLevel(logging.DEBUG)
        trace_handler.setFormatter(logging.Formatter(MAIN_FORMAT, datefmt=DATE_FORMAT))
        netconf_logger.addHandler(trace_handler)

    main_logger.info(
        f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}"
    )
    perf_logger.info(f"Performance logging to: {perf_log_file}")
    if netconf_log_file is not None:
        main_logger.info(f"NETCONF trace logging to: {netconf_log_file}")


def _log_timing(
    operation: str,
    device_id: Optional[str],
    start: float,
    error: Optional[BaseException] = None,
    extra: Optional[dict] = None,
) -> None:
    """Write one perf line: operation | device | elapsed | outcome [| extra]."""
    elapsed = (time.perf_counter() - start) * 1000
    if error is None:
        outcome, level = "OK", logging.INFO
    elif isinstance(error, asyncio.CancelledError):
        outcome, level = "CANCELLED", logging.WARNING
    else:
        outcome, level = f"FAIL: {error}", logging.WARNING

    msg = f"{operation:20s} | {device_id or 'N/A':15s} | {elapsed:8.2f}ms | {outcome}"
    if extra:
        msg += " | " + " | ".join(f"{k}={v}" for k, v in extra.items())
    perf_logger.log(level, msg)


def timed(operation: str, device_id: Optional[str] = None):
    """Decorator to log execution time of a coroutine function.

    Args:
        operation: Name of the operation (e.g., "connect", "commit")
        device_id: Optional device identifier (inferred from self.device_id otherwise)
    """
    def decorator(func: Callable) -> Callable:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError(f"@timed expects a coroutine function, got {func!r}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            dev_id = device_id
            if dev_id is None and args and hasattr(args[0], 'device_id'):
                dev_id = args[0].device_id

            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except BaseException as e:
                _log_timing(operation, dev_id, start, error=e)
                raise
            _log_timing(operation, dev_id, start)
            return result

        return wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, device_id: Optional[str] = None, **extra):
    """Async context manager for timing code sections.

    Args:
        operation: Name of the operation
        device_id: Device identifier
        **extra: Additional context to log (e.g. ``path=...``)
    """
    start = time.perf_counter()
    try:
        yield
    except BaseException as e:
        _log_timing(operation, device_id, start, error=e, extra=extra)
        raise
    _log_timing(operation, device_id, start, extra=extra)
