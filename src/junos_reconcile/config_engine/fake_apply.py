"""Dry-run output: append command lines to a local file instead of a device."""
import logging
import os
import re
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

_PERMISSION_RE = re.compile(r"0?[0-7]{3}")


def parse_file_permission(value: Union[str, int]) -> int:
    """Parse an octal permission string such as ``"644"`` or ``"0600"``.

    Raises:
        ValueError: If the value is not a 3-digit octal mode
    """
    if isinstance(value, int):
        if not 0 <= value <= 0o777:
            raise ValueError(f"file permission out of range: {oct(value)}")
        return value
    text = str(value).strip()
    if not _PERMISSION_RE.fullmatch(text):
        raise ValueError(f"file permission must be an octal mode like '644', got {value!r}")
    return int(text, 8)


class SetFile:
    """Append-only file of command lines."""

    def __init__(self, path: Union[str, Path], permission: Union[str, int] = "644"):
        self.path = Path(path).expanduser()
        self.mode = parse_file_permission(permission)

    def append(self, lines: list[str]) -> None:
        """Append lines, creating the file with the configured mode."""
        fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, self.mode)
        with os.fdopen(fd, "a", encoding="utf-8") as f:
            for line in lines:
                f.write(line + "\n")
        logger.debug(f"Appended {len(lines)} line(s) to {self.path}")

    def read_lines(self) -> list[str]:
        if not self.path.exists():
            return []
        return self.path.read_text(encoding="utf-8").splitlines()
