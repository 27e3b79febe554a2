"""Binding of a field-rule catalog to one configuration path."""
from dataclasses import dataclass
from typing import Any

from .generator import CommandGenerator
from .schema import Catalog

_generator = CommandGenerator()


def exists_command(path: str) -> str:
    """Command listing the set lines under ``path`` (empty when absent)."""
    return f"show configuration {path} | display set"


@dataclass(frozen=True)
class Resource:
    """A configuration object managed as a unit.

    Attributes:
        path: Path prefix without trailing space
            (e.g. ``protocols bgp group UPLINKS``)
        catalog: Field rules of the object
        label: Name used in commit log messages
        preconditions: Paths that must already exist before a create,
            with the name reported when one is missing
    """
    path: str
    catalog: Catalog
    label: str = ""
    preconditions: tuple[tuple[str, str], ...] = ()

    @property
    def prefix(self) -> str:
        return self.path + " "

    @property
    def show_command(self) -> str:
        """Command dumping the object relative to its path."""
        return f"show configuration {self.path} | display set relative"

    @property
    def exists_command(self) -> str:
        return exists_command(self.path)

    def set_lines(self, record: Any) -> list[str]:
        return _generator.build(self.prefix, record, self.catalog)

    def field_delete_lines(self) -> list[str]:
        """One delete line per managed field, leaving the object itself."""
        return _generator.build_delete(self.prefix, self.catalog)

    def delete_lines(self) -> list[str]:
        return [f"delete {self.path}"]

    def commit_message(self, operation: str) -> str:
        return f"{operation} resource {self.label or self.path}"
