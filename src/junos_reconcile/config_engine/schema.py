"""Field-rule catalogs and commit parameters for the Config Engine.

A feature declares its record as a dataclass and a :class:`Catalog` that maps
each dataclass field to a rule. The builder and the reconstructor both walk
the same catalog, so whatever a feature can set it can also read back and
fully unset.

Example::

    @dataclass
    class GracefulRestart:
        disable: bool = False
        restart_time: int = -1

    GRACEFUL_RESTART = Catalog(GracefulRestart, (
        Flag("disable", "disable"),
        Integer("restart_time", "restart-time"),
    ))
"""
import dataclasses
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..exceptions import SchemaError


@dataclass(frozen=True)
class FieldRule:
    """Base rule: ``attr`` on the record, ``keyword`` in the command line."""
    attr: str
    keyword: str


@dataclass(frozen=True)
class Scalar(FieldRule):
    """String value, omitted when equal to ``sentinel``."""
    sentinel: str = ""
    secret: bool = False


@dataclass(frozen=True)
class Integer(FieldRule):
    """Integer value, omitted when equal to ``sentinel``."""
    sentinel: int = -1


@dataclass(frozen=True)
class Flag(FieldRule):
    """Boolean, emitted as the bare keyword when True."""


@dataclass(frozen=True)
class Multi(FieldRule):
    """Repeated value, one line per element.

    ``ordered=False`` makes it a set: emitted and reconstructed in
    ``sort_key`` order without duplicates.
    """
    ordered: bool = True
    sort_key: Optional[Callable[[Any], Any]] = None


@dataclass(frozen=True)
class Block(FieldRule):
    """Optional single sub-block, stored as a list of zero or one record."""
    catalog: "Catalog" = None  # type: ignore[assignment]
    marker: bool = True


@dataclass(frozen=True)
class KeyedBlock(FieldRule):
    """Repeated sub-block identified by the value of its ``key`` field.

    ``qualifier`` names a field holding one positional token written right
    after the key (``family inet unicast`` -> key ``inet``, qualifier
    ``unicast``). The qualifier is part of the entry identity, so
    ``family inet unicast`` and ``family inet multicast`` are two entries.
    """
    key: str = ""
    catalog: "Catalog" = None  # type: ignore[assignment]
    qualifier: Optional[str] = None

    def identity(self, record: Any) -> tuple:
        if self.qualifier is None:
            return (getattr(record, self.key),)
        return (getattr(record, self.key), getattr(record, self.qualifier))

    def new(self, key_value: Any, qualifier_value: str = "") -> Any:
        record = self.catalog.new()
        setattr(record, self.key, key_value)
        if self.qualifier is not None:
            setattr(record, self.qualifier, qualifier_value)
        return record


class Catalog:
    """Ordered set of field rules for one record dataclass."""

    def __init__(self, record_type: type, rules: tuple[FieldRule, ...]):
        self.record_type = record_type
        self.rules = tuple(rules)
        self._validate()
        # Longest keyword first so the most specific matcher wins
        self.matchers = tuple(
            sorted(self.rules, key=lambda r: len(r.keyword), reverse=True)
        )

    def _validate(self) -> None:
        if not dataclasses.is_dataclass(self.record_type):
            raise SchemaError(f"{self.record_type!r} is not a dataclass")
        names = {f.name for f in dataclasses.fields(self.record_type)}
        keywords = set()
        for rule in self.rules:
            if rule.attr not in names:
                raise SchemaError(
                    f"{self.record_type.__name__} has no field {rule.attr!r}"
                )
            if not rule.keyword:
                raise SchemaError(f"rule for {rule.attr!r} has an empty keyword")
            if rule.keyword in keywords:
                raise SchemaError(f"duplicate keyword {rule.keyword!r}")
            keywords.add(rule.keyword)
            if isinstance(rule, (Block, KeyedBlock)) and not isinstance(rule.catalog, Catalog):
                raise SchemaError(f"rule for {rule.attr!r} needs a sub-catalog")
            if isinstance(rule, KeyedBlock):
                sub_names = {f.name for f in dataclasses.fields(rule.catalog.record_type)}
                for attr in (rule.key, rule.qualifier):
                    if attr is not None and attr not in sub_names:
                        raise SchemaError(
                            f"{rule.catalog.record_type.__name__} has no field {attr!r}"
                        )
        try:
            self.record_type()
        except TypeError as e:
            raise SchemaError(
                f"{self.record_type.__name__} needs defaults on every field: {e}"
            ) from e

    def new(self) -> Any:
        """Template record with every field at its sentinel default."""
        return self.record_type()

    def __repr__(self) -> str:
        return f"Catalog({self.record_type.__name__}, {len(self.rules)} rules)"


@dataclass
class ApplyResult:
    """Result of a create/update/delete operation."""
    success: bool = False
    dry_run: bool = False
    lines: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    record: Any = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        record = self.record
        if record is not None and dataclasses.is_dataclass(record):
            record = dataclasses.asdict(record)
        return {
            "success": self.success,
            "dry_run": self.dry_run,
            "lines": self.lines,
            "warnings": self.warnings,
            "record": record,
        }
