"""Command generator - turns structured records into set/delete lines.

Walks a record along its :class:`Catalog` and emits one
``set <prefix><suffix>`` line per configured value. Values equal to their
sentinel default are omitted, so a record with nothing configured only
produces the bare prefix line.
"""
import logging
from typing import Any

from ..exceptions import SchemaError
from .codec import encode_secret, is_secret_encoded, quote
from .schema import Block, Catalog, Flag, Integer, KeyedBlock, Multi, Scalar

logger = logging.getLogger(__name__)


class CommandGenerator:
    """Generate ordered command lines from a record and its catalog."""

    def build(
        self,
        prefix: str,
        record: Any,
        catalog: Catalog,
        marker: bool = True,
    ) -> list[str]:
        """
        Build the set lines for a record.

        Args:
            prefix: Path prefix, with trailing space
                (e.g. ``"protocols bgp group G "``)
            record: Record instance of ``catalog.record_type``
            catalog: Field rules for the record
            marker: Emit the bare ``set <prefix>`` line first

        Returns:
            Ordered list of ``set`` lines
        """
        lines = []
        if marker:
            lines.append(f"set {prefix}")
        self._build_fields(prefix, record, catalog, lines)
        return lines

    def build_delete(self, prefix: str, catalog: Catalog) -> list[str]:
        """Build one delete line per managed field of the catalog."""
        return [f"delete {prefix}{rule.keyword}" for rule in catalog.rules]

    def _build_fields(
        self,
        prefix: str,
        record: Any,
        catalog: Catalog,
        lines: list[str],
    ) -> None:
        for rule in catalog.rules:
            value = getattr(record, rule.attr)
            if isinstance(rule, Flag):
                if value:
                    lines.append(f"set {prefix}{rule.keyword}")
            elif isinstance(rule, Integer):
                if value != rule.sentinel:
                    lines.append(f"set {prefix}{rule.keyword} {int(value)}")
            elif isinstance(rule, Scalar):
                if value != rule.sentinel:
                    if rule.secret and not is_secret_encoded(value):
                        value = encode_secret(value)
                    lines.append(f"set {prefix}{rule.keyword} {quote(str(value))}")
            elif isinstance(rule, Multi):
                for item in self._multi_values(rule, value):
                    lines.append(f"set {prefix}{rule.keyword} {quote(str(item))}")
            elif isinstance(rule, Block):
                if len(value) > 1:
                    raise SchemaError(
                        f"{rule.attr} accepts a single block, got {len(value)}"
                    )
                for sub in value:
                    if rule.marker:
                        lines.append(f"set {prefix}{rule.keyword}")
                    self._build_fields(
                        f"{prefix}{rule.keyword} ", sub, rule.catalog, lines
                    )
            elif isinstance(rule, KeyedBlock):
                seen = set()
                for sub in value:
                    identity = rule.identity(sub)
                    if identity in seen:
                        raise SchemaError(
                            f"duplicate {rule.keyword} entry: {' '.join(map(str, identity))}"
                        )
                    seen.add(identity)
                    head = f"{prefix}{rule.keyword} {quote(str(getattr(sub, rule.key)))}"
                    if rule.qualifier and getattr(sub, rule.qualifier):
                        head += f" {quote(str(getattr(sub, rule.qualifier)))}"
                    lines.append(f"set {head}")
                    self._build_fields(f"{head} ", sub, rule.catalog, lines)
            else:
                raise SchemaError(f"unsupported rule {type(rule).__name__}")

    @staticmethod
    def _multi_values(rule: Multi, values: list) -> list:
        if rule.ordered:
            return list(values)
        return sorted(dict.fromkeys(values), key=rule.sort_key)
