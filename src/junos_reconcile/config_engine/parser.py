"""Parser for flattened configuration dumps.

Rebuilds structured records from ``display set`` style lines, the inverse
of :class:`~.generator.CommandGenerator`. Repeated sub-blocks are upserted
by key, so several lines describing the same block land in one record.
"""
import logging
from typing import Any, Iterable, Optional

from ..exceptions import ParseError
from .codec import cut_prefix, decode_secret, split_token, unquote
from .schema import Block, Catalog, Flag, Integer, KeyedBlock, Multi, Scalar

logger = logging.getLogger(__name__)


class ConfigParser:
    """Reconstruct records from configuration lines."""

    def parse(self, lines: Iterable[str], base_prefix: str, catalog: Catalog) -> Any:
        """
        Reconstruct a single record.

        Args:
            lines: Configuration lines in device order
            base_prefix: Prefix to strip from each line ("" for relative dumps)
            catalog: Field rules of the record

        Returns:
            Record with unconfigured fields left at their sentinel defaults

        Raises:
            ParseError: On a malformed integer or secret
        """
        record = catalog.new()
        for line in lines:
            text = self._strip(line, base_prefix)
            if text is None:
                continue
            self._dispatch(text, record, catalog, line)
        return record

    def reconstruct(
        self,
        lines: Iterable[str],
        base_prefix: str,
        block: KeyedBlock,
    ) -> list[Any]:
        """
        Reconstruct a keyed block list.

        Lines must start (after ``base_prefix``) with the block keyword,
        e.g. ``family inet unicast``. Entries keep the order in which their
        key is first seen.

        Args:
            lines: Configuration lines in device order
            base_prefix: Prefix to strip from each line
            block: Keyed block rule declaring keyword, key field and template

        Returns:
            One record per distinct key, or key and qualifier
        """
        records: list[Any] = []
        for line in lines:
            text = self._strip(line, base_prefix)
            if not text:
                continue
            matched, rest = cut_prefix(text, block.keyword + " ")
            if not matched:
                logger.debug(f"Ignoring line outside {block.keyword!r} blocks: {line!r}")
                continue
            self._upsert(records, block, rest, line)
        return records

    @staticmethod
    def _strip(line: str, base_prefix: str) -> Optional[str]:
        """Strip ``set `` and the base prefix. None when outside the prefix."""
        text = line.strip()
        _, text = cut_prefix(text, "set ")
        if not base_prefix:
            return text
        if text == base_prefix.rstrip():
            return ""
        matched, rest = cut_prefix(text, base_prefix)
        if not matched:
            return None
        return rest

    def _dispatch(self, text: str, record: Any, catalog: Catalog, line: str) -> bool:
        """Assign ``text`` to the matching field of ``record``."""
        if not text:
            return True

        for rule in catalog.matchers:
            keyword = rule.keyword

            if isinstance(rule, Flag):
                if text == keyword:
                    setattr(record, rule.attr, True)
                    return True
                continue

            if isinstance(rule, Block):
                if text == keyword or text.startswith(keyword + " "):
                    entries = getattr(record, rule.attr)
                    if not entries:
                        entries.append(rule.catalog.new())
                    rest = text[len(keyword):].lstrip(" ")
                    if rest:
                        self._dispatch(rest, entries[0], rule.catalog, line)
                    return True
                continue

            matched, rest = cut_prefix(text, keyword + " ")
            if not matched:
                continue

            if isinstance(rule, KeyedBlock):
                self._upsert(getattr(record, rule.attr), rule, rest, line)
            elif isinstance(rule, Integer):
                setattr(record, rule.attr, self._to_int(rest, keyword, line))
            elif isinstance(rule, Scalar):
                value = unquote(rest)
                if rule.secret:
                    value = self._decode(value, keyword, line)
                setattr(record, rule.attr, value)
            elif isinstance(rule, Multi):
                values = getattr(record, rule.attr)
                value = unquote(rest)
                if rule.ordered:
                    values.append(value)
                elif value not in values:
                    values.append(value)
                    values.sort(key=rule.sort_key)
            return True

        logger.debug(f"Ignoring unknown line: {line!r}")
        return False

    def _upsert(self, entries: list, rule: KeyedBlock, text: str, line: str) -> None:
        """Find or create the entry for the key (and qualifier) at the start of ``text``."""
        token, rest = split_token(text)
        if not token:
            return
        key: Any = unquote(token)
        template = rule.catalog.new()
        if isinstance(getattr(template, rule.key), int):
            key = self._to_int(token, rule.keyword, line)

        identity: tuple = (key,)
        qualifier = ""
        if rule.qualifier is not None:
            token, rest = split_token(rest)
            qualifier = unquote(token)
            identity = (key, qualifier)

        entry = next((e for e in entries if rule.identity(e) == identity), None)
        if entry is None:
            entry = rule.new(key, qualifier)
            entries.append(entry)

        if rest:
            self._dispatch(rest, entry, rule.catalog, line)

    @staticmethod
    def _to_int(value: str, keyword: str, line: str) -> int:
        try:
            return int(unquote(value))
        except ValueError as e:
            raise ParseError(f"invalid integer for {keyword}", line=line) from e

    @staticmethod
    def _decode(value: str, keyword: str, line: str) -> str:
        try:
            return decode_secret(value)
        except ParseError as e:
            raise ParseError(
                f"failed to decode secret of {keyword} ({e.message})", line=line
            ) from e
