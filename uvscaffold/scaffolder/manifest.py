"""Idempotent updates to ``pyproject.toml`` manifests.

Existing content is validated with :mod:`tomllib` and edited through
tomlkit's style-preserving document model: missing tables and arrays are
created, new requirement strings are appended and new configuration
tables are added, while comments, ordering, line endings and tables the
composer knows nothing about are carried through unchanged.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Iterable, Union

import tomlkit
from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name
from pydantic import BaseModel, ConfigDict
from tomlkit import dumps as toml_dumps
from tomlkit import parse as toml_parse
from tomlkit.exceptions import TOMLKitError
from tomlkit.items import Table
from tomlkit.toml_document import TOMLDocument

from uvscaffold.config import ManifestKind
from uvscaffold.errors import ManifestParseError

# ---------------------------------------------------------------------------
# Entry models
# ---------------------------------------------------------------------------


def requirement_key(requirement: str) -> str:
    """Return the identity of a requirement string (its canonical name).

    ``"Torch>=2.0"`` and ``"torch"`` share the key ``"torch"``.  Strings
    that are not valid PEP 508 requirements are keyed by their normalised
    text so they still compare equal to themselves.
    """
    try:
        return canonicalize_name(Requirement(requirement).name)
    except InvalidRequirement:
        return requirement.strip().lower()


class DependencyEntry(BaseModel):
    """A requirement string inside an array such as ``[project].dependencies``."""

    model_config = ConfigDict(frozen=True)

    manifest: ManifestKind
    table: str
    key: str
    requirement: str

    @property
    def identity(self) -> tuple[str, ...]:
        return ("dependency", self.manifest.value, self.table, self.key, requirement_key(self.requirement))


class BlockEntry(BaseModel):
    """A configuration table, present at most once per manifest."""

    model_config = ConfigDict(frozen=True)

    manifest: ManifestKind
    table: str
    body: str

    @property
    def identity(self) -> tuple[str, ...]:
        return ("block", self.manifest.value, self.table)


ManifestEntry = Union[DependencyEntry, BlockEntry]


# ---------------------------------------------------------------------------
# Document helpers
# ---------------------------------------------------------------------------


def _node(container: Any, part: str) -> Any:
    """Return the item stored under *part*, or ``None``."""
    if part not in container:
        return None
    return container[part]


def _is_implicit(node: Any) -> bool:
    """True for a table that only exists as the parent of a dotted header."""
    return isinstance(node, Table) and node.is_super_table()


def _same_line_endings(text: str, original: str) -> str:
    """Rewrite *text* with CRLF line endings when *original* used them."""
    if "\r\n" not in original:
        return text
    return text.replace("\r\n", "\n").replace("\n", "\r\n")


# ---------------------------------------------------------------------------
# ManifestComposer
# ---------------------------------------------------------------------------


class ManifestComposer:
    """Ensures manifest entries are present exactly once.

    Dependency entries sharing a table and key are applied as one array
    update; blocks are added in the order they are given.
    """

    def compose(
        self,
        content: str,
        entries: Iterable[ManifestEntry],
        path: str | Path | None = None,
    ) -> str:
        """Return *content* updated so every entry appears exactly once.

        Args:
            content: Current manifest text (a baseline for a new manifest).
            entries: Entries to ensure, in order of first appearance.
            path: Manifest location, used only in error messages.

        Raises:
            ManifestParseError: The existing content is not valid TOML or a
                targeted table/key has an unexpected shape.  *content* is
                never partially modified in that case.
        """
        self._parse(content, path)
        try:
            doc = toml_parse(content)
        except TOMLKitError as exc:
            raise ManifestParseError(f"invalid TOML: {exc}", path) from exc

        groups: dict[tuple[str, str], list[str]] = {}
        steps: list[tuple[str, Any]] = []
        seen: set[tuple[str, ...]] = set()
        for entry in entries:
            if entry.identity in seen:
                continue
            seen.add(entry.identity)
            if isinstance(entry, DependencyEntry):
                slot = (entry.table, entry.key)
                if slot not in groups:
                    groups[slot] = []
                    steps.append(("dependencies", slot))
                groups[slot].append(entry.requirement)
            else:
                steps.append(("block", entry))

        changed = False
        for kind, payload in steps:
            if kind == "dependencies":
                table, key = payload
                changed |= self._ensure_dependencies(doc, table, key, groups[payload], path)
            else:
                changed |= self._ensure_block(doc, payload, path)
        if not changed:
            return content

        text = _same_line_endings(toml_dumps(doc), content)
        self._parse(text, path, after_update=True)
        return text

    def declared(self, content: str, table: str, key: str, path: str | Path | None = None) -> list[str]:
        """Return the strings declared at ``table.key`` (empty when absent)."""
        node = self._lookup_table(self._parse(content, path), table, path)
        if node is None or key not in node:
            return []
        return list(self._string_array(node[key], table, key, path))

    # -- Parsing -----------------------------------------------------------

    @staticmethod
    def _parse(text: str, path: str | Path | None, after_update: bool = False) -> dict[str, Any]:
        try:
            return tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            if after_update:
                raise ManifestParseError(
                    f"existing content conflicts with the requested update ({exc})", path
                ) from exc
            raise ManifestParseError(f"invalid TOML: {exc}", path) from exc

    @staticmethod
    def _lookup_table(data: dict[str, Any], table: str, path: str | Path | None) -> dict[str, Any] | None:
        node: Any = data
        for part in table.split("."):
            if not isinstance(node, dict):
                raise ManifestParseError(f"[{table}] is not a table", path)
            if part not in node:
                return None
            node = node[part]
        if not isinstance(node, dict):
            raise ManifestParseError(f"[{table}] is not a table", path)
        return node

    @staticmethod
    def _string_array(value: Any, table: str, key: str, path: str | Path | None) -> list[str]:
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ManifestParseError(f"{table}.{key} is not an array of strings", path)
        return value

    @staticmethod
    def _table(
        doc: TOMLDocument,
        table: str,
        path: str | Path | None,
        parent_only: bool = False,
    ) -> dict[str, Any]:
        """Return the document table at the dotted *table* path, creating it.

        Missing parents are created as super tables so only the innermost
        ``[a.b]`` header is written.  With *parent_only* the last table is
        treated as a parent too.
        """
        parts = table.split(".")
        node: Any = doc
        for index, part in enumerate(parts):
            child = _node(node, part)
            if child is None:
                child = tomlkit.table(is_super_table=parent_only or index < len(parts) - 1)
                node[part] = child
                child = node[part]
            elif not isinstance(child, dict):
                raise ManifestParseError(f"[{table}] is not a table", path)
            node = child
        return node

    # -- Dependency arrays -------------------------------------------------

    def _ensure_dependencies(
        self,
        doc: TOMLDocument,
        table: str,
        key: str,
        requirements: list[str],
        path: str | Path | None,
    ) -> bool:
        node = self._table(doc, table, path)
        current = _node(node, key)
        existing = [] if current is None else self._string_array(current, table, key, path)

        present = {requirement_key(str(r)) for r in existing}
        missing: list[str] = []
        for requirement in requirements:
            ident = requirement_key(requirement)
            if ident not in present:
                present.add(ident)
                missing.append(requirement)
        if not missing:
            return False

        if current is None:
            if _is_implicit(node):
                raise ManifestParseError(
                    f"[{table}] is defined without a table header and cannot be extended in place",
                    path,
                )
            array = tomlkit.array()
            for requirement in missing:
                array.append(requirement)
            array.multiline(True)
            node[key] = array
            return True

        single_line = "\n" not in current.as_string()
        for requirement in missing:
            current.append(requirement)
        if single_line:
            current.multiline(True)
        return True

    # -- Configuration blocks ---------------------------------------------

    def _ensure_block(self, doc: TOMLDocument, entry: BlockEntry, path: str | Path | None) -> bool:
        parent_name, _, name = entry.table.rpartition(".")
        parent = self._table(doc, parent_name, path, parent_only=True) if parent_name else doc
        existing = _node(parent, name)
        if existing is not None:
            if not isinstance(existing, dict):
                raise ManifestParseError(f"[{entry.table}] is not a table", path)
            return False

        try:
            body = toml_parse(entry.body)
        except TOMLKitError as exc:
            raise ManifestParseError(f"invalid body for [{entry.table}]: {exc}", path) from exc
        block = tomlkit.table(is_super_table=False)
        for key, value in body.items():
            block.add(key, value)
        parent[name] = block
        return True
