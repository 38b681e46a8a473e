"""Lore parser — recursive JSON walk with hierarchy tracking.

Any JSON object whose ``name`` is a non-empty string becomes an Item. The
walk keeps an explicit stack of ancestor names: a named object pushes its
name before its children are visited and pops it afterwards, so each Item's
``hierarchy_path`` is the stack at the moment it is found.

Category comes from the key of the enclosing container:

    {"worlds": [{"name": "Aetheria", "regions": [{"name": "North"}]}]}
      -> Aetheria: World, path ()
      -> North:    Region, path ("Aetheria",)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from lorerag.errors import ParseError
from lorerag.models import Category, Item

logger = logging.getLogger(__name__)

DEFAULT_CONTAINERS: dict[Category, tuple[str, ...]] = {
    Category.WORLD: ("worlds", "world"),
    Category.REGION: ("regions", "region"),
    Category.LOCATION: ("locations", "location"),
    Category.CHARACTER: ("characters", "character"),
    Category.EVENT: ("events", "event"),
    Category.FACTION: ("factions", "faction"),
}

# Fields that carry structure rather than prose; never part of the embedded text.
_RESERVED_FIELDS = frozenset({"name"})


@dataclass
class Diagnostic:
    """A skipped candidate or other non-fatal oddity in the document."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass
class ParseResult:
    items: list[Item] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


class LoreParser:
    """Extract Items from an arbitrary JSON document.

    Args:
        containers: Mapping of category → container keys that mark it.
            Keys are matched case-insensitively. Defaults to
            ``DEFAULT_CONTAINERS``.
    """

    def __init__(self, containers: Mapping[Category, Iterable[str]] | None = None) -> None:
        source = DEFAULT_CONTAINERS if containers is None else containers
        self._key_to_category: dict[str, Category] = {}
        for category, keys in source.items():
            for key in keys:
                self._key_to_category.setdefault(key.strip().lower(), category)

    def category_for_key(self, key: str) -> Category | None:
        return self._key_to_category.get(key.lower())

    def parse_json(self, content: str | bytes) -> ParseResult:
        """Decode *content* as JSON and parse it.

        Raises:
            ParseError: If *content* is not valid JSON.
        """
        try:
            document = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ParseError(
                f"Invalid JSON at line {exc.lineno}, column {exc.colno}: {exc.msg}"
            ) from exc
        except UnicodeDecodeError as exc:
            raise ParseError(f"Document is not valid UTF-8: {exc}") from exc
        return self.parse(document)

    def parse(self, document: Any) -> ParseResult:
        """Walk an already-decoded JSON value and collect its Items in document order."""
        result = ParseResult()
        self._visit(document, "$", Category.UNKNOWN, [], result)
        if not result.items:
            result.diagnostics.append(
                Diagnostic("$", "no objects with a non-empty string 'name' were found")
            )
        logger.debug(
            "Parsed %d items (%d diagnostics)", len(result.items), len(result.diagnostics)
        )
        return result

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _visit(
        self,
        value: Any,
        location: str,
        category: Category,
        ancestors: list[str],
        result: ParseResult,
    ) -> None:
        if isinstance(value, dict):
            self._visit_object(value, location, category, ancestors, result)
        elif isinstance(value, list):
            for i, element in enumerate(value):
                self._visit(element, f"{location}[{i}]", category, ancestors, result)

    def _visit_object(
        self,
        obj: dict[str, Any],
        location: str,
        category: Category,
        ancestors: list[str],
        result: ParseResult,
    ) -> None:
        name = _item_name(obj)
        is_item = name is not None

        if is_item:
            result.items.append(
                Item(
                    id=len(result.items),
                    name=name,
                    text=_build_text(name, obj),
                    category=category,
                    hierarchy_path=tuple(ancestors),
                    description=_description(obj),
                )
            )
            ancestors.append(name)
        elif "name" in obj:
            result.diagnostics.append(
                Diagnostic(
                    location,
                    f"skipped: 'name' must be a non-empty string, "
                    f"got {type(obj['name']).__name__}",
                )
            )
            logger.warning("Skipping candidate at %s: unusable 'name'", location)

        for key, child in obj.items():
            if not isinstance(child, (dict, list)):
                continue
            child_category = self.category_for_key(key)
            if child_category is None:
                # Plain wrapper objects pass their category through; items reset it.
                child_category = Category.UNKNOWN if is_item else category
            self._visit(child, f"{location}.{key}", child_category, ancestors, result)

        if is_item:
            ancestors.pop()


# ------------------------------------------------------------------
# Field helpers
# ------------------------------------------------------------------


def _item_name(obj: dict[str, Any]) -> str | None:
    name = obj.get("name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    return None


def _description(obj: dict[str, Any]) -> str:
    desc = obj.get("description")
    return desc.strip() if isinstance(desc, str) else ""


def _build_text(name: str, obj: dict[str, Any]) -> str:
    """Concatenate the item's string fields, in encounter order, behind its name."""
    parts: list[str] = []
    for key, value in obj.items():
        if key in _RESERVED_FIELDS or not isinstance(value, str) or not value.strip():
            continue
        parts.append(value.strip() if key == "description" else f"{key}: {value.strip()}")
    if not parts:
        return name
    return f"{name}: {' '.join(parts)}"
