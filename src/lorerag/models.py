"""Domain models for parsed lore."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, Sequence


class Category(str, Enum):
    """Closed classification of lore items, used to filter retrieval."""

    WORLD = "World"
    REGION = "Region"
    LOCATION = "Location"
    CHARACTER = "Character"
    EVENT = "Event"
    FACTION = "Faction"
    UNKNOWN = "Unknown"

    @classmethod
    def from_name(cls, name: str) -> Category:
        """Look up a category by case-insensitive name ("character", "World", ...).

        Raises:
            ValueError: If *name* is not a known category.
        """
        wanted = name.strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        raise ValueError(f"Unknown category '{name}'")


@dataclass(frozen=True)
class Item:
    """A lore entity with its hierarchy path.

    Attributes:
        id: Sequential identifier in document traversal order.
        name: Non-empty item name.
        text: Embeddable text (name plus the item's other string fields).
        category: Category inferred from the enclosing container key.
        hierarchy_path: Ancestor item names, root first.
        description: The item's ``description`` field, or "".
        embedding: Vector, set once by ``with_embedding()``.
    """

    id: int
    name: str
    text: str
    category: Category = Category.UNKNOWN
    hierarchy_path: tuple[str, ...] = ()
    description: str = ""
    embedding: tuple[float, ...] | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("Item name must be a non-empty string")

    @property
    def hierarchy_level(self) -> int:
        return len(self.hierarchy_path)

    @property
    def parent(self) -> str | None:
        return self.hierarchy_path[-1] if self.hierarchy_path else None

    @property
    def is_embedded(self) -> bool:
        return self.embedding is not None

    def breadcrumb(self, separator: str = " > ") -> str:
        return separator.join(self.hierarchy_path)

    def with_embedding(self, vector: Sequence[float]) -> Item:
        """Return a copy of this item carrying *vector*.

        Raises:
            ValueError: If the item is already embedded.
        """
        if self.embedding is not None:
            raise ValueError(f"Item {self.id} ('{self.name}') is already embedded")
        return replace(self, embedding=tuple(float(v) for v in vector))


@dataclass
class LoreStats:
    total_items: int = 0
    category_counts: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_items(cls, items: Iterable[Item]) -> LoreStats:
        counts = Counter(item.category.value for item in items)
        return cls(total_items=sum(counts.values()), category_counts=dict(counts))
