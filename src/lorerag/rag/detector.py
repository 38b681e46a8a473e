"""Query category detection from free text.

A keyword hit narrows retrieval to one category so that, for example, a
question about a city does not surface characters. Keywords are matched
case-insensitively as whole words, optionally followed by a plural ending
(-s, -x, -es), so "personnages" hits "personnage" but "warrior" does not
hit "war". When several keywords hit, the earliest one in the text wins;
at the same position the longest keyword wins.

This is a heuristic. No hit means no filter.
"""

from __future__ import annotations

import re
from typing import Iterable, Mapping

from lorerag.models import Category

# English + French, following the keyword families of the lore engine.
DEFAULT_KEYWORDS: dict[Category, tuple[str, ...]] = {
    Category.CHARACTER: (
        "personnage", "character", "héros", "hero", "roi", "king", "reine", "queen",
        "empereur", "emperor", "sultan", "archimage", "archmage",
    ),
    Category.LOCATION: (
        "lieu", "location", "endroit", "cité", "city", "cities", "ville", "town", "village",
        "forteresse", "fortress",
    ),
    Category.REGION: (
        "région", "region", "royaume", "kingdom", "empire", "territoire", "territory",
        "territories",
    ),
    Category.EVENT: (
        "événement", "event", "quand", "when", "guerre", "war", "bataille", "battle",
        "conflit", "conflict", "histoire", "history", "histories",
    ),
    Category.FACTION: (
        "faction", "guilde", "guild", "organisation", "organization", "ordre",
    ),
    Category.WORLD: ("monde", "world", "univers", "universe"),
}


class CategoryDetector:
    """Map free-text queries to a category hint.

    Args:
        keywords: Category → keywords. Defaults to ``DEFAULT_KEYWORDS``.
    """

    def __init__(self, keywords: Mapping[Category, Iterable[str]] | None = None) -> None:
        source = DEFAULT_KEYWORDS if keywords is None else keywords
        # A keyword listed under two categories belongs to the first one.
        self._lookup: dict[str, Category] = {}
        for category, words in source.items():
            for word in words:
                folded = word.strip().casefold()
                if folded:
                    self._lookup.setdefault(folded, category)

        self._pattern: re.Pattern[str] | None = None
        if self._lookup:
            # re tries alternatives left to right, so longest first.
            ordered = sorted(self._lookup, key=len, reverse=True)
            alternatives = "|".join(re.escape(word) for word in ordered)
            self._pattern = re.compile(rf"(?<!\w)({alternatives})(?:s|x|es)?(?!\w)")

    @property
    def enabled(self) -> bool:
        return self._pattern is not None

    def detect(self, text: str) -> Category | None:
        """Return the category of the earliest keyword in *text*, or None."""
        if self._pattern is None or not text:
            return None
        match = self._pattern.search(text.casefold())
        if match is None:
            return None
        return self._lookup[match.group(1)]
