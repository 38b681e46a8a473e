"""Context assembler: render retrieved items as a plain-text block.

One line per hit, in the rank order received:

    Filter: Character only

    1. [Character] Arion (in 'Aetheria > North'): The exiled king. (similarity: 0.912)

Nothing is reordered or deduplicated here; result uniqueness is the
retriever's job.
"""

from __future__ import annotations

from dataclasses import dataclass

from lorerag.rag.retriever import QueryResult, ScoredItem


@dataclass
class AssemblerConfig:
    separator: str = " > "
    show_scores: bool = True
    show_filter: bool = True


def assemble(result: QueryResult, config: AssemblerConfig | None = None) -> str:
    """Format *result* as context text. An empty result yields ``""``."""
    if not result.hits:
        return ""
    config = config or AssemblerConfig()

    lines: list[str] = []
    if config.show_filter and result.category is not None:
        lines.append(f"Filter: {result.category.value} only")
        lines.append("")
    lines.extend(format_hit(hit, config) for hit in result.hits)
    return "\n".join(lines) + "\n"


def format_hit(hit: ScoredItem, config: AssemblerConfig) -> str:
    item = hit.item
    line = f"{hit.rank}. [{item.category.value}] {item.name}"
    if item.hierarchy_path:
        line += f" (in '{item.breadcrumb(config.separator)}')"
    if item.description:
        line += f": {item.description}"
    if config.show_scores:
        line += f" (similarity: {hit.score:.3f})"
    return line
