"""lorerag configuration loader.

Priority (high → low):
  1. Environment variables  (LORERAG_EMBEDDING_MODEL, LORERAG_EMBEDDING_DIMENSION,
                             LORERAG_INDEX_BACKEND)
  2. Per-project lorerag.yaml
  3. Global ~/.lorerag/config.yaml  (no API keys)
  4. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from lorerag.db.index import BACKENDS, IndexParams
from lorerag.errors import ConfigError
from lorerag.ingest.parser import DEFAULT_CONTAINERS
from lorerag.models import Category
from lorerag.rag.detector import DEFAULT_KEYWORDS

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_PATH: Path = Path.home() / ".lorerag" / "config.yaml"
_PROJECT_CONFIG_NAME: str = "lorerag.yaml"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate keys like max_connections or top_k.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # access_token, auth_token (suffix)
    r"|^token$"                  # exactly "token"
    r"|_secret$"                 # client_secret (suffix)
    r"|^secret$"                 # exactly "secret"
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

# Known top-level sections; unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "index", "retrieval", "categories", "context"]
)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (lorerag.yaml: embedding:).

    Attributes:
        model: LiteLLM embedding model string (provider/model format).
        dimension: Vector length the model produces; must match its output.
        batch_size: Texts per embedding call during load.
    """

    model: str = "openai/text-embedding-3-small"
    dimension: int = 1536
    batch_size: int = 64


@dataclass
class IndexCfg:
    """Vector index configuration (lorerag.yaml: index:)."""

    backend: str = "sqlite-vec"  # sqlite-vec | hnsw
    max_connections: int = 16
    max_layer: int = 16
    ef_construction: int = 200
    ef_search: int = 64

    def params(self) -> IndexParams:
        return IndexParams(
            max_connections=self.max_connections,
            max_layer=self.max_layer,
            ef_construction=self.ef_construction,
            ef_search=self.ef_search,
        )


@dataclass
class RetrievalCfg:
    """Query-time configuration (lorerag.yaml: retrieval:)."""

    top_k: int = 3
    overfetch_factor: float = 3.0


def _default_keywords() -> dict[Category, list[str]]:
    return {category: list(words) for category, words in DEFAULT_KEYWORDS.items()}


def _default_containers() -> dict[Category, list[str]]:
    return {category: list(keys) for category, keys in DEFAULT_CONTAINERS.items()}


@dataclass
class CategoriesCfg:
    """Category mappings (lorerag.yaml: categories:).

    Attributes:
        keywords: Category → query keywords used for detection.
        containers: Category → JSON container keys used during parsing.
    """

    keywords: dict[Category, list[str]] = field(default_factory=_default_keywords)
    containers: dict[Category, list[str]] = field(default_factory=_default_containers)


@dataclass
class ContextCfg:
    """Context rendering (lorerag.yaml: context:)."""

    separator: str = " > "
    show_scores: bool = True
    show_filter: bool = True


@dataclass
class LoreConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    index: IndexCfg = field(default_factory=IndexCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    categories: CategoriesCfg = field(default_factory=CategoriesCfg)
    context: ContextCfg = field(default_factory=ContextCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _positive_int(value: int, name: str, minimum: int = 1) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
        raise ConfigError(f"{name} must be an integer >= {minimum}, got {value!r}")


def validate_config(cfg: LoreConfig) -> LoreConfig:
    """Check *cfg* for invalid or inconsistent values.

    Raises:
        ConfigError: On the first problem found.
    """
    _positive_int(cfg.embedding.dimension, "embedding.dimension")
    _positive_int(cfg.embedding.batch_size, "embedding.batch_size")
    if not cfg.embedding.model:
        raise ConfigError("embedding.model must not be empty")

    if cfg.index.backend not in BACKENDS:
        raise ConfigError(
            f"index.backend must be one of {', '.join(BACKENDS)}, got '{cfg.index.backend}'"
        )
    cfg.index.params().validate()

    _positive_int(cfg.retrieval.top_k, "retrieval.top_k", minimum=0)
    factor = cfg.retrieval.overfetch_factor
    if isinstance(factor, bool) or not isinstance(factor, (int, float)) or factor < 1:
        raise ConfigError(f"retrieval.overfetch_factor must be >= 1, got {factor!r}")
    if factor == 1 and any(cfg.categories.keywords.values()):
        raise ConfigError(
            "retrieval.overfetch_factor must be > 1 while category keywords are configured; "
            "filtering an un-enlarged candidate pool starves filtered queries"
        )

    if not cfg.context.separator:
        raise ConfigError("context.separator must not be empty")
    return cfg


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _parse_category_map(
    raw: Any, section: str, defaults: dict[Category, list[str]]
) -> dict[Category, list[str]]:
    """Parse a ``{category: [words...]}`` mapping; categories absent from *raw* keep defaults."""
    if raw is None:
        return defaults
    if not isinstance(raw, dict):
        raise ConfigError(f"categories.{section} must be a mapping of category → list")
    result = dict(defaults)
    for name, words in raw.items():
        try:
            category = Category.from_name(str(name))
        except ValueError as exc:
            raise ConfigError(f"categories.{section}: {exc}") from exc
        if isinstance(words, str):
            words = [words]
        if words is None:
            words = []
        if not isinstance(words, list):
            raise ConfigError(f"categories.{section}.{name} must be a list of strings")
        result[category] = [str(w) for w in words]
    return result


def _cfg_from_dict(data: dict[str, Any]) -> LoreConfig:
    """Build a *LoreConfig* from a merged raw YAML dict."""
    cfg = LoreConfig()

    try:
        if "embedding" in data:
            e = data["embedding"] or {}
            cfg.embedding = EmbeddingCfg(
                model=str(e.get("model", cfg.embedding.model)),
                dimension=int(e.get("dimension", cfg.embedding.dimension)),
                batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
            )

        if "index" in data:
            i = data["index"] or {}
            cfg.index = IndexCfg(
                backend=str(i.get("backend", cfg.index.backend)),
                max_connections=int(i.get("max_connections", cfg.index.max_connections)),
                max_layer=int(i.get("max_layer", cfg.index.max_layer)),
                ef_construction=int(i.get("ef_construction", cfg.index.ef_construction)),
                ef_search=int(i.get("ef_search", cfg.index.ef_search)),
            )

        if "retrieval" in data:
            r = data["retrieval"] or {}
            cfg.retrieval = RetrievalCfg(
                top_k=int(r.get("top_k", cfg.retrieval.top_k)),
                overfetch_factor=float(
                    r.get("overfetch_factor", cfg.retrieval.overfetch_factor)
                ),
            )

        if "context" in data:
            c = data["context"] or {}
            cfg.context = ContextCfg(
                separator=str(c.get("separator", cfg.context.separator)),
                show_scores=bool(c.get("show_scores", cfg.context.show_scores)),
                show_filter=bool(c.get("show_filter", cfg.context.show_filter)),
            )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    if "categories" in data:
        ca = data["categories"] or {}
        if not isinstance(ca, dict):
            raise ConfigError("categories must be a mapping with 'keywords' and/or 'containers'")
        cfg.categories = CategoriesCfg(
            keywords=_parse_category_map(
                ca.get("keywords"), "keywords", cfg.categories.keywords
            ),
            containers=_parse_category_map(
                ca.get("containers"), "containers", cfg.categories.containers
            ),
        )

    return cfg


def _apply_env_overrides(cfg: LoreConfig) -> LoreConfig:
    """Apply LORERAG_* environment variable overrides (layer 1)."""
    if model := os.environ.get("LORERAG_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if dimension := os.environ.get("LORERAG_EMBEDDING_DIMENSION"):
        try:
            cfg.embedding.dimension = int(dimension)
        except ValueError as exc:
            raise ConfigError(
                f"LORERAG_EMBEDDING_DIMENSION must be an integer, got '{dimension}'"
            ) from exc
    if backend := os.environ.get("LORERAG_INDEX_BACKEND"):
        cfg.index.backend = backend
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> LoreConfig:
    """Load, validate and return a merged *LoreConfig*.

    Applies layers in order: global → per-project → env vars.

    Args:
        project_dir: Directory to search for *lorerag.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *LoreConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields, or any
            value is invalid.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 3: global config
    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 1: env var overrides
    cfg = _apply_env_overrides(cfg)

    return validate_config(cfg)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Could not parse config file '{path}': {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping at the top level")
    return data
