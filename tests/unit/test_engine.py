"""End-to-end tests for LoreEngine with a deterministic embedder."""

from __future__ import annotations

import json
import threading

import pytest

from lorerag.db.index import SqliteVecIndex
from lorerag.engine import LoreEngine
from lorerag.errors import ConfigError, EmbeddingError, LoadError, ParseError, QueryError
from lorerag.models import Category


def _names(result):
    return [item.name for item in result.items]


# ------------------------------------------------------------------
# Construction
# ------------------------------------------------------------------


def test_dimension_mismatch_rejected(test_config, embedder):
    with pytest.raises(ConfigError, match="64-dimensional"):
        LoreEngine(test_config, embedder=type(embedder)(dimension=64))


def test_invalid_config_rejected(test_config, embedder):
    test_config.retrieval.top_k = -2
    with pytest.raises(ConfigError, match="retrieval.top_k"):
        LoreEngine(test_config, embedder=embedder)


def test_unloaded_engine_returns_empty_context(engine, embedder):
    assert engine.is_loaded is False
    assert engine.embedding_dimension == embedder.dimension
    assert engine.query("Arion") == ""
    assert embedder.calls == []


def test_custom_index_factory_is_used(test_config, embedder, sample_lore):
    built: list[SqliteVecIndex] = []

    def factory(dimension, params):
        index = SqliteVecIndex(dimension, params)
        built.append(index)
        return index

    engine = LoreEngine(test_config, embedder=embedder, index_factory=factory)
    engine.load(sample_lore)

    assert len(built) == 2  # initial empty index + the loaded one
    assert len(built[-1]) == 8


def test_reload_closes_replaced_index(test_config, embedder, sample_lore):
    built: list[SqliteVecIndex] = []
    closed: list[SqliteVecIndex] = []

    class RecordingIndex(SqliteVecIndex):
        def close(self):
            closed.append(self)
            super().close()

    def factory(dimension, params):
        built.append(RecordingIndex(dimension, params))
        return built[-1]

    engine = LoreEngine(test_config, embedder=embedder, index_factory=factory)
    engine.load(sample_lore)
    engine.load(sample_lore)

    assert closed == built[:2]
    assert len(built[1]) == 0
    assert len(built[2]) == 8
    assert engine.retrieve("Frosthold", 1).items[0].name == "Frosthold"


def test_failed_load_does_not_close_current_index(loaded_engine):
    with pytest.raises(ParseError):
        loaded_engine.load("not json")
    assert len(loaded_engine.retrieve("Frosthold", 3)) == 3


# ------------------------------------------------------------------
# Loading
# ------------------------------------------------------------------


def test_load_embeds_every_item_in_one_batch(engine, embedder, sample_lore):
    result = engine.load(sample_lore)

    assert len(embedder.calls) == 1
    assert len(embedder.calls[0]) == 8
    assert all(item.is_embedded for item in result.items)
    assert engine.items == tuple(result.items)
    assert engine.is_loaded


def test_stats(loaded_engine):
    stats = loaded_engine.stats()

    assert stats.total_items == 8
    assert stats.category_counts == {
        "World": 1, "Region": 2, "Location": 1, "Character": 2, "Faction": 1, "Event": 1,
    }


def test_load_from_path_and_json_text(engine, sample_lore, tmp_path):
    path = tmp_path / "lore.json"
    path.write_text(json.dumps(sample_lore), encoding="utf-8")

    from_path = engine.load(path)
    from_text = engine.load(json.dumps(sample_lore))

    assert from_path.items == from_text.items
    assert len(engine.items) == 8


def test_load_missing_file_raises_load_error(engine, tmp_path):
    with pytest.raises(LoadError, match="missing.json"):
        engine.load(tmp_path / "missing.json")


def test_load_is_idempotent(engine, sample_lore):
    engine.load(sample_lore)
    first_items = engine.items
    first_answer = engine.query("Frosthold")

    engine.load(sample_lore)
    assert engine.items == first_items
    assert engine.query("Frosthold") == first_answer


def test_load_reports_diagnostics(engine):
    result = engine.load({"characters": [{"name": 7}, {"name": "Arion"}]})

    assert _names(result) == ["Arion"]
    assert len(result.diagnostics) == 1


def test_empty_document_gives_empty_corpus(engine):
    engine.load({"characters": []})

    assert engine.is_loaded
    assert engine.items == ()
    assert engine.query("the king") == ""


def test_failed_parse_keeps_previous_corpus(loaded_engine):
    before = loaded_engine.items

    with pytest.raises(ParseError):
        loaded_engine.load('{"worlds": [')

    assert loaded_engine.items == before
    assert loaded_engine.retrieve("Frosthold", 1).items[0].name == "Frosthold"


def test_failed_embedding_keeps_previous_corpus(loaded_engine, embedder, monkeypatch):
    before = loaded_engine.items

    def fail(texts):
        raise EmbeddingError("provider down")

    monkeypatch.setattr(embedder, "embed_batch", fail)
    with pytest.raises(EmbeddingError, match="provider down"):
        loaded_engine.load({"characters": [{"name": "Newcomer"}]})
    monkeypatch.undo()

    assert loaded_engine.items == before
    assert loaded_engine.retrieve("Frosthold", 1).items[0].name == "Frosthold"


# ------------------------------------------------------------------
# Querying
# ------------------------------------------------------------------


def test_exact_name_comes_back_first(loaded_engine):
    for item in loaded_engine.items:
        assert loaded_engine.retrieve(item.name, 1).items[0].name == item.name


def test_query_renders_context_line(loaded_engine):
    context = loaded_engine.query("Frosthold", 1)

    assert context.startswith("1. [Location] Frosthold (in 'Aetheria > North'): A fortress carved in ice.")


def test_category_hint_restricts_results(loaded_engine):
    result = loaded_engine.retrieve("which character lives in the highlands")

    assert result.category is Category.CHARACTER
    assert {item.category for item in result.items} == {Category.CHARACTER}
    assert _names(result) == ["Arion", "Lyssa"]
    assert result.hits[0].score > result.hits[1].score


def test_category_hint_top_one(loaded_engine):
    context = loaded_engine.query("highlands character", 1)

    assert context.startswith("Filter: Character only\n\n1. [Character] Arion (in 'Aetheria > North')")
    assert "Lyssa" not in context


def test_hierarchy_is_reported(loaded_engine):
    arion = loaded_engine.retrieve("Arion", 1).items[0]

    assert arion.hierarchy_path == ("Aetheria", "North")
    assert arion.parent == "North"


def test_results_have_no_duplicates_and_respect_k(loaded_engine):
    result = loaded_engine.retrieve("the continent and the highlands", 5)

    ids = [item.id for item in result.items]
    assert len(ids) == 5
    assert len(set(ids)) == 5


def test_k_larger_than_corpus(loaded_engine):
    assert len(loaded_engine.retrieve("Tell me about Aetheria", 50)) == 8


def test_k_zero_returns_empty_string(loaded_engine):
    assert loaded_engine.query("Frosthold", 0) == ""


def test_negative_k_rejected(loaded_engine, embedder):
    calls_before = len(embedder.calls)
    with pytest.raises(QueryError):
        loaded_engine.query("Frosthold", -1)
    assert len(embedder.calls) == calls_before


def test_empty_query_returns_results_without_filter(loaded_engine):
    result = loaded_engine.retrieve("", 2)

    assert result.category is None
    assert len(result) == 2
    assert not loaded_engine.query("", 2).startswith("Filter:")


def test_default_k_comes_from_config(test_config, embedder, sample_lore):
    test_config.retrieval.top_k = 5
    engine = LoreEngine(test_config, embedder=embedder)
    engine.load(sample_lore)

    assert len(engine.retrieve("Tell me about Aetheria")) == 5


def test_concurrent_queries_agree(loaded_engine):
    expected = loaded_engine.query("Frosthold")
    answers: list[str] = []
    lock = threading.Lock()

    def worker():
        answer = loaded_engine.query("Frosthold")
        with lock:
            answers.append(answer)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert answers == [expected] * 8
