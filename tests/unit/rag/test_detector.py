"""Tests for CategoryDetector."""

from __future__ import annotations

import pytest

from lorerag.models import Category
from lorerag.rag.detector import CategoryDetector


@pytest.fixture
def detector() -> CategoryDetector:
    return CategoryDetector()


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Tell me about the king", Category.CHARACTER),
        ("Quel personnage vit ici ?", Category.CHARACTER),
        ("Which city is the capital?", Category.LOCATION),
        ("Describe the northern region", Category.REGION),
        ("What happened in the war?", Category.EVENT),
        ("Which guild controls trade?", Category.FACTION),
        ("Describe the world", Category.WORLD),
    ],
)
def test_detects_single_keyword(detector, text, expected):
    assert detector.detect(text) is expected


def test_earliest_keyword_wins(detector):
    text = "Je suis dans la cité de l'Empire du Nord, le héros parle au roi Arion."
    assert detector.detect(text) is Category.LOCATION


def test_earliest_keyword_wins_regardless_of_category_order(detector):
    assert detector.detect("The war started in this city") is Category.EVENT
    assert detector.detect("The city before the war") is Category.LOCATION


def test_longest_keyword_wins_at_same_position(detector):
    # "king" and "kingdom" both start at the same offset
    assert detector.detect("Which kingdom is largest?") is Category.REGION


def test_case_insensitive(detector):
    assert detector.detect("THE KING SPEAKS") is Category.CHARACTER
    assert detector.detect("La Cité Blanche") is Category.LOCATION


def test_plural_forms_match(detector):
    assert detector.detect("List all characters") is Category.CHARACTER
    assert detector.detect("Les personnages du nord") is Category.CHARACTER


def test_keywords_inside_other_words_do_not_match(detector):
    # "roi" inside "droit", "war" inside "toward"
    assert detector.detect("le droit du sol") is None
    assert detector.detect("walking toward the sea") is None


def test_keywords_followed_by_other_letters_do_not_match(detector):
    assert detector.detect("Who is the strongest warrior?") is None
    assert detector.detect("the wardens of the north") is None
    assert detector.detect("whenever it rains") is None
    assert detector.detect("a heroic deed") is None


def test_character_question_with_warrior_is_not_an_event(detector):
    assert detector.detect("Which character is the strongest warrior?") is Category.CHARACTER


@pytest.mark.parametrize(
    "text,expected",
    [
        ("the heroes of old", Category.CHARACTER),
        ("les royaumes du sud", Category.REGION),
        ("list the cities", Category.LOCATION),
        ("all kings and queens", Category.CHARACTER),
        ("les cités perdues", Category.LOCATION),
    ],
)
def test_plural_endings_match(detector, text, expected):
    assert detector.detect(text) is expected


@pytest.mark.parametrize("text", ["", "   ", "Tell me about Arion", "¿?"])
def test_no_keyword_returns_none(detector, text):
    assert detector.detect(text) is None


def test_custom_keywords_replace_defaults():
    detector = CategoryDetector({Category.CHARACTER: ["npc"]})

    assert detector.detect("which npc sells maps") is Category.CHARACTER
    assert detector.detect("which city") is None


def test_empty_keyword_map_disables_detection():
    detector = CategoryDetector({})

    assert detector.enabled is False
    assert detector.detect("the king") is None


def test_keyword_shared_by_two_categories_goes_to_first():
    detector = CategoryDetector({Category.REGION: ["empire"], Category.FACTION: ["empire"]})
    assert detector.detect("the empire") is Category.REGION
