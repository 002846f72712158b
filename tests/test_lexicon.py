"""Tests for the ingredient lexicon."""

from __future__ import annotations

import json

import pytest

from chefspeak.voice.lexicon import (
    CATEGORIES,
    DEFAULT_ENTRIES,
    DEFAULT_SYNONYMS,
    Lexicon,
    LexiconEntry,
    default_lexicon,
    suggest_pairings,
)


@pytest.fixture
def lexicon():
    return default_lexicon()


class TestDefaultTable:
    def test_every_category_is_known(self):
        assert {entry.category for entry in DEFAULT_ENTRIES} <= set(CATEGORIES)

    def test_synonyms_point_at_entries(self, lexicon):
        names = {entry.name for entry in lexicon.entries}
        assert set(DEFAULT_SYNONYMS.values()) <= names

    def test_default_lexicon_is_shared(self):
        assert default_lexicon() is default_lexicon()

    def test_ingredients_by_category(self, lexicon):
        dairy = [entry.name for entry in lexicon.ingredients_by_category("dairy")]
        assert dairy == ["cheese", "milk", "yogurt", "butter"]


class TestResolve:
    @pytest.mark.parametrize(
        ("phrase", "canonical"),
        [
            ("chicken", "chicken breast"),
            ("Chicken  Breast", "chicken breast"),
            ("meat", "ground beef"),
            ("spaghetti", "pasta"),
            ("lemons", "lemon"),
        ],
    )
    def test_known_phrases(self, lexicon, phrase, canonical):
        assert lexicon.resolve(phrase) == canonical

    def test_unknown(self, lexicon):
        assert lexicon.resolve("unobtainium") is None

    def test_get_entry(self, lexicon):
        entry = lexicon.get(" Salmon ")
        assert entry is not None
        assert entry.category == "protein"
        assert lexicon.get("lemon") is None


class TestFindMentions:
    def test_order_of_appearance(self, lexicon):
        assert lexicon.extract("rice, then salmon and garlic") == ["rice", "salmon", "garlic"]

    def test_longest_phrase_wins(self, lexicon):
        mentions = lexicon.find_mentions("i have chicken breast")
        assert len(mentions) == 1
        assert mentions[0].name == "chicken breast"
        assert mentions[0].phrase == "chicken breast"

    def test_word_boundaries(self, lexicon):
        assert lexicon.extract("chickpeas") == ["chickpeas"]
        assert lexicon.extract("riceberry") == []

    def test_each_ingredient_reported_once(self, lexicon):
        mentions = lexicon.find_mentions("egg and eggs and more egg")
        assert [mention.name for mention in mentions] == ["eggs"]
        assert mentions[0].start == 0

    def test_span_points_into_text(self, lexicon):
        text = "some fresh basil"
        mention = lexicon.find_mentions(text)[0]
        assert text[mention.start : mention.end] == "basil"

    def test_empty_text(self, lexicon):
        assert lexicon.find_mentions("") == []


class TestPairings:
    def test_union_without_selected(self, lexicon):
        assert lexicon.suggest_pairings(["tomatoes", "garlic"]) == ["basil", "mozzarella", "herbs", "oil", "vegetables"]

    def test_unknown_items_are_ignored(self):
        assert suggest_pairings(["unobtainium", "salmon"]) == ["dill", "lemon", "asparagus"]

    def test_empty_selection(self, lexicon):
        assert lexicon.suggest_pairings([]) == []


class TestLoading:
    def test_from_dict(self):
        lexicon = Lexicon.from_dict(
            {
                "version": "test-1",
                "ingredients": [
                    {"name": "Tempeh", "category": "protein", "commonPairings": ["Soy Sauce"]},
                    {"name": "za'atar", "category": "seasoning"},
                ],
                "synonyms": {"fermented soy": "tempeh"},
            }
        )
        assert lexicon.version == "test-1"
        assert lexicon.get("tempeh") == LexiconEntry("tempeh", "protein", ("soy sauce",))
        assert lexicon.get("za'atar").category == "other"
        assert lexicon.resolve("fermented soy") == "tempeh"

    def test_from_file(self, tmp_path):
        path = tmp_path / "lexicon.json"
        path.write_text(json.dumps({"ingredients": [{"name": "miso", "category": "other"}]}), encoding="utf-8")
        lexicon = Lexicon.from_file(path)
        assert lexicon.extract("a spoon of miso") == ["miso"]

    @pytest.mark.parametrize(
        "data",
        [
            {},
            {"ingredients": "rice"},
            {"ingredients": ["rice"]},
            {"ingredients": [{"category": "grain"}]},
            {"ingredients": [{"name": "rice", "pairings": "beans"}]},
        ],
    )
    def test_invalid_data(self, data):
        with pytest.raises(ValueError):
            Lexicon.from_dict(data)
