"""Ingredient lexicon: canonical names, categories, synonyms and pairings.

The lexicon is loaded once and never mutated, so a single instance is shared
by the parser and any UI helpers without locking. Mentions are located with
word-boundary matching, longest phrase first, so "chicken breast" wins over
the bare "chicken" synonym and each span of the utterance is claimed once.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

LEXICON_VERSION = "2024.1"

CATEGORIES = ("protein", "vegetable", "grain", "dairy", "spice", "other")


@dataclass(frozen=True, slots=True)
class LexiconEntry:
    name: str
    category: str
    pairings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class IngredientMention:
    """A canonical ingredient found at ``start:end`` of the searched text."""

    name: str
    phrase: str
    start: int
    end: int


DEFAULT_ENTRIES: tuple[LexiconEntry, ...] = (
    # Proteins
    LexiconEntry("chicken breast", "protein", ("garlic", "herbs", "lemon")),
    LexiconEntry("ground beef", "protein", ("onion", "tomato", "cheese")),
    LexiconEntry("salmon", "protein", ("dill", "lemon", "asparagus")),
    LexiconEntry("eggs", "protein", ("cheese", "herbs", "vegetables")),
    LexiconEntry("tofu", "protein", ("soy sauce", "ginger", "vegetables")),
    # Vegetables
    LexiconEntry("tomatoes", "vegetable", ("basil", "mozzarella", "garlic")),
    LexiconEntry("onions", "vegetable", ("garlic", "herbs", "oil")),
    LexiconEntry("bell peppers", "vegetable", ("onions", "garlic", "herbs")),
    LexiconEntry("mushrooms", "vegetable", ("garlic", "herbs", "cream")),
    LexiconEntry("spinach", "vegetable", ("garlic", "cheese", "cream")),
    LexiconEntry("broccoli", "vegetable", ("garlic", "cheese", "lemon")),
    LexiconEntry("carrots", "vegetable", ("herbs", "honey", "ginger")),
    # Grains & starches
    LexiconEntry("rice", "grain", ("vegetables", "protein", "herbs")),
    LexiconEntry("pasta", "grain", ("tomato", "cheese", "herbs")),
    LexiconEntry("potatoes", "grain", ("herbs", "cheese", "cream")),
    LexiconEntry("quinoa", "grain", ("vegetables", "herbs", "lemon")),
    # Dairy
    LexiconEntry("cheese", "dairy", ("herbs", "tomato", "pasta")),
    LexiconEntry("milk", "dairy", ("flour", "butter", "sugar")),
    LexiconEntry("yogurt", "dairy", ("herbs", "cucumber", "garlic")),
    LexiconEntry("butter", "dairy", ("herbs", "garlic", "flour")),
    # Spices & herbs
    LexiconEntry("garlic", "spice", ("herbs", "oil", "vegetables")),
    LexiconEntry("ginger", "spice", ("garlic", "soy sauce", "vegetables")),
    LexiconEntry("basil", "spice", ("tomato", "mozzarella", "olive oil")),
    LexiconEntry("oregano", "spice", ("tomato", "cheese", "garlic")),
    LexiconEntry("cumin", "spice", ("chili", "garlic", "onion")),
    LexiconEntry("paprika", "spice", ("chicken", "vegetables", "cream")),
)

# Documented synonyms for lexicon entries.
DEFAULT_SYNONYMS: dict[str, str] = {
    "chicken": "chicken breast",
    "chicken breasts": "chicken breast",
    "chicken thighs": "chicken breast",
    "meat": "ground beef",
    "beef": "ground beef",
    "ground meat": "ground beef",
    "mince": "ground beef",
    "hamburger": "ground beef",
    "fish": "salmon",
    "egg": "eggs",
    "tomato": "tomatoes",
    "onion": "onions",
    "pepper": "bell peppers",
    "peppers": "bell peppers",
    "bell pepper": "bell peppers",
    "capsicum": "bell peppers",
    "mushroom": "mushrooms",
    "carrot": "carrots",
    "potato": "potatoes",
    "spuds": "potatoes",
    "noodles": "pasta",
    "spaghetti": "pasta",
    "penne": "pasta",
    "macaroni": "pasta",
    "yoghurt": "yogurt",
    "parmesan": "cheese",
    "cheddar": "cheese",
    "mozzarella": "cheese",
}

# Everyday terms that are not lexicon entries but should still be recognized.
EXTRA_SYNONYMS: dict[str, str] = {
    "bread": "bread",
    "flour": "flour",
    "sugar": "sugar",
    "lemon": "lemon",
    "lemons": "lemon",
    "lime": "lime",
    "limes": "lime",
    "avocado": "avocado",
    "avocados": "avocado",
    "beans": "beans",
    "black beans": "beans",
    "chickpeas": "chickpeas",
    "lentils": "lentils",
    "cucumber": "cucumber",
    "cucumbers": "cucumber",
    "zucchini": "zucchini",
    "lettuce": "lettuce",
    "corn": "corn",
    "peas": "peas",
    "bacon": "bacon",
    "ham": "ham",
    "pork": "pork",
    "sausage": "sausage",
    "sausages": "sausage",
    "shrimp": "shrimp",
    "prawns": "shrimp",
    "tuna": "tuna",
    "turkey": "turkey",
    "lamb": "lamb",
    "apple": "apples",
    "apples": "apples",
    "banana": "bananas",
    "bananas": "bananas",
    "cream": "cream",
    "sour cream": "sour cream",
    "honey": "honey",
    "olive oil": "olive oil",
    "oil": "oil",
    "soy sauce": "soy sauce",
    "herbs": "herbs",
    "cilantro": "cilantro",
    "parsley": "parsley",
    "dill": "dill",
    "chili": "chili",
    "tortillas": "tortillas",
    "oats": "oats",
    "celery": "celery",
    "cabbage": "cabbage",
    "cauliflower": "cauliflower",
    "asparagus": "asparagus",
    "kale": "kale",
}


class Lexicon:
    """Read-only ingredient table with synonym-aware lookup."""

    def __init__(
        self,
        entries: Iterable[LexiconEntry],
        *,
        synonyms: Mapping[str, str] | None = None,
        extra_synonyms: Mapping[str, str] | None = None,
        version: str = LEXICON_VERSION,
    ) -> None:
        self.version = version
        self._entries: tuple[LexiconEntry, ...] = tuple(entries)
        self._by_name = {entry.name.lower(): entry for entry in self._entries}
        phrases: dict[str, str] = {}
        for source in (extra_synonyms or {}, synonyms or {}):
            for phrase, canonical in source.items():
                phrases[_normalize_phrase(phrase)] = canonical.lower()
        for name in self._by_name:
            phrases[name] = name
        self._phrases = phrases
        ordered = sorted(phrases, key=lambda phrase: (-len(phrase), phrase))
        self._pattern = (
            re.compile(r"\b(" + "|".join(re.escape(phrase) for phrase in ordered) + r")\b") if ordered else None
        )

    @property
    def entries(self) -> tuple[LexiconEntry, ...]:
        return self._entries

    def get(self, name: str) -> LexiconEntry | None:
        return self._by_name.get((name or "").strip().lower())

    def resolve(self, phrase: str) -> str | None:
        """Return the canonical ingredient name for a phrase or synonym."""
        return self._phrases.get(_normalize_phrase(phrase))

    def ingredients_by_category(self, category: str) -> list[LexiconEntry]:
        return [entry for entry in self._entries if entry.category == category]

    def find_mentions(self, text: str) -> list[IngredientMention]:
        """Locate ingredient mentions in ``text`` in order of appearance.

        Each canonical name is reported once, at its first mention.
        """
        if not text or self._pattern is None:
            return []
        lowered = text.lower()
        mentions: list[IngredientMention] = []
        seen: set[str] = set()
        # Alternation is ordered longest-first, so the leftmost match is also the longest there.
        for match in self._pattern.finditer(lowered):
            canonical = self._phrases[match.group(1)]
            if canonical in seen:
                continue
            seen.add(canonical)
            mentions.append(IngredientMention(canonical, match.group(1), match.start(1), match.end(1)))
        return mentions

    def extract(self, text: str) -> list[str]:
        return [mention.name for mention in self.find_mentions(text)]

    def suggest_pairings(self, selected: Sequence[str]) -> list[str]:
        """Union the pairings of the selected ingredients, minus those already selected.

        Order is the order of first appearance, not sorted.
        """
        selected_keys = {(item or "").strip().lower() for item in selected}
        suggestions: list[str] = []
        for item in selected:
            entry = self.get(item)
            if entry is None:
                continue
            for pairing in entry.pairings:
                key = pairing.lower()
                if key in selected_keys or key in suggestions:
                    continue
                suggestions.append(key)
        return suggestions

    @classmethod
    def from_file(cls, path: Path) -> Lexicon:
        """Load a lexicon table from JSON; built-in synonym tables still apply."""
        data = json.loads(path.read_text(encoding="utf-8"))
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Lexicon:
        raw_entries = data.get("ingredients")
        if not isinstance(raw_entries, list):
            raise ValueError("Lexicon data must contain an 'ingredients' list")
        entries: list[LexiconEntry] = []
        for raw in raw_entries:
            if not isinstance(raw, dict):
                raise ValueError(f"Invalid lexicon entry: {raw!r}")
            name = str(raw.get("name") or "").strip().lower()
            if not name:
                raise ValueError(f"Lexicon entry is missing a name: {raw!r}")
            category = str(raw.get("category") or "other").strip().lower()
            if category not in CATEGORIES:
                category = "other"
            pairings = raw.get("pairings") or raw.get("commonPairings") or []
            if not isinstance(pairings, list):
                raise ValueError(f"Lexicon pairings for {name!r} must be a list")
            entries.append(LexiconEntry(name, category, tuple(str(item).strip().lower() for item in pairings)))
        synonyms = data.get("synonyms")
        return cls(
            entries,
            synonyms=synonyms if isinstance(synonyms, dict) else DEFAULT_SYNONYMS,
            extra_synonyms=EXTRA_SYNONYMS,
            version=str(data.get("version") or LEXICON_VERSION),
        )


def _normalize_phrase(value: str) -> str:
    return re.sub(r"\s+", " ", (value or "").strip().lower())


_DEFAULT_LEXICON: Lexicon | None = None


def default_lexicon() -> Lexicon:
    global _DEFAULT_LEXICON
    if _DEFAULT_LEXICON is None:
        _DEFAULT_LEXICON = Lexicon(DEFAULT_ENTRIES, synonyms=DEFAULT_SYNONYMS, extra_synonyms=EXTRA_SYNONYMS)
    return _DEFAULT_LEXICON


def suggest_pairings(selected: Sequence[str], lexicon: Lexicon | None = None) -> list[str]:
    return (lexicon or default_lexicon()).suggest_pairings(selected)
