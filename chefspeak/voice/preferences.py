"""Preference extraction shared by the intent parser rules.

Scans an utterance for fixed keyword sets covering dietary restrictions,
cook-time cues, difficulty, meal type and flavor. Extraction is pure: it
never mutates its input and always returns a fresh bundle, so calling it
twice on the same text yields equal results.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

DIETARY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "vegan": ("vegan", "plant based", "plant-based"),
    "vegetarian": ("vegetarian", "veggie", "meatless", "no meat"),
    "gluten-free": ("gluten free", "gluten-free", "no gluten", "celiac", "coeliac"),
    "dairy-free": ("dairy free", "dairy-free", "no dairy", "lactose free", "lactose intolerant"),
    "nut-free": ("nut free", "nut-free", "no nuts"),
    "keto": ("keto", "ketogenic"),
    "paleo": ("paleo",),
    "low-carb": ("low carb", "low-carb", "fewer carbs"),
}

# Allergens that map onto one of the dietary tags above.
ALLERGEN_TAGS: dict[str, str] = {
    "nut": "nut-free",
    "nuts": "nut-free",
    "peanut": "nut-free",
    "peanuts": "nut-free",
    "tree nut": "nut-free",
    "tree nuts": "nut-free",
    "almonds": "nut-free",
    "gluten": "gluten-free",
    "wheat": "gluten-free",
    "dairy": "dairy-free",
    "milk": "dairy-free",
    "lactose": "dairy-free",
    "cheese": "dairy-free",
    "egg": "egg-free",
    "eggs": "egg-free",
    "soy": "soy-free",
    "shellfish": "shellfish-free",
    "sesame": "sesame-free",
    "fish": "fish-free",
}

ALLERGY_CUES = ("allergic", "allergy", "allergies", "intolerant", "intolerance", "can't eat", "cannot eat")

QUICK_WORDS = ("quick", "quickly", "fast")
HURRY_PHRASES = ("in a hurry", "hurry", "short on time", "no time", "rushed")
QUICK_MINUTES = 30
HURRY_MINUTES = 15

DIFFICULTY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Easy": ("easy", "simple", "beginner", "basic"),
    "Medium": ("medium", "intermediate", "moderate"),
    "Hard": ("hard", "difficult", "challenging", "advanced"),
}

MEAL_TYPE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "breakfast": ("breakfast",),
    "brunch": ("brunch",),
    "lunch": ("lunch",),
    "dinner": ("dinner", "supper"),
    "snack": ("snack", "snacks"),
    "dessert": ("dessert", "desserts"),
}

FLAVOR_KEYWORDS: dict[str, tuple[str, ...]] = {
    "spicy": ("spicy", "hot and spicy", "fiery"),
    "healthy": ("healthy", "nutritious", "light meal"),
    "comfort food": ("comfort food", "comforting", "cozy"),
    "sweet": ("sweet",),
    "savory": ("savory", "savoury"),
    "hearty": ("hearty", "filling"),
    "cheesy": ("cheesy",),
}

NUMBER_WORDS: dict[str, float] = {
    "zero": 0,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
    "eleven": 11,
    "twelve": 12,
    "fifteen": 15,
    "twenty": 20,
    "thirty": 30,
    "forty": 40,
    "forty five": 45,
    "fifty": 50,
    "sixty": 60,
    "ninety": 90,
    "half": 0.5,
    "a": 1,
    "an": 1,
}

_UNIT_WORDS = "one|two|three|four|five|six|seven|eight|nine"
_NUMBER_WORDS_RE = "|".join(
    sorted((re.escape(word) for word in NUMBER_WORDS if word not in {"a", "an", "half"}), key=len, reverse=True)
)
_NUMBER_TOKEN = rf"\d+(?:\.\d+)?|(?:{_NUMBER_WORDS_RE})(?:[\s-](?:{_UNIT_WORDS}))?"
_MINUTES_RE = re.compile(rf"\b({_NUMBER_TOKEN})\s*(?:-\s*)?(?:minutes?|mins?)\b")
_HOURS_RE = re.compile(rf"\b({_NUMBER_TOKEN}|an|a)\s*(?:-\s*)?(?:hours?|hrs?)\b")
_HALF_HOUR_RE = re.compile(r"\bhalf (?:an )?hour\b")
_ALLERGY_TARGET_RE = re.compile(
    r"(?:allergic to|allergy to|intolerant to|can't eat|cannot eat)\s+((?:tree )?[a-z]+)"
    r"|\b((?:tree )?[a-z]+)\s+(?:allergy|allergies|intolerance)\b"
)


@dataclass(frozen=True)
class Preferences:
    dietary: tuple[str, ...] = ()
    cook_time: int | None = None
    difficulty: str | None = None
    meal_type: str | None = None
    flavor: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.dietary or self.cook_time is not None or self.difficulty or self.meal_type or self.flavor)


def parse_number_token(token: str) -> float | None:
    """Convert a numeric string or number word to float."""
    try:
        return float(token)
    except ValueError:
        pass
    token = re.sub(r"[\s-]+", " ", token.strip().lower())
    if token in NUMBER_WORDS:
        return float(NUMBER_WORDS[token])
    parts = token.split()
    if len(parts) == 2 and parts[0] in NUMBER_WORDS and parts[1] in NUMBER_WORDS and NUMBER_WORDS[parts[1]] < 10:
        return float(NUMBER_WORDS[parts[0]] + NUMBER_WORDS[parts[1]])
    return None


def contains_phrase(text: str, phrase: str) -> bool:
    return re.search(rf"(?<![\w-]){re.escape(phrase)}(?![\w-])", text) is not None


def normalize_utterance(text: str) -> str:
    lowered = (text or "").lower().replace("’", "'")
    lowered = re.sub(r"[^\w\s'-]", " ", lowered)
    return re.sub(r"\s+", " ", lowered).strip()


def extract_dietary(text: str) -> list[str]:
    """Return dietary tags in table order; each keyword is detected independently."""
    lowered = normalize_utterance(text)
    found: list[str] = []
    for tag, keywords in DIETARY_KEYWORDS.items():
        if any(contains_phrase(lowered, keyword) for keyword in keywords):
            found.append(tag)
    for tag in _allergy_tags(lowered):
        if tag not in found:
            found.append(tag)
    return found


def has_allergy_cue(text: str) -> bool:
    lowered = normalize_utterance(text)
    return any(contains_phrase(lowered, cue) for cue in ALLERGY_CUES)


def _singularize(word: str) -> str:
    if len(word) > 4 and word.endswith("ies"):
        return word[:-3] + "y"
    if len(word) > 4 and word.endswith(("oes", "ches", "shes", "sses", "xes", "zes")):
        return word[:-2]
    if len(word) > 3 and word.endswith("s") and not word.endswith(("ss", "us")):
        return word[:-1]
    return word


def _allergy_tags(lowered: str) -> list[str]:
    tags: list[str] = []
    for match in _ALLERGY_TARGET_RE.finditer(lowered):
        named, trailing = match.group(1), match.group(2)
        allergen = (named or trailing or "").strip()
        tag = ALLERGEN_TAGS.get(allergen)
        if tag is None:
            # "<word> allergy" only counts for known allergens; "allergic to <word>" is taken at its word.
            if trailing or allergen in {"a", "an", "the", "any", "anything", "some", "food"}:
                continue
            tag = f"{_singularize(allergen)}-free"
        if tag not in tags:
            tags.append(tag)
    return tags


def extract_cook_time(text: str) -> int | None:
    """Explicit durations win over verbal cues like "quick" or "in a hurry"."""
    lowered = normalize_utterance(text)
    match = _MINUTES_RE.search(lowered)
    if match:
        amount = parse_number_token(match.group(1))
        if amount is not None:
            return max(0, int(amount))
    if _HALF_HOUR_RE.search(lowered):
        return 30
    match = _HOURS_RE.search(lowered)
    if match:
        amount = parse_number_token(match.group(1))
        if amount is not None:
            return max(0, int(amount * 60))
    if any(contains_phrase(lowered, phrase) for phrase in HURRY_PHRASES):
        return HURRY_MINUTES
    if any(contains_phrase(lowered, word) for word in QUICK_WORDS):
        return QUICK_MINUTES
    return None


def has_explicit_duration(text: str) -> bool:
    lowered = normalize_utterance(text)
    return bool(_MINUTES_RE.search(lowered) or _HOURS_RE.search(lowered) or _HALF_HOUR_RE.search(lowered))


def _first_keyword(lowered: str, table: dict[str, tuple[str, ...]]) -> str | None:
    for value, keywords in table.items():
        if any(contains_phrase(lowered, keyword) for keyword in keywords):
            return value
    return None


def extract_difficulty(text: str) -> str | None:
    return _first_keyword(normalize_utterance(text), DIFFICULTY_KEYWORDS)


def extract_meal_type(text: str) -> str | None:
    return _first_keyword(normalize_utterance(text), MEAL_TYPE_KEYWORDS)


def extract_flavor(text: str) -> str | None:
    return _first_keyword(normalize_utterance(text), FLAVOR_KEYWORDS)


def extract_preferences(text: str) -> Preferences:
    return Preferences(
        dietary=tuple(extract_dietary(text)),
        cook_time=extract_cook_time(text),
        difficulty=extract_difficulty(text),
        meal_type=extract_meal_type(text),
        flavor=extract_flavor(text),
    )
