"""Intent parsing for ChefSpeak voice commands.

Turns a finalized transcript into a structured :class:`Command`. Parsing is an
ordered cascade of rules, each a ``(name, predicate, handler)`` triple, and the
first rule whose predicate matches builds the command. Rules overlap on
purpose ("quick vegetarian dinner" is both a dietary and a time request), so
the order below is part of the behavior:

1. ingredients      - "I have chicken and rice", "what can I do with 2 cups of flour"
2. meal_planning    - "what can I make for dinner", "lunch ideas"
3. dietary          - "I'm allergic to nuts", "vegan please"
4. time             - "something quick", "I'm in a hurry", "under 20 minutes"
5. flavor           - "something spicy", "healthy Thai food"
6. recipe_lookup    - "recipe for lasagna", "how to make pancakes"
7. cuisine / difficulty / generic_search
8. shopping_list    - "add missing ingredients to my shopping list"
9. narration        - "read me the instructions"
10. help
11. fallback search with the whole transcript

Parsing never raises and never returns ``unknown``: anything unrecognized
becomes a search for the spoken text.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, replace

from .commands import Command
from .lexicon import IngredientMention, Lexicon, default_lexicon
from .preferences import (
    NUMBER_WORDS,
    Preferences,
    contains_phrase,
    extract_preferences,
    has_allergy_cue,
    normalize_utterance,
    parse_number_token,
)

LOGGER = logging.getLogger(__name__)

INGREDIENT_CUES = ("with", "using", "i have", "i've got", "got", "available", "ingredients")
# "the ingredients" / "missing ingredients" talk about a recipe, not the user's pantry.
_INGREDIENTS_CUE_RE = re.compile(r"(?<!the )(?<!missing )(?<!recipe )\bingredients\b")

# Ingredients named after one of these are not on hand: "with no meat", "allergic to fish".
NEGATION_CUES = (
    "no",
    "without",
    "avoid",
    "avoiding",
    "except",
    "free of",
    "allergic to",
    "intolerant to",
    "can't eat",
    "cannot eat",
    "don't have",
    "do not have",
    "ran out of",
    "run out of",
)
_NEGATION_RE = re.compile(r"(?<![\w-])(?:" + "|".join(re.escape(cue) for cue in NEGATION_CUES) + r")(?![\w-])")
# A negation reaches across a list ("no meat or cheese") up to the next clause.
_CLAUSE_BREAK_RE = re.compile(
    r"(?<![\w-])(?:but|i|i'm|i've|we|we've|have|has|got|with|using|plus|also|then)(?![\w-])"
)

# Flavor words that also name an ingredient variety ("sweet potato", "sweet corn").
VARIETY_FLAVORS = ("sweet",)

MEAL_PLANNING_PHRASES = (
    "what can i make",
    "what can i cook",
    "what should i make",
    "what should i cook",
    "what should we eat",
    "what should i eat",
    "what to cook",
    "what to make",
    "meal ideas",
    "dinner ideas",
    "lunch ideas",
    "breakfast ideas",
    "ideas for dinner",
    "ideas for lunch",
    "ideas for breakfast",
    "meal plan",
    "plan my meals",
    "plan a meal",
    "suggest a meal",
)

LOOKUP_PHRASES = (
    "recipe for",
    "recipes for",
    "how to make",
    "how do i make",
    "how do you make",
    "how to cook",
    "how do i cook",
)
_LOOKUP_STRIP_RE = re.compile(
    r"\b(?:recipes? for|how (?:to|do i|do you) (?:make|cook)|show me|find|give me|a recipe|please)\b"
)

CUISINES = (
    "italian",
    "indian",
    "mexican",
    "french",
    "japanese",
    "mediterranean",
    "chinese",
    "thai",
    "greek",
    "korean",
    "spanish",
    "vietnamese",
    "middle eastern",
    "american",
)

GENERIC_SEARCH_TRIGGERS = ("find", "search", "show me", "give me", "i want", "look for", "looking for")
_GENERIC_STRIP_RE = re.compile(r"\b(?:find(?: me)?|search(?: for)?|show me|give me|i want(?: to make)?|look(?:ing)? for)\b")
_LEADING_FILLER_RE = re.compile(r"^(?:(?:a|an|the|some|me|for|to)\s+)+")

SHOPPING_LIST_PHRASES = (
    "shopping list",
    "grocery list",
    "missing ingredients",
    "add to list",
    "add to my list",
    "add it to my list",
    "add them to my list",
)
_SHOPPING_LIST_STRIP_RE = re.compile(
    r"\b(?:(?:to|onto|on|in|into)\s+)?(?:my\s+|the\s+|a\s+)?(?:(?:shopping|grocery)\s+)?list\b"
)
_RECIPE_REFERENCE_RE = re.compile(
    r"\b(?:for|from|of)\s+(?:the\s+|my\s+)?([a-z][a-z '-]*?)(?:\s+recipe)?$"
)
DEICTIC_RECIPES = {"this", "that", "this one", "that one", "current", "it", "recipe", "the recipe"}

NARRATION_VERBS = ("read", "tell me", "explain", "walk me through", "go through", "say")
NARRATION_TARGETS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("read_nutrition", ("nutrition", "nutritional", "calories", "nutrients")),
    ("read_ingredients", ("ingredients", "ingredient list")),
    ("read_instructions", ("instructions", "steps", "directions", "method")),
    ("read_recipe", ("recipe",)),
)
NARRATION_FOLLOW_UPS = {
    "read_recipe": "Which recipe would you like me to read?",
    "read_ingredients": "Which recipe's ingredients should I read?",
    "read_instructions": "Which recipe's instructions should I walk you through?",
    "read_nutrition": "Which recipe's nutrition information would you like to hear?",
}
NARRATION_MESSAGES = {
    "read_recipe": "Reading the recipe",
    "read_ingredients": "Reading the ingredients",
    "read_instructions": "Reading the instructions",
    "read_nutrition": "Reading the nutrition information",
}

HELP_PHRASES = ("help", "what can you do", "what can i say", "commands", "how does this work")
HELP_MESSAGE = (
    'You can say things like: "Recipe for pasta", "I have chicken and rice", "Show me Italian food", '
    '"Quick vegetarian dinner", "Add missing ingredients to my shopping list", or "Read the instructions"'
)

UNITS = (
    "cups?",
    "tablespoons?",
    "tbsp",
    "teaspoons?",
    "tsp",
    "grams?",
    "g",
    "kilograms?",
    "kilos?",
    "kg",
    "pounds?",
    "lbs?",
    "ounces?",
    "oz",
    "cans?",
    "cloves?",
    "pieces?",
    "slices?",
    "bunch(?:es)?",
    "handfuls?",
    "liters?",
    "litres?",
    "ml",
    "pinch(?:es)?",
    "packs?",
    "bags?",
)
VAGUE_QUANTITIES = ("a few", "a couple of", "a little", "a bit of", "a lot of", "lots of", "plenty of", "some")
_NUMBER_RE = r"\d+(?:\.\d+)?|" + "|".join(
    sorted((re.escape(word) for word in NUMBER_WORDS if word not in {"a", "an"}), key=len, reverse=True)
)
_UNIT_RE = "|".join(UNITS)
_QUANTITY_PREFIX_RE = re.compile(
    rf"(?:\b(?P<amount>{_NUMBER_RE})\s+(?P<unit>{_UNIT_RE})\s+(?:of\s+)?"
    rf"|\b(?P<count>{_NUMBER_RE})\s+"
    rf"|\b(?P<vague>{'|'.join(re.escape(v) for v in VAGUE_QUANTITIES)})\s+)$"
)
_SERVINGS_RE = re.compile(
    rf"\b(?:serves|feeds|serving)\s+(?P<a>{_NUMBER_RE})\b"
    rf"|\bfor\s+(?P<b>{_NUMBER_RE})\s+(?:people|persons|servings|guests|of us)\b"
    rf"|\bfamily of\s+(?P<c>{_NUMBER_RE})\b"
)

GENERIC_FOLLOW_UPS = (
    "Would you like something quick or do you have time for a bigger meal?",
    "Are you in the mood for any particular cuisine?",
    "Should I look for easy recipes or are you up for a challenge?",
)


@dataclass(frozen=True)
class Utterance:
    """A transcript prepared once and shared by every rule."""

    raw: str
    text: str
    mentions: tuple[IngredientMention, ...]
    preferences: Preferences

    @property
    def ingredients(self) -> list[str]:
        return [mention.name for mention in self.mentions]

    def has_any(self, phrases: tuple[str, ...]) -> bool:
        return any(contains_phrase(self.text, phrase) for phrase in phrases)


@dataclass(frozen=True)
class IntentRule:
    name: str
    matches: Callable[[Utterance], bool]
    build: Callable[[Utterance], Command]


def _join_items(items: list[str]) -> str:
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    return ", ".join(items[:-1]) + " and " + items[-1]


def _strip_query(text: str, pattern: re.Pattern[str]) -> str:
    query = pattern.sub(" ", text)
    query = re.sub(r"\s+", " ", query).strip()
    query = _LEADING_FILLER_RE.sub("", query).strip()
    return query or "recipes"


def _find_cuisine(text: str) -> str | None:
    for cuisine in CUISINES:
        if contains_phrase(text, cuisine):
            return cuisine
    return None


def _extract_servings(text: str) -> int | None:
    match = _SERVINGS_RE.search(text)
    if not match:
        return None
    token = match.group("a") or match.group("b") or match.group("c")
    amount = parse_number_token(token) if token else None
    if amount is None or amount <= 0:
        return None
    return int(amount)


_UNIT_WORD_RE = re.compile(rf"^(?:{_UNIT_RE})$")


def extract_quantities(text: str, mentions: tuple[IngredientMention, ...]) -> dict[str, str]:
    """Bind quantities that directly precede an ingredient mention.

    Supports ``<number> <unit> of <ingredient>``, ``<number> <ingredient>`` and
    vague quantifiers such as "a few" or "some".
    """
    quantities: dict[str, str] = {}
    for mention in mentions:
        match = _QUANTITY_PREFIX_RE.search(text[: mention.start])
        if not match:
            continue
        if match.group("amount"):
            quantities[mention.name] = f"{match.group('amount')} {match.group('unit')}"
        elif match.group("count"):
            quantities[mention.name] = match.group("count")
        else:
            quantities[mention.name] = match.group("vague")
    return quantities


def describe_item(name: str, quantity: str | None) -> str:
    if not quantity:
        return name
    last_word = quantity.split()[-1]
    if _UNIT_WORD_RE.match(last_word):
        return f"{quantity} of {name}"
    return f"{quantity} {name}"


def mask_negated(text: str) -> str:
    """Blank out the negated parts of ``text``, keeping every offset in place."""
    masked = text
    for cue in _NEGATION_RE.finditer(text):
        stop = _CLAUSE_BREAK_RE.search(text, cue.end())
        end = stop.start() if stop else len(text)
        masked = masked[: cue.end()] + " " * (end - cue.end()) + masked[end:]
    return masked


def _flavor_is_variety(text: str, flavor: str | None, mentions: tuple[IngredientMention, ...]) -> bool:
    if flavor not in VARIETY_FLAVORS:
        return False
    starts = {mention.start for mention in mentions}
    follows = [match.end() for match in re.finditer(rf"(?<![\w-]){re.escape(flavor)}\s+", text)]
    return bool(follows) and all(position in starts for position in follows)


class IntentParser:
    """Ordered rule cascade turning transcripts into commands."""

    def __init__(self, lexicon: Lexicon | None = None, logger: logging.Logger | None = None) -> None:
        self.lexicon = lexicon or default_lexicon()
        self.logger = logger or LOGGER
        self.rules: list[IntentRule] = [
            IntentRule("ingredients", self._is_ingredient_utterance, self._build_ingredients),
            IntentRule("meal_planning", self._is_meal_planning, self._build_meal_planning),
            IntentRule("dietary", self._is_dietary, self._build_dietary),
            IntentRule("time", self._is_time_pressure, self._build_time),
            IntentRule("flavor", self._is_flavor, self._build_flavor),
            IntentRule("recipe_lookup", self._is_recipe_lookup, self._build_recipe_lookup),
            IntentRule("cuisine", self._is_cuisine, self._build_cuisine),
            IntentRule("difficulty", self._is_difficulty, self._build_difficulty),
            IntentRule("generic_search", self._is_generic_search, self._build_generic_search),
            IntentRule("shopping_list", self._is_shopping_list, self._build_shopping_list),
            IntentRule("narration", self._is_narration, self._build_narration),
            IntentRule("help", self._is_help, self._build_help),
        ]

    def prepare(self, transcript: str) -> Utterance:
        text = normalize_utterance(transcript)
        mentions = tuple(self.lexicon.find_mentions(mask_negated(text)))
        preferences = extract_preferences(text)
        if _flavor_is_variety(text, preferences.flavor, mentions):
            preferences = replace(preferences, flavor=None)
        return Utterance(raw=transcript or "", text=text, mentions=mentions, preferences=preferences)

    def match_rule(self, transcript: str) -> str | None:
        """Name of the first rule that claims the transcript, or None for the fallback."""
        utterance = self.prepare(transcript)
        for rule in self.rules:
            if rule.matches(utterance):
                return rule.name
        return None

    def parse(self, transcript: str) -> Command:
        try:
            utterance = self.prepare(transcript)
            for rule in self.rules:
                if rule.matches(utterance):
                    return rule.build(utterance)
            return self._build_fallback(utterance)
        except Exception:
            self.logger.exception("Intent rule failed for transcript %r; falling back to search", transcript)
            return self._fallback_for_text(transcript)

    # ========================================================================
    # 1. Ingredient-bearing utterances
    # ========================================================================

    @staticmethod
    def _has_ingredient_cue(utterance: Utterance) -> bool:
        for cue in INGREDIENT_CUES:
            if cue == "ingredients":
                if _INGREDIENTS_CUE_RE.search(utterance.text):
                    return True
            elif contains_phrase(utterance.text, cue):
                return True
        return False

    def _is_ingredient_utterance(self, utterance: Utterance) -> bool:
        return bool(utterance.mentions) and self._has_ingredient_cue(utterance)

    def _build_ingredients(self, utterance: Utterance) -> Command:
        ingredients = utterance.ingredients
        prefs = utterance.preferences
        quantities = extract_quantities(utterance.text, utterance.mentions)
        described = [describe_item(name, quantities.get(name)) for name in ingredients]
        return Command(
            action="ingredients",
            ingredients=ingredients,
            quantities=quantities,
            dietary_restrictions=list(prefs.dietary),
            cook_time=prefs.cook_time,
            difficulty=prefs.difficulty,
            meal_type=prefs.meal_type,
            servings=_extract_servings(utterance.text),
            conversation_context="ingredient_search",
            follow_up_question=self._ingredient_follow_up(ingredients, prefs),
            message=f"Got it! You have {_join_items(described)}.",
        )

    def _ingredient_follow_up(self, ingredients: list[str], prefs: Preferences) -> str:
        if len(ingredients) == 1:
            name = ingredients[0]
            pairings = self.lexicon.suggest_pairings([name])
            if pairings:
                return f"What else do you have to go with {name}? It pairs well with {_join_items(pairings)}."
            return f"What else do you have to go with {name}?"
        if len(ingredients) >= 3 and prefs.cook_time is None:
            return "How much time do you have to cook?"
        if not prefs.dietary:
            return "Do you have any dietary restrictions I should know about?"
        return GENERIC_FOLLOW_UPS[len(ingredients) % len(GENERIC_FOLLOW_UPS)]

    # ========================================================================
    # 2. Meal planning
    # ========================================================================

    @staticmethod
    def _is_meal_planning(utterance: Utterance) -> bool:
        return utterance.has_any(MEAL_PLANNING_PHRASES)

    def _build_meal_planning(self, utterance: Utterance) -> Command:
        prefs = utterance.preferences
        meal = prefs.meal_type or "meal"
        return Command(
            action="conversation",
            conversation_context="meal_planning",
            meal_type=prefs.meal_type,
            dietary_restrictions=list(prefs.dietary),
            cook_time=prefs.cook_time,
            difficulty=prefs.difficulty,
            ingredients=utterance.ingredients,
            quantities=extract_quantities(utterance.text, utterance.mentions),
            servings=_extract_servings(utterance.text),
            follow_up_question="What ingredients do you have on hand?",
            message=f"Let's plan your {meal}!",
        )

    # ========================================================================
    # 3-5. Preference filters
    # ========================================================================

    @staticmethod
    def _is_dietary(utterance: Utterance) -> bool:
        return bool(utterance.preferences.dietary) or has_allergy_cue(utterance.text)

    def _build_dietary(self, utterance: Utterance) -> Command:
        prefs = utterance.preferences
        tags = list(prefs.dietary)
        if tags:
            message = f"Showing {_join_items(tags)} recipes"
            follow_up = None
        else:
            message = "I can filter recipes around your allergies."
            follow_up = "What are you allergic to? I'll leave those ingredients out."
        return Command(
            action="filter",
            dietary_restrictions=tags,
            cook_time=prefs.cook_time,
            difficulty=prefs.difficulty,
            meal_type=prefs.meal_type,
            cuisine=_find_cuisine(utterance.text),
            conversation_context="dietary_filtering",
            follow_up_question=follow_up,
            message=message,
        )

    @staticmethod
    def _is_time_pressure(utterance: Utterance) -> bool:
        return utterance.preferences.cook_time is not None

    def _build_time(self, utterance: Utterance) -> Command:
        prefs = utterance.preferences
        minutes = prefs.cook_time if prefs.cook_time is not None else 30
        return Command(
            action="filter",
            cook_time=minutes,
            difficulty=prefs.difficulty,
            meal_type=prefs.meal_type,
            cuisine=_find_cuisine(utterance.text),
            conversation_context="time_based",
            message=f"Showing quick recipes (under {minutes} minutes)",
        )

    @staticmethod
    def _is_flavor(utterance: Utterance) -> bool:
        return utterance.preferences.flavor is not None

    def _build_flavor(self, utterance: Utterance) -> Command:
        prefs = utterance.preferences
        cuisine = _find_cuisine(utterance.text)
        label = f"{prefs.flavor} {cuisine}" if cuisine else prefs.flavor
        return Command(
            action="filter",
            query=prefs.flavor,
            cuisine=cuisine,
            difficulty=prefs.difficulty,
            meal_type=prefs.meal_type,
            conversation_context="flavor_based",
            message=f"Showing {label} recipes",
        )

    # ========================================================================
    # 6-7. Lookup, cuisine, difficulty and generic search
    # ========================================================================

    @staticmethod
    def _is_recipe_lookup(utterance: Utterance) -> bool:
        return utterance.has_any(LOOKUP_PHRASES)

    def _build_recipe_lookup(self, utterance: Utterance) -> Command:
        query = _strip_query(utterance.text, _LOOKUP_STRIP_RE)
        return Command(action="search", query=query, message=f"Searching for {query} recipes")

    @staticmethod
    def _is_cuisine(utterance: Utterance) -> bool:
        return _find_cuisine(utterance.text) is not None

    def _build_cuisine(self, utterance: Utterance) -> Command:
        cuisine = _find_cuisine(utterance.text)
        return Command(action="filter", cuisine=cuisine, message=f"Showing {cuisine} recipes")

    @staticmethod
    def _is_difficulty(utterance: Utterance) -> bool:
        return utterance.preferences.difficulty is not None

    def _build_difficulty(self, utterance: Utterance) -> Command:
        difficulty = utterance.preferences.difficulty or "Easy"
        return Command(action="filter", difficulty=difficulty, message=f"Showing {difficulty.lower()} recipes")

    @staticmethod
    def _is_generic_search(utterance: Utterance) -> bool:
        return utterance.has_any(GENERIC_SEARCH_TRIGGERS)

    def _build_generic_search(self, utterance: Utterance) -> Command:
        query = _strip_query(utterance.text, _GENERIC_STRIP_RE)
        return Command(action="search", query=query, message=f"Searching for {query}")

    # ========================================================================
    # 8. Shopping list
    # ========================================================================

    @staticmethod
    def _is_shopping_list(utterance: Utterance) -> bool:
        return utterance.has_any(SHOPPING_LIST_PHRASES)

    @staticmethod
    def _recipe_reference(text: str) -> tuple[str | None, bool]:
        """Return ``(recipe_name, refers_to_current_recipe)``."""
        cleaned = re.sub(r"\s+", " ", _SHOPPING_LIST_STRIP_RE.sub(" ", text)).strip()
        match = _RECIPE_REFERENCE_RE.search(cleaned)
        if not match:
            return None, False
        name = match.group(1).strip()
        if name in DEICTIC_RECIPES or name.endswith(" recipe") and name[: -len(" recipe")] in DEICTIC_RECIPES:
            return None, True
        if name in {"ingredients", "missing ingredients"}:
            return None, False
        return name, False

    def _build_shopping_list(self, utterance: Utterance) -> Command:
        text = utterance.text
        ingredients = utterance.ingredients
        quantities = extract_quantities(text, utterance.mentions)
        recipe, current = self._recipe_reference(text)
        needs_recipe = recipe is None and not current

        if contains_phrase(text, "missing") or (contains_phrase(text, "need") and not ingredients):
            target = recipe or "this recipe"
            return Command(
                action="shopping_list",
                shopping_list_action="add_missing",
                query=recipe,
                follow_up_question="Which recipe should I check for missing ingredients?" if needs_recipe else None,
                message=f"Adding the missing ingredients for {target} to your shopping list",
            )
        if contains_phrase(text, "create") or contains_phrase(text, "from recipe") or contains_phrase(
            text, "from the recipe"
        ):
            target = recipe or "this recipe"
            return Command(
                action="shopping_list",
                shopping_list_action="create_from_recipe",
                query=recipe,
                follow_up_question=(
                    "Which recipe would you like to build a shopping list from?" if needs_recipe else None
                ),
                message=f"Creating a shopping list from {target}",
            )
        if ingredients:
            described = [describe_item(name, quantities.get(name)) for name in ingredients]
            return Command(
                action="shopping_list",
                shopping_list_action="add_ingredients",
                ingredients=ingredients,
                quantities=quantities,
                message=f"Adding {_join_items(described)} to your shopping list",
            )
        return Command(
            action="shopping_list",
            shopping_list_action="add_ingredients",
            follow_up_question="What would you like to add to your shopping list?",
            message="Let's add to your shopping list.",
        )

    # ========================================================================
    # 9. Narration
    # ========================================================================

    @staticmethod
    def _narration_action(utterance: Utterance) -> str | None:
        if not utterance.has_any(NARRATION_VERBS):
            return None
        for action, targets in NARRATION_TARGETS:
            if utterance.has_any(targets):
                return action
        return None

    def _is_narration(self, utterance: Utterance) -> bool:
        return self._narration_action(utterance) is not None

    def _build_narration(self, utterance: Utterance) -> Command:
        action = self._narration_action(utterance) or "read_recipe"
        recipe, current = self._recipe_reference(utterance.text)
        follow_up = NARRATION_FOLLOW_UPS[action] if recipe is None and not current else None
        message = NARRATION_MESSAGES[action]
        if recipe:
            message = f"{message} for {recipe}"
        return Command(
            action="recipe_narration",
            narration_action=action,
            query=recipe,
            follow_up_question=follow_up,
            message=message,
        )

    # ========================================================================
    # 10-11. Help and fallback
    # ========================================================================

    @staticmethod
    def _is_help(utterance: Utterance) -> bool:
        return utterance.has_any(HELP_PHRASES)

    @staticmethod
    def _build_help(utterance: Utterance) -> Command:
        return Command(action="help", message=HELP_MESSAGE)

    def _build_fallback(self, utterance: Utterance) -> Command:
        return self._fallback_for_text(utterance.raw)

    @staticmethod
    def _fallback_for_text(transcript: str | None) -> Command:
        query = (transcript or "").lower().strip()
        if not query:
            return Command(
                action="search",
                query="",
                follow_up_question="What would you like to cook?",
                message="I didn't catch that.",
            )
        return Command(action="search", query=query, message=f"Searching for {query}")


_DEFAULT_PARSER: IntentParser | None = None


def parse_voice_command(transcript: str) -> Command:
    """Parse with a shared parser built on the default lexicon."""
    global _DEFAULT_PARSER
    if _DEFAULT_PARSER is None:
        _DEFAULT_PARSER = IntentParser()
    return _DEFAULT_PARSER.parse(transcript)
