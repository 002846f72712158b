"""Structured commands produced by the intent parser."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

CommandAction = Literal[
    "search",
    "filter",
    "navigate",
    "help",
    "ingredients",
    "conversation",
    "shopping_list",
    "recipe_narration",
    "unknown",
]

ACTIONS: tuple[str, ...] = (
    "search",
    "filter",
    "navigate",
    "help",
    "ingredients",
    "conversation",
    "shopping_list",
    "recipe_narration",
    "unknown",
)

CONVERSATION_CONTEXTS: tuple[str, ...] = (
    "meal_planning",
    "dietary_filtering",
    "time_based",
    "flavor_based",
    "ingredient_search",
)

SHOPPING_LIST_ACTIONS: tuple[str, ...] = ("add_missing", "create_from_recipe", "add_ingredients")

NARRATION_ACTIONS: tuple[str, ...] = (
    "read_recipe",
    "read_ingredients",
    "read_instructions",
    "read_nutrition",
)

NAVIGATION_TARGETS: tuple[str, ...] = (
    "next_step",
    "previous_step",
    "repeat_step",
    "start_timer",
    "complete_step",
    "exit",
)

_WIRE_NAMES = {
    "action": "action",
    "query": "query",
    "cuisine": "cuisine",
    "difficulty": "difficulty",
    "cook_time": "cookTime",
    "ingredients": "ingredients",
    "dietary_restrictions": "dietaryRestrictions",
    "meal_type": "mealType",
    "servings": "servings",
    "quantities": "quantities",
    "follow_up_question": "followUpQuestion",
    "conversation_context": "conversationContext",
    "shopping_list_action": "shoppingListAction",
    "narration_action": "narrationAction",
    "navigation": "navigation",
    "message": "message",
}


@dataclass(slots=True)
class Command:
    """One parsed utterance: an ``action`` tag plus the slots that action uses."""

    action: CommandAction
    query: str | None = None
    cuisine: str | None = None
    difficulty: str | None = None
    cook_time: int | None = None
    ingredients: list[str] = field(default_factory=list)
    dietary_restrictions: list[str] = field(default_factory=list)
    meal_type: str | None = None
    servings: int | None = None
    quantities: dict[str, str] = field(default_factory=dict)
    follow_up_question: str | None = None
    conversation_context: str | None = None
    shopping_list_action: str | None = None
    narration_action: str | None = None
    navigation: str | None = None
    message: str | None = None

    def __post_init__(self) -> None:
        if self.action not in ACTIONS:
            raise ValueError(f"Unknown command action: {self.action!r}")
        if self.cook_time is not None:
            self.cook_time = max(0, int(self.cook_time))

    def to_dict(self) -> dict[str, Any]:
        """Serialize the set slots using the dispatcher's camelCase keys."""
        payload: dict[str, Any] = {}
        for attr, wire_name in _WIRE_NAMES.items():
            value = getattr(self, attr)
            if value is None or value == [] or value == {}:
                continue
            if isinstance(value, list):
                value = list(value)
            elif isinstance(value, dict):
                value = dict(value)
            payload[wire_name] = value
        return payload

    @property
    def spoken_text(self) -> str | None:
        """The message followed by the follow-up question, when either is set."""
        parts = [part for part in (self.message, self.follow_up_question) if part]
        return " ".join(parts) if parts else None
