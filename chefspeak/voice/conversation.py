"""
Multi-turn conversation context for voice mode

Carries what the user has told us across turns so a follow-up answer like
"about twenty minutes" lands on top of "I have chicken and rice".

Features:
- Preference accumulation: dietary tags union across turns, scalar slots are last-write-wins
- Topic tracking: the active conversation context and follow-up question
- Expiry: the topic is cleared a fixed delay after the latest update (one timer, rescheduled per turn)
- Exit detection: phrases like "never mind" or "that's all" end voice mode

Merging is a pure function over immutable states; ConversationTracker owns the
current state and the expiry timer for one session.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from .commands import Command

LOGGER = logging.getLogger("chefspeak.voice.conversation")

DEFAULT_EXPIRY_SECONDS = 5.0


@dataclass(frozen=True)
class ConversationPreferences:
    dietary: frozenset[str] = frozenset()
    cook_time: int | None = None
    difficulty: str | None = None
    meal_type: str | None = None


@dataclass(frozen=True)
class ConversationState:
    context: str | None = None
    follow_up_question: str | None = None
    preferences: ConversationPreferences = field(default_factory=ConversationPreferences)

    @property
    def has_topic(self) -> bool:
        return self.context is not None or self.follow_up_question is not None

    def without_topic(self) -> ConversationState:
        return replace(self, context=None, follow_up_question=None)

    def to_dict(self) -> dict[str, Any]:
        prefs = self.preferences
        return {
            "context": self.context,
            "followUpQuestion": self.follow_up_question,
            "preferences": {
                "dietary": sorted(prefs.dietary),
                "cookTime": prefs.cook_time,
                "difficulty": prefs.difficulty,
                "mealType": prefs.meal_type,
            },
        }


def merge_command(existing: ConversationState, incoming: Command) -> ConversationState:
    """Fold one parsed command into the conversation state.

    Dietary tags are unioned. ``cook_time``, ``difficulty`` and ``meal_type``
    only change when the command carries a value. When the command has a
    context or a follow-up question, both replace the previous pair together;
    otherwise the previous pair is kept until it expires.
    """
    prefs = existing.preferences
    merged = ConversationPreferences(
        dietary=prefs.dietary | frozenset(incoming.dietary_restrictions),
        cook_time=incoming.cook_time if incoming.cook_time is not None else prefs.cook_time,
        difficulty=incoming.difficulty or prefs.difficulty,
        meal_type=incoming.meal_type or prefs.meal_type,
    )
    if incoming.conversation_context is not None or incoming.follow_up_question is not None:
        return ConversationState(
            context=incoming.conversation_context,
            follow_up_question=incoming.follow_up_question,
            preferences=merged,
        )
    return ConversationState(
        context=existing.context,
        follow_up_question=existing.follow_up_question,
        preferences=merged,
    )


class ConversationTracker:
    """Owns one session's conversation state and its expiry timer."""

    def __init__(
        self,
        expiry_seconds: float = DEFAULT_EXPIRY_SECONDS,
        *,
        on_change: Callable[[ConversationState], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.expiry_seconds = expiry_seconds
        self._on_change = on_change
        self._logger = logger or LOGGER
        self._state = ConversationState()
        self._expiry_handle: asyncio.TimerHandle | None = None

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def expiry_pending(self) -> bool:
        return self._expiry_handle is not None

    def update(self, command: Command) -> ConversationState:
        self._set_state(merge_command(self._state, command))
        self._schedule_expiry()
        return self._state

    def reset(self) -> None:
        """Forget everything, preferences included (used when voice mode ends)."""
        self._cancel_expiry()
        self._set_state(ConversationState())

    def close(self) -> None:
        self._cancel_expiry()

    def _schedule_expiry(self) -> None:
        self._cancel_expiry()
        if self.expiry_seconds <= 0:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.debug("No running event loop; conversation topic will not expire")
            return
        self._expiry_handle = loop.call_later(self.expiry_seconds, self._expire)

    def _cancel_expiry(self) -> None:
        if self._expiry_handle is not None:
            self._expiry_handle.cancel()
            self._expiry_handle = None

    def _expire(self) -> None:
        self._expiry_handle = None
        if not self._state.has_topic:
            return
        self._logger.debug("Conversation topic %s expired", self._state.context)
        self._set_state(self._state.without_topic())

    def _set_state(self, state: ConversationState) -> None:
        self._state = state
        if self._on_change is not None:
            try:
                self._on_change(state)
            except Exception:
                self._logger.exception("Conversation change callback failed")


# ========================================================================
# Leaving voice mode
# ========================================================================

DEFAULT_EXIT_PREFIXES = ("hey chef", "okay chef", "ok chef", "chef")
_COURTESY_SUFFIXES = ("please", "thanks", "thank you", "for now", "chef")

_EXIT_PHRASES_RAW = (
    "never mind",
    "nevermind",
    "forget it",
    "forget about it",
    "cancel",
    "cancel that",
    "that's all",
    "that is all",
    "that's it",
    "that's everything",
    "i'm done",
    "we're done",
    "all done",
    "no thanks",
    "no thank you",
    "stop listening",
    "exit voice mode",
    "turn off voice mode",
    "goodbye",
    "bye",
)


def normalize_exit_text(
    text: str,
    prefixes: Sequence[str] = DEFAULT_EXIT_PREFIXES,
    *,
    strip_courtesy: bool = True,
) -> str:
    """Lowercase, drop punctuation and apostrophes, strip an address prefix and courtesy tails."""
    lowered = (text or "").strip().lower().replace("’", "'")
    lowered = re.sub(r"[^\w\s']", " ", lowered).replace("'", "")
    lowered = re.sub(r"\s+", " ", lowered).strip()
    for prefix in prefixes:
        prefix = prefix.strip().lower()
        if lowered == prefix:
            return ""
        if prefix and lowered.startswith(prefix + " "):
            lowered = lowered[len(prefix) + 1 :]
            break
    changed = strip_courtesy
    while changed and lowered:
        changed = False
        for suffix in _COURTESY_SUFFIXES:
            if lowered.endswith(" " + suffix):
                lowered = lowered[: -len(suffix) - 1].rstrip()
                changed = True
    return lowered


EXIT_PHRASES: frozenset[str] = frozenset(
    normalize_exit_text(raw, (), strip_courtesy=False) for raw in _EXIT_PHRASES_RAW
)


def is_exit_phrase(transcript: str | None, prefixes: Sequence[str] = DEFAULT_EXIT_PREFIXES) -> bool:
    text = transcript or ""
    return any(
        candidate in EXIT_PHRASES
        for candidate in (
            normalize_exit_text(text, prefixes, strip_courtesy=False),
            normalize_exit_text(text, prefixes),
        )
        if candidate
    )
