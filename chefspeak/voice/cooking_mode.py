"""Hands-free step navigation while cooking (English, Spanish and French keywords)."""

from __future__ import annotations

import inspect
import logging
import re
from collections.abc import Awaitable, Callable, Sequence

from .commands import Command
from .preferences import contains_phrase

LOGGER = logging.getLogger("chefspeak.voice.cooking_mode")

DEFAULT_TIMER_MINUTES = 10

_NEXT_WORDS = ("next", "siguiente", "suivant")
_PREVIOUS_WORDS = ("previous", "go back", "anterior", "précédent", "precedent")
_REPEAT_WORDS = ("repeat", "again", "repetir", "répéter", "repeter")
_TIMER_WORDS = ("timer", "temporizador", "minuteur")
_TIMER_START_WORDS = ("start", "set", "iniciar", "démarrer", "demarrer")
_COMPLETE_WORDS = ("complete", "done", "finished", "terminado", "fini")
_EXIT_WORDS = ("exit", "quit", "salir", "sortir")

_STEP_TIME_RE = re.compile(r"(\d+)\s*(minute|min|hour|hr)", re.IGNORECASE)


def _mentions(text: str, words: tuple[str, ...]) -> bool:
    return any(contains_phrase(text, word) for word in words)


def parse_cooking_command(transcript: str) -> Command | None:
    """Map a cooking-mode utterance to a navigate command, or None if it is not one.

    A timer mention without a start word is swallowed (returns None) rather
    than falling through to the later checks.
    """
    text = re.sub(r"[^\w\s'-]", " ", (transcript or "").lower().replace("’", "'"))
    text = re.sub(r"\s+", " ", text).strip()
    if not text:
        return None
    if _mentions(text, _NEXT_WORDS):
        target = "next_step"
    elif _mentions(text, _PREVIOUS_WORDS):
        target = "previous_step"
    elif _mentions(text, _REPEAT_WORDS):
        target = "repeat_step"
    elif _mentions(text, _TIMER_WORDS):
        if not _mentions(text, _TIMER_START_WORDS):
            return None
        target = "start_timer"
    elif _mentions(text, _COMPLETE_WORDS):
        target = "complete_step"
    elif _mentions(text, _EXIT_WORDS):
        target = "exit"
    else:
        return None
    return Command(action="navigate", navigation=target)


def extract_step_timer_minutes(instruction: str, default: int = DEFAULT_TIMER_MINUTES) -> int:
    """Read "N minutes" / "N hours" from a step; hours are converted to minutes."""
    match = _STEP_TIME_RE.search(instruction or "")
    if not match:
        return default
    value = int(match.group(1))
    unit = match.group(2).lower()
    return value * 60 if unit in ("hour", "hr") else value


SpeakCallback = Callable[[str], Awaitable[object] | object]
TimerCallback = Callable[[int, int], Awaitable[object] | object]


class CookingModeNavigator:
    """Tracks the current step of one recipe and announces it through ``speak``."""

    def __init__(
        self,
        steps: Sequence[str],
        *,
        speak: SpeakCallback | None = None,
        on_timer: TimerCallback | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.steps = [step.strip() for step in steps if step and step.strip()]
        if not self.steps:
            raise ValueError("Cooking mode needs at least one step")
        self._speak = speak
        self._on_timer = on_timer
        self._logger = logger or LOGGER
        self.current = 0
        self.completed: set[int] = set()
        self.active = True

    @property
    def total(self) -> int:
        return len(self.steps)

    @property
    def finished(self) -> bool:
        return len(self.completed) == self.total

    def describe_current(self) -> str:
        return f"Step {self.current + 1} of {self.total}: {self.steps[self.current]}"

    async def start(self) -> str:
        return await self._say(
            "Cooking mode activated. Say next, previous, repeat, or start timer. " + self.describe_current()
        )

    async def handle_transcript(self, transcript: str) -> str | None:
        command = parse_cooking_command(transcript)
        if command is None:
            return None
        return await self.handle(command)

    async def handle(self, command: Command) -> str | None:
        if not self.active or command.action != "navigate":
            return None
        target = command.navigation
        self._logger.debug("Cooking mode: %s at step %d", target, self.current + 1)
        if target == "next_step":
            if self.current >= self.total - 1:
                return await self._say("That was the last step.")
            self.current += 1
            return await self._say(self.describe_current())
        if target == "previous_step":
            if self.current == 0:
                return await self._say("You're on the first step.")
            self.current -= 1
            return await self._say(self.describe_current())
        if target == "repeat_step":
            return await self._say(f"Step {self.current + 1}: {self.steps[self.current]}")
        if target == "start_timer":
            minutes = extract_step_timer_minutes(self.steps[self.current])
            if self._on_timer is not None:
                await _maybe_await(self._on_timer(minutes, self.current))
            unit = "minute" if minutes == 1 else "minutes"
            return await self._say(f"Starting a {minutes} {unit} timer.")
        if target == "complete_step":
            self.completed.add(self.current)
            if self.finished:
                return await self._say("All steps complete. Enjoy your meal!")
            if self.current < self.total - 1:
                self.current += 1
                return await self._say(self.describe_current())
            return await self._say(f"Step {self.current + 1} complete.")
        if target == "exit":
            self.active = False
            return await self._say("Exiting cooking mode.")
        return None

    async def _say(self, text: str) -> str:
        if self._speak is not None:
            await _maybe_await(self._speak(text))
        return text


async def _maybe_await(result: object) -> object:
    if inspect.isawaitable(result):
        return await result
    return result
