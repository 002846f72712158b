"""Tests for conversation context merging, expiry and exit phrases."""

from __future__ import annotations

import asyncio
from unittest.mock import Mock

import pytest

from chefspeak.voice.commands import Command
from chefspeak.voice.conversation import (
    EXIT_PHRASES,
    ConversationPreferences,
    ConversationState,
    ConversationTracker,
    is_exit_phrase,
    merge_command,
    normalize_exit_text,
)

pytestmark = pytest.mark.anyio


# ---------------------------------------------------------------------------
# merge_command
# ---------------------------------------------------------------------------


class TestMergeCommand:
    def test_first_turn_sets_topic_and_preferences(self):
        command = Command(
            action="ingredients",
            ingredients=["chicken breast"],
            dietary_restrictions=["gluten-free"],
            conversation_context="ingredient_search",
            follow_up_question="How much time do you have to cook?",
        )
        state = merge_command(ConversationState(), command)
        assert state.context == "ingredient_search"
        assert state.follow_up_question == "How much time do you have to cook?"
        assert state.preferences.dietary == frozenset({"gluten-free"})

    def test_dietary_tags_accumulate(self):
        state = merge_command(ConversationState(), Command(action="filter", dietary_restrictions=["vegan"]))
        state = merge_command(state, Command(action="filter", dietary_restrictions=["nut-free"]))
        state = merge_command(state, Command(action="filter", dietary_restrictions=["vegan"]))
        assert state.preferences.dietary == frozenset({"vegan", "nut-free"})

    def test_scalars_are_last_write_wins_but_not_erased(self):
        state = merge_command(ConversationState(), Command(action="filter", cook_time=30, meal_type="dinner"))
        state = merge_command(state, Command(action="filter", cook_time=15))
        assert state.preferences.cook_time == 15
        assert state.preferences.meal_type == "dinner"
        state = merge_command(state, Command(action="search", query="soup"))
        assert state.preferences.cook_time == 15

    def test_context_and_follow_up_replace_together(self):
        existing = ConversationState(context="meal_planning", follow_up_question="What ingredients do you have?")
        state = merge_command(existing, Command(action="filter", conversation_context="time_based"))
        assert state.context == "time_based"
        assert state.follow_up_question is None

    def test_topic_kept_when_command_has_none(self):
        existing = ConversationState(context="meal_planning", follow_up_question="What ingredients do you have?")
        state = merge_command(existing, Command(action="search", query="soup"))
        assert state.context == "meal_planning"
        assert state.follow_up_question == "What ingredients do you have?"

    def test_merge_does_not_mutate_existing(self):
        existing = ConversationState(preferences=ConversationPreferences(dietary=frozenset({"keto"})))
        merge_command(existing, Command(action="filter", dietary_restrictions=["paleo"]))
        assert existing.preferences.dietary == frozenset({"keto"})

    def test_to_dict(self):
        state = ConversationState(
            context="time_based",
            preferences=ConversationPreferences(dietary=frozenset({"vegan", "keto"}), cook_time=20),
        )
        assert state.to_dict() == {
            "context": "time_based",
            "followUpQuestion": None,
            "preferences": {"dietary": ["keto", "vegan"], "cookTime": 20, "difficulty": None, "mealType": None},
        }


# ---------------------------------------------------------------------------
# ConversationTracker
# ---------------------------------------------------------------------------


class TestConversationTracker:
    async def test_topic_expires_after_delay(self):
        tracker = ConversationTracker(0.05)
        tracker.update(Command(action="conversation", conversation_context="meal_planning", meal_type="dinner"))
        assert tracker.expiry_pending
        await asyncio.sleep(0.1)
        assert tracker.state.context is None
        assert tracker.state.preferences.meal_type == "dinner"
        assert not tracker.expiry_pending

    async def test_update_reschedules_expiry(self):
        tracker = ConversationTracker(0.08)
        tracker.update(Command(action="conversation", conversation_context="meal_planning"))
        await asyncio.sleep(0.05)
        tracker.update(Command(action="filter", conversation_context="time_based"))
        await asyncio.sleep(0.05)
        assert tracker.state.context == "time_based"
        await asyncio.sleep(0.06)
        assert tracker.state.context is None

    async def test_reset_clears_everything(self):
        tracker = ConversationTracker(10)
        tracker.update(Command(action="filter", dietary_restrictions=["vegan"], conversation_context="dietary_filtering"))
        tracker.reset()
        assert tracker.state == ConversationState()
        assert not tracker.expiry_pending

    async def test_close_cancels_timer(self):
        tracker = ConversationTracker(0.02)
        tracker.update(Command(action="conversation", conversation_context="meal_planning"))
        tracker.close()
        await asyncio.sleep(0.05)
        assert tracker.state.context == "meal_planning"

    async def test_zero_expiry_never_schedules(self):
        tracker = ConversationTracker(0)
        tracker.update(Command(action="conversation", conversation_context="meal_planning"))
        assert not tracker.expiry_pending

    def test_update_without_running_loop(self, mock_logger):
        tracker = ConversationTracker(1.0, logger=mock_logger)
        state = tracker.update(Command(action="filter", cook_time=20))
        assert state.preferences.cook_time == 20
        assert not tracker.expiry_pending

    async def test_on_change_sees_every_state(self):
        seen = []
        tracker = ConversationTracker(0.02, on_change=seen.append)
        tracker.update(Command(action="conversation", conversation_context="meal_planning"))
        await asyncio.sleep(0.05)
        assert [state.context for state in seen] == ["meal_planning", None]

    async def test_on_change_errors_are_logged(self, mock_logger):
        tracker = ConversationTracker(0, on_change=Mock(side_effect=RuntimeError("boom")), logger=mock_logger)
        tracker.update(Command(action="search", query="soup"))
        mock_logger.exception.assert_called_once()


# ---------------------------------------------------------------------------
# Exit phrases
# ---------------------------------------------------------------------------


class TestExitPhrases:
    def test_normalize_strips_prefix_and_courtesy(self):
        assert normalize_exit_text("Hey chef, never mind!") == "never mind"
        assert normalize_exit_text("that's all thanks") == "thats all"
        assert normalize_exit_text("bye chef") == "bye"

    def test_normalize_empty(self):
        assert normalize_exit_text("") == ""
        assert normalize_exit_text("chef") == ""

    @pytest.mark.parametrize(
        "transcript",
        [
            "Never mind",
            "that's all",
            "Chef, cancel",
            "I'm done, thank you",
            "goodbye",
            "OK chef stop listening",
            "no thanks",
        ],
    )
    def test_exit_phrases(self, transcript):
        assert is_exit_phrase(transcript)

    @pytest.mark.parametrize(
        "transcript",
        ["", None, "chef", "cancel the timer", "I have chicken", "done cooking", "no", "No thanks, I have rice"],
    )
    def test_not_exit_phrases(self, transcript):
        assert not is_exit_phrase(transcript)

    def test_exit_phrases_are_normalized(self):
        assert all(phrase == normalize_exit_text(phrase, (), strip_courtesy=False) for phrase in EXIT_PHRASES)
