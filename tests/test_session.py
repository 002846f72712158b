"""Tests for the voice session pipeline."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, Mock, call

import pytest

from chefspeak.voice.local_tts import LocalSynthesisError
from chefspeak.voice.mqtt import VoiceMqtt
from chefspeak.voice.recognition import RecognitionResult
from chefspeak.voice.session import (
    ERROR_REPLY,
    GOODBYE_REPLY,
    CommandDispatcher,
    VoiceSession,
    build_speech_output,
)
from chefspeak.voice.speech_output import SpeechOutputController

pytestmark = pytest.mark.anyio

INGREDIENTS_REPLY = "Got it! You have chicken breast and rice. Do you have any dietary restrictions I should know about?"


@pytest.fixture
def voice_mqtt():
    return Mock(spec=VoiceMqtt)


@pytest.fixture
def output(fake_local_engine, mock_player, local_voice):
    return SpeechOutputController(fake_local_engine, player=mock_player, local_voice=local_voice, local_settle_seconds=0)


@pytest.fixture
async def session(voice_config, fake_recognizer, output, voice_mqtt):
    voice_session = VoiceSession(voice_config, fake_recognizer, output, mqtt=voice_mqtt)
    yield voice_session
    await voice_session.close()


def _spoken(engine) -> list[str]:
    return [entry["text"] for entry in engine.spoken]


def _published(voice_mqtt, topic: str) -> list[str]:
    return [entry.args[1] for entry in voice_mqtt.publish.call_args_list if entry.args[0] == topic]


# ============================================================================
# Transcript handling
# ============================================================================


class TestHandleTranscript:
    async def test_command_is_tracked_published_and_spoken(self, session, voice_mqtt, fake_local_engine):
        command = await session.handle_transcript("  I have chicken and rice ")

        assert command.action == "ingredients"
        assert session.tracker.state.context == "ingredient_search"
        assert _spoken(fake_local_engine) == [INGREDIENTS_REPLY]
        voice_mqtt.publish.assert_any_call(session.config.transcript_topic, "I have chicken and rice", retain=False)
        voice_mqtt.publish_json.assert_called_once_with(session.config.command_topic, command.to_dict())

    async def test_empty_transcript_is_ignored(self, session, voice_mqtt, fake_local_engine):
        assert await session.handle_transcript("   ") is None
        voice_mqtt.publish.assert_not_called()
        assert fake_local_engine.spoken == []

    async def test_dispatcher_failure_speaks_error_reply(self, voice_config, fake_recognizer, output, fake_local_engine):
        dispatcher = Mock(spec=CommandDispatcher)
        dispatcher.dispatch = AsyncMock(side_effect=RuntimeError("recipe service down"))
        session = VoiceSession(voice_config, fake_recognizer, output, dispatcher=dispatcher)

        command = await session.handle_transcript("find tacos")

        assert command.action == "search"
        assert _spoken(fake_local_engine) == [ERROR_REPLY]
        await session.close()

    async def test_silent_dispatcher(self, voice_config, fake_recognizer, output, fake_local_engine):
        dispatcher = Mock(spec=CommandDispatcher)
        dispatcher.dispatch = AsyncMock(return_value=None)
        session = VoiceSession(voice_config, fake_recognizer, output, dispatcher=dispatcher)

        await session.handle_transcript("find tacos")

        command, state = dispatcher.dispatch.await_args.args
        assert command.query == "tacos"
        assert state is session.tracker.state
        assert fake_local_engine.spoken == []
        await session.close()

    async def test_speech_failure_publishes_error(self, session, voice_mqtt, fake_local_engine):
        fake_local_engine.failures = [LocalSynthesisError("network") for _ in range(3)]
        await session.handle_transcript("find tacos")
        assert _published(voice_mqtt, session.config.error_topic) == ["network"]


# ============================================================================
# Exit phrases
# ============================================================================


class TestExit:
    async def test_exit_phrase_says_goodbye_and_forgets(self, session, fake_recognizer, fake_local_engine):
        await session.start()
        await asyncio.sleep(0)
        await session.handle_transcript("vegan")
        assert session.tracker.state.preferences.dietary

        assert await session.handle_transcript("That's all, thanks!") is None

        assert _spoken(fake_local_engine)[-1] == GOODBYE_REPLY
        assert not session.tracker.state.has_topic
        assert session.tracker.state.preferences.dietary == frozenset()
        assert not session.input.is_listening
        assert fake_recognizer.cancelled == 1

    async def test_exit_without_farewell_stops_output(self, session, fake_local_engine):
        fake_local_engine.duration = 0.2
        task = asyncio.create_task(session.say("A long answer"))
        await asyncio.sleep(0.05)
        await session.exit_voice_mode()
        assert await task is False
        assert not session.output.is_speaking


# ============================================================================
# Cooking mode
# ============================================================================


class TestCookingMode:
    STEPS = ["Chop the onions", "Fry for 5 minutes"]

    async def test_navigation_bypasses_parser(self, session, voice_mqtt, fake_local_engine):
        await session.enter_cooking_mode(self.STEPS)
        assert _spoken(fake_local_engine)[0].endswith("Step 1 of 2: Chop the onions")

        assert await session.handle_transcript("next") is None
        assert _spoken(fake_local_engine)[-1] == "Step 2 of 2: Fry for 5 minutes"
        voice_mqtt.publish_json.assert_not_called()

    async def test_exit_leaves_cooking_mode(self, session):
        await session.enter_cooking_mode(self.STEPS)
        await session.handle_transcript("exit")
        assert session.cooking is None

    async def test_other_speech_reaches_parser(self, session):
        await session.enter_cooking_mode(self.STEPS)
        command = await session.handle_transcript("I have chicken and rice")
        assert command.action == "ingredients"
        assert session.cooking is not None

    async def test_step_phrase_beats_exit_phrase(self, session, fake_local_engine):
        await session.start()
        await asyncio.sleep(0)
        await session.enter_cooking_mode(self.STEPS)

        assert await session.handle_transcript("all done") is None

        assert session.cooking is not None
        assert session.input.is_listening
        assert _spoken(fake_local_engine)[-1] == "Step 2 of 2: Fry for 5 minutes"

    async def test_exit_voice_mode_while_cooking(self, session, fake_local_engine):
        await session.start()
        await asyncio.sleep(0)
        await session.enter_cooking_mode(self.STEPS)

        await session.handle_transcript("exit voice mode")

        assert session.cooking is None
        assert not session.input.is_listening
        assert _spoken(fake_local_engine)[-1] == GOODBYE_REPLY


# ============================================================================
# Lifecycle and status
# ============================================================================


class TestLifecycle:
    async def test_recognized_speech_flows_through_debounce(self, session, fake_recognizer, fake_local_engine):
        fake_recognizer.results = [
            RecognitionResult("I have chicken", final=False),
            RecognitionResult("I have chicken and rice", confidence=0.9),
        ]
        await session.start()
        await asyncio.sleep(0.15)
        assert _spoken(fake_local_engine) == [INGREDIENTS_REPLY]
        assert fake_recognizer.locales == ["en-US"]

    async def test_status_topic(self, session, voice_mqtt):
        await session.start()
        await session.say("Hello")
        await session.close()
        assert _published(voice_mqtt, session.config.state_topic) == ["listening", "speaking", "listening", "idle"]
        voice_mqtt.publish.assert_any_call(session.config.state_topic, "listening", retain=True)
        assert voice_mqtt.method_calls[0] == call.connect()
        voice_mqtt.disconnect.assert_called()

    async def test_set_language(self, session, fake_recognizer):
        await session.start()
        await asyncio.sleep(0)
        await session.set_language("es")
        await asyncio.sleep(0.05)
        assert session.output.language == "es"
        assert fake_recognizer.locales == ["en-US", "es-ES"]

    async def test_close_cancels_context_expiry(self, session):
        await session.handle_transcript("I have chicken and rice")
        assert session.tracker.expiry_pending
        await session.close()
        assert not session.tracker.expiry_pending

    async def test_configured_voice_id_reaches_output(self, make_voice_config):
        output = build_speech_output(make_voice_config(CHEFSPEAK_TTS_VOICE_ID="pNInz6obpgDQGcFmaJgB"))
        assert output.voice_id == "pNInz6obpgDQGcFmaJgB"
        assert output.cloud is None
        await output.close()
