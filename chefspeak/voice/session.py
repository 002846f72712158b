"""
Voice session wiring: input → debounce → parser → context → dispatcher → output

A VoiceSession is the single owner of the conversation state, the audio
cache, and every timer the voice pipeline uses. Closing it stops speech and
cancels the debounce, language-restart and context-expiry timers so nothing
fires after teardown.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from .commands import Command
from .config import VoiceConfig
from .conversation import ConversationState, ConversationTracker, is_exit_phrase
from .cooking_mode import CookingModeNavigator, parse_cooking_command
from .debounce import TranscriptDebouncer
from .elevenlabs import ElevenLabsClient
from .intent_parser import IntentParser
from .lexicon import Lexicon, default_lexicon
from .local_tts import WyomingLocalEngine
from .mqtt import VoiceMqtt
from .recognition import ListeningState, SpeechInputController, SpeechRecognizer, WyomingRecognizer
from .speech_output import OutputState, SpeechOutputController

LOGGER = logging.getLogger("chefspeak.voice.session")

ERROR_REPLY = "Sorry, I had trouble processing that command. Please try again."
GOODBYE_REPLY = "Okay, talk to you later."


class CommandDispatcher:
    """Application layer hook: act on a command and return text to speak, if any."""

    async def dispatch(self, command: Command, state: ConversationState) -> str | None:
        raise NotImplementedError


class MessageDispatcher(CommandDispatcher):
    """Speaks the command's own confirmation and follow-up question."""

    async def dispatch(self, command: Command, state: ConversationState) -> str | None:
        return command.spoken_text


class VoiceSession:
    def __init__(
        self,
        config: VoiceConfig,
        recognizer: SpeechRecognizer,
        output: SpeechOutputController,
        *,
        dispatcher: CommandDispatcher | None = None,
        parser: IntentParser | None = None,
        mqtt: VoiceMqtt | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self._logger = logger or LOGGER
        self.output = output
        self.dispatcher = dispatcher or MessageDispatcher()
        self.parser = parser or IntentParser(logger=self._logger)
        self.mqtt = mqtt
        self.tracker = ConversationTracker(config.timing.context_expiry_seconds, logger=self._logger)
        self.debouncer = TranscriptDebouncer(
            self.handle_transcript,
            quiet_seconds=config.timing.debounce_seconds,
            logger=self._logger,
        )
        self.input = SpeechInputController(
            recognizer,
            language=config.language,
            settle_seconds=config.timing.language_settle_seconds,
            on_transcript=self.debouncer.push,
            on_listen_start=self.debouncer.reset,
            on_state_change=self._on_listening_state,
            logger=self._logger,
        )
        self.output.on_state_change = self._on_output_state
        self.cooking: CookingModeNavigator | None = None
        self._status: str | None = None

    async def start(self) -> None:
        if self.mqtt is not None:
            self.mqtt.connect()
        await self.input.start_listening()

    async def set_language(self, language: str) -> None:
        self.output.language = language
        await self.input.set_language(language)

    async def handle_transcript(self, transcript: str) -> Command | None:
        """Process one settled transcript. Returns the parsed command, if any."""
        text = transcript.strip()
        if not text:
            return None
        self._publish(self.config.transcript_topic, text)

        # While cooking, step commands ("all done") win over exit phrases.
        navigation = parse_cooking_command(text) if self.cooking is not None else None
        if navigation is not None and navigation.navigation != "exit":
            await self._navigate(navigation)
            return None

        if is_exit_phrase(text):
            self._logger.info("Exit phrase heard: %s", text)
            await self.exit_voice_mode(farewell=True)
            return None

        if navigation is not None:
            await self._navigate(navigation)
            return None

        command = self.parser.parse(text)
        state = self.tracker.update(command)
        self._logger.info("Command %s from %r", command.action, text)
        if self.mqtt is not None:
            self.mqtt.publish_json(self.config.command_topic, command.to_dict())

        try:
            reply = await self.dispatcher.dispatch(command, state)
        except Exception:
            self._logger.exception("Dispatcher failed for %s", command.action)
            reply = ERROR_REPLY
        if reply:
            await self.say(reply)
        return command

    async def say(self, text: str) -> bool:
        spoken = await self.output.speak(text)
        if not spoken and self.output.last_error:
            self._publish(self.config.error_topic, self.output.last_error)
        return spoken

    async def _navigate(self, command: Command) -> None:
        if self.cooking is None:
            return
        await self.cooking.handle(command)
        if not self.cooking.active:
            self.cooking = None

    async def enter_cooking_mode(self, steps: Sequence[str]) -> CookingModeNavigator:
        self.cooking = CookingModeNavigator(steps, speak=self.say, logger=self._logger)
        await self.cooking.start()
        return self.cooking

    async def exit_voice_mode(self, *, farewell: bool = False) -> None:
        """Stop speaking and listening, and forget the conversation."""
        self.debouncer.cancel()
        await self.input.stop_listening()
        self.tracker.reset()
        self.cooking = None
        if farewell:
            await self.say(GOODBYE_REPLY)
        else:
            await self.output.stop()

    async def close(self) -> None:
        self.debouncer.cancel()
        await self.input.close()
        await self.output.close()
        await self.debouncer.close()
        self.tracker.close()
        self._publish_status(force="idle")
        if self.mqtt is not None:
            self.mqtt.disconnect()

    def _on_listening_state(self, state: ListeningState) -> None:
        self._publish_status()

    def _on_output_state(self, state: OutputState) -> None:
        self._publish_status()

    def _publish_status(self, force: str | None = None) -> None:
        if force is not None:
            status = force
        elif self.output.is_speaking or self.output.is_generating:
            status = "speaking"
        elif self.input.is_listening:
            status = "listening"
        else:
            status = "idle"
        if status == self._status:
            return
        self._status = status
        self._publish(self.config.state_topic, status, retain=True)

    def _publish(self, topic: str, payload: str, retain: bool = False) -> None:
        if self.mqtt is not None:
            self.mqtt.publish(topic, payload, retain=retain)


def load_lexicon(config: VoiceConfig, logger: logging.Logger | None = None) -> Lexicon:
    if config.lexicon_file is None:
        return default_lexicon()
    lexicon = Lexicon.from_file(config.lexicon_file)
    (logger or LOGGER).info("Loaded lexicon %s (%d ingredients)", lexicon.version, len(lexicon.entries))
    return lexicon


def build_speech_output(config: VoiceConfig, logger: logging.Logger | None = None) -> SpeechOutputController:
    cloud = ElevenLabsClient(config.eleven_labs) if config.eleven_labs.api_key else None
    local = WyomingLocalEngine(config.tts_endpoint, voice=config.local_voice.voice, logger=logger)
    return SpeechOutputController(
        local,
        cloud=cloud,
        language=config.language,
        prefer_cloud=config.prefer_cloud_tts,
        voice_gender=config.voice_gender,
        voice_id=config.voice_id,
        local_voice=config.local_voice,
        max_fallback_attempts=config.timing.max_fallback_attempts,
        local_settle_seconds=config.timing.local_settle_seconds,
        logger=logger,
    )


def build_voice_session(
    config: VoiceConfig,
    dispatcher: CommandDispatcher | None = None,
    logger: logging.Logger | None = None,
) -> VoiceSession:
    """Wire the production pipeline: Wyoming ASR, ElevenLabs with Piper fallback, MQTT status."""
    recognizer = WyomingRecognizer(config.stt_endpoint, config.mic, config.phrase, logger=logger)
    return VoiceSession(
        config,
        recognizer,
        build_speech_output(config, logger),
        dispatcher=dispatcher,
        parser=IntentParser(load_lexicon(config, logger), logger=logger),
        mqtt=VoiceMqtt(config.mqtt, logger=logger),
        logger=logger,
    )
