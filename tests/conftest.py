"""Shared fixtures for the ChefSpeak test suite.

- anyio backend pinned to asyncio
- Configuration objects built from an explicit environment
- Fake recognizer, local synthesis engine and PCM player
- paho MQTT client mock
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from unittest.mock import AsyncMock, Mock

import paho.mqtt.client as mqtt
import pytest

from chefspeak.voice.config import LocalVoiceConfig, MqttConfig, VoiceConfig
from chefspeak.voice.local_tts import LocalSynthesisEngine
from chefspeak.voice.recognition import RecognitionResult, SpeechRecognizer

# ============================================================================
# Pytest Configuration
# ============================================================================


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


@pytest.fixture
def mock_logger():
    return Mock(spec=logging.Logger)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def make_voice_config():
    """Factory: VoiceConfig from a fixed hostname plus env overrides.

    Usage:
        config = make_voice_config(CHEFSPEAK_DEBOUNCE_MS="20")
    """

    def _create(**overrides: str) -> VoiceConfig:
        env = {"CHEFSPEAK_HOSTNAME": "kitchen"}
        env.update(overrides)
        return VoiceConfig.from_env(env)

    return _create


@pytest.fixture
def voice_config(make_voice_config):
    return make_voice_config(
        CHEFSPEAK_DEBOUNCE_MS="20",
        CHEFSPEAK_LANGUAGE_SETTLE_MS="10",
        CHEFSPEAK_CONTEXT_EXPIRY_MS="50",
        CHEFSPEAK_LOCAL_TTS_SETTLE_MS="0",
    )


@pytest.fixture
def local_voice():
    return LocalVoiceConfig(rate=0.9, pitch=1.0, volume=0.8, voice=None)


@pytest.fixture
def mqtt_config():
    return MqttConfig(
        host="localhost",
        port=1883,
        username=None,
        password=None,
        tls_enabled=False,
        cert=None,
        key=None,
        ca_cert=None,
        topic_base="chefspeak/kitchen/voice",
    )


@pytest.fixture
def mock_mqtt_client():
    client = Mock(spec=mqtt.Client)
    client.publish = Mock(return_value=Mock(spec=mqtt.MQTTMessageInfo))
    client.is_connected = Mock(return_value=True)
    return client


# ============================================================================
# Speech Fakes
# ============================================================================


class FakeRecognizer(SpeechRecognizer):
    """Emits queued results, then idles until cancelled (or raises ``error``)."""

    def __init__(self) -> None:
        self.locales: list[str] = []
        self.results: list[RecognitionResult] = []
        self.error: Exception | None = None
        self.emit: Callable[[RecognitionResult], None] | None = None
        self.cancelled = 0

    async def run(self, locale: str, emit: Callable[[RecognitionResult], None]) -> None:
        self.locales.append(locale)
        self.emit = emit
        for result in self.results:
            emit(result)
        if self.error is not None:
            raise self.error
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise


class FakeLocalEngine(LocalSynthesisEngine):
    """Records utterances; ``failures`` holds errors raised by successive speak() calls."""

    def __init__(self, duration: float = 0.0) -> None:
        self.duration = duration
        self.spoken: list[dict[str, object]] = []
        self.failures: list[Exception] = []
        self.cancel_calls = 0
        self.active = 0
        self.max_active = 0

    async def speak(self, text, *, locale, rate=1.0, pitch=1.0, volume=1.0, on_start=None):
        self.spoken.append({"text": text, "locale": locale, "rate": rate, "pitch": pitch, "volume": volume})
        if self.failures:
            raise self.failures.pop(0)
        if on_start is not None:
            on_start()
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.duration)
        finally:
            self.active -= 1

    async def cancel(self):
        self.cancel_calls += 1


@pytest.fixture
def fake_recognizer():
    return FakeRecognizer()


@pytest.fixture
def fake_local_engine():
    return FakeLocalEngine()


@pytest.fixture
def mock_player():
    """PcmPlayer stand-in with async start/write/finish/abort."""
    player = AsyncMock()
    player.start = AsyncMock()
    player.write = AsyncMock()
    player.finish = AsyncMock()
    player.abort = AsyncMock()
    return player
