"""Tests for Wyoming STT/TTS helper functions."""

from __future__ import annotations

import struct
from unittest.mock import AsyncMock, Mock, patch

import pytest
from wyoming.asr import Transcribe, Transcript
from wyoming.audio import AudioChunk, AudioStart, AudioStop
from wyoming.tts import Synthesize

from chefspeak.voice.config import MicConfig, WyomingEndpoint
from chefspeak.voice.wyoming import WyomingAudioError, speak_via_wyoming, transcribe_pcm

pytestmark = pytest.mark.anyio


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def mic():
    """16kHz mono with 10 ms chunks (320 bytes)."""
    return MicConfig(command=["arecord"], rate=16000, width=2, channels=1, chunk_ms=10)


@pytest.fixture
def endpoint():
    return WyomingEndpoint(host="localhost", port=10300, model="whisper-base")


@pytest.fixture
def tts_endpoint():
    return WyomingEndpoint(host="localhost", port=10200)


@pytest.fixture
def mock_client():
    client = AsyncMock()
    client.connect = AsyncMock()
    client.disconnect = AsyncMock()
    client.write_event = AsyncMock()
    client.read_event = AsyncMock(return_value=None)
    return client


@pytest.fixture
def patch_tcp_client(mock_client):
    """Patch AsyncTcpClient to return mock_client and yield (constructor_mock, client)."""
    with patch("chefspeak.voice.wyoming.AsyncTcpClient") as ctor:
        ctor.return_value = mock_client
        yield ctor, mock_client


def _written_types(client) -> list[str]:
    return [call.args[0].type for call in client.write_event.call_args_list]


def _audio_events(*chunks: bytes, rate: int = 22050):
    events = [AudioStart(rate=rate, width=2, channels=1).event()]
    events.extend(AudioChunk(rate=rate, width=2, channels=1, audio=chunk).event() for chunk in chunks)
    events.append(AudioStop().event())
    return events


# ============================================================================
# transcribe_pcm
# ============================================================================


class TestTranscribePcm:
    async def test_returns_transcript(self, patch_tcp_client, endpoint, mic):
        ctor, client = patch_tcp_client
        client.read_event.side_effect = [Transcript(text="I have chicken and rice").event()]

        text = await transcribe_pcm(b"\x00" * 700, endpoint=endpoint, mic=mic, language="en")

        assert text == "I have chicken and rice"
        ctor.assert_called_once_with("localhost", 10300)
        assert _written_types(client) == [
            "transcribe",
            "audio-start",
            "audio-chunk",
            "audio-chunk",
            "audio-chunk",
            "audio-stop",
        ]
        transcribe = Transcribe.from_event(client.write_event.call_args_list[0].args[0])
        assert transcribe.name == "whisper-base"
        assert transcribe.language == "en"
        client.disconnect.assert_awaited_once()

    async def test_skips_unrelated_events(self, patch_tcp_client, endpoint, mic):
        _, client = patch_tcp_client
        client.read_event.side_effect = [AudioStop().event(), Transcript(text="help").event()]
        assert await transcribe_pcm(b"\x00" * 320, endpoint=endpoint, mic=mic) == "help"

    async def test_closed_stream_returns_none(self, patch_tcp_client, endpoint, mic):
        _, client = patch_tcp_client
        assert await transcribe_pcm(b"\x00" * 320, endpoint=endpoint, mic=mic) is None
        client.disconnect.assert_awaited_once()

    async def test_disconnects_on_error(self, patch_tcp_client, endpoint, mic):
        _, client = patch_tcp_client
        client.write_event.side_effect = ConnectionResetError("reset")
        with pytest.raises(ConnectionResetError):
            await transcribe_pcm(b"\x00" * 320, endpoint=endpoint, mic=mic)
        client.disconnect.assert_awaited_once()


# ============================================================================
# speak_via_wyoming
# ============================================================================


class TestSpeakViaWyoming:
    async def test_streams_audio_to_player(self, patch_tcp_client, tts_endpoint, mock_player):
        _, client = patch_tcp_client
        chunk = struct.pack("<4h", 100, -100, 200, -200)
        client.read_event.side_effect = _audio_events(chunk, chunk)
        on_start = Mock()

        await speak_via_wyoming(
            "Step 1: preheat the oven",
            endpoint=tts_endpoint,
            player=mock_player,
            voice_name="en_US-amy-medium",
            on_start=on_start,
        )

        mock_player.start.assert_awaited_once_with(22050, 2, 1)
        assert mock_player.write.await_count == 2
        mock_player.write.assert_awaited_with(chunk)
        mock_player.finish.assert_awaited_once()
        mock_player.abort.assert_not_awaited()
        on_start.assert_called_once()
        synthesize = Synthesize.from_event(client.write_event.call_args.args[0])
        assert synthesize.text == "Step 1: preheat the oven"
        assert synthesize.voice is not None
        assert synthesize.voice.name == "en_US-amy-medium"

    async def test_volume_is_applied(self, patch_tcp_client, tts_endpoint, mock_player):
        _, client = patch_tcp_client
        client.read_event.side_effect = _audio_events(struct.pack("<2h", 1000, -1000))
        await speak_via_wyoming("hi", endpoint=tts_endpoint, player=mock_player, volume=0.5)
        mock_player.write.assert_awaited_once_with(struct.pack("<2h", 500, -500))

    async def test_no_voice_when_unset(self, patch_tcp_client, tts_endpoint, mock_player):
        _, client = patch_tcp_client
        client.read_event.side_effect = _audio_events(b"\x00\x00")
        await speak_via_wyoming("hi", endpoint=tts_endpoint, player=mock_player)
        assert Synthesize.from_event(client.write_event.call_args.args[0]).voice is None

    async def test_no_audio_raises(self, patch_tcp_client, tts_endpoint, mock_player):
        with pytest.raises(WyomingAudioError):
            await speak_via_wyoming("hi", endpoint=tts_endpoint, player=mock_player)
        mock_player.start.assert_not_awaited()
        mock_player.abort.assert_not_awaited()

    async def test_player_failure_aborts(self, patch_tcp_client, tts_endpoint, mock_player):
        _, client = patch_tcp_client
        client.read_event.side_effect = _audio_events(b"\x00\x00")
        mock_player.write.side_effect = RuntimeError("Player exited early")
        with pytest.raises(RuntimeError):
            await speak_via_wyoming("hi", endpoint=tts_endpoint, player=mock_player)
        mock_player.abort.assert_awaited_once()
        mock_player.finish.assert_not_awaited()
