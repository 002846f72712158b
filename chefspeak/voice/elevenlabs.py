"""ElevenLabs cloud speech synthesis client and voice catalog."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal

import httpx

from .config import ElevenLabsConfig, VoiceSettings

LOGGER = logging.getLogger("chefspeak.voice.elevenlabs")

Gender = Literal["female", "male"]


class SpeechSynthesisError(RuntimeError):
    """Cloud speech synthesis failed."""


class TTSNotConfiguredError(SpeechSynthesisError):
    """No usable credentials; retrying will not help."""


class TTSProviderError(SpeechSynthesisError):
    """Transient provider failure (network, rate limit, bad response)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class Voice:
    id: str
    name: str
    language: str
    gender: Gender
    description: str = ""


VOICES: tuple[Voice, ...] = (
    Voice("EXAVITQu4vr4xnSDxMaL", "Bella", "en", "female", "Warm and friendly"),
    Voice("21m00Tcm4TlvDq8ikWAM", "Rachel", "en", "female", "Calm and clear"),
    Voice("AZnzlk1XvdvUeBnXmlld", "Domi", "en", "female", "Strong and confident"),
    Voice("MF3mGyEYCl7XYWbV9V6O", "Elli", "en", "female", "Young and bright"),
    Voice("pNInz6obpgDQGcFmaJgB", "Adam", "en", "male", "Deep and steady"),
    Voice("ErXwobaYiN019PkySvjV", "Antoni", "en", "male", "Well-rounded"),
    Voice("VR6AewLTigWG4xSOukaG", "Arnold", "en", "male", "Crisp"),
    Voice("TxGEqnHWrfWFTfGW9XjX", "Josh", "en", "male", "Young and lively"),
    Voice("yoZ06aMxZJJ28mfd3POQ", "Sam", "en", "male", "Raspy"),
    Voice("FGY2WhTYpPnrIDTdsKH5", "Valentina", "es", "female", "Spanish"),
    Voice("DuNnqwVuAtxzKcXGUN2v", "Diego", "es", "male", "Spanish"),
    Voice("XB0fDUnXU5powFXDhCwa", "Charlotte", "fr", "female", "French"),
    Voice("qcqe3VekNbpZKS19HrXZ", "Henri", "fr", "male", "French"),
    Voice("pMsHU5UYdz0JjirY6kYj", "Ananya", "hi", "female", "Hindi"),
    Voice("oJj8qvV5HvRDUZunLCaB", "Arjun", "hi", "male", "Hindi"),
    Voice("kVKpDJQHmCrQWQdLgEYj", "Priya", "te", "female", "Telugu"),
    Voice("nYPnDWjBvqKzLRvVDuLk", "Vikram", "te", "male", "Telugu"),
)
DEFAULT_VOICE = VOICES[0]
_VOICES_BY_ID = {voice.id: voice for voice in VOICES}


def get_voice_by_id(voice_id: str | None) -> Voice:
    """Unknown or empty ids resolve to the default voice."""
    return _VOICES_BY_ID.get(voice_id or "", DEFAULT_VOICE)


def voices_for_language(language: str) -> list[Voice]:
    language = (language or "").strip().lower()
    return [voice for voice in VOICES if voice.language == language]


def get_voice_for_language(language: str, gender: str = "female") -> Voice:
    """First voice matching language and gender, then English of that gender, then the default."""
    for candidate_language in ((language or "").strip().lower(), "en"):
        for voice in voices_for_language(candidate_language):
            if voice.gender == gender:
                return voice
    return DEFAULT_VOICE


def supported_languages() -> list[str]:
    languages: list[str] = []
    for voice in VOICES:
        if voice.language not in languages:
            languages.append(voice.language)
    return languages


_STATUS_MESSAGES = {
    401: "Invalid API key",
    422: "Invalid request parameters",
    429: "Rate limit exceeded",
}


@dataclass(slots=True)
class ElevenLabsClient:
    """Request synthesized PCM for one utterance.

    Missing credentials raise :class:`TTSNotConfiguredError` without touching
    the network; so does a 401. Everything else is a :class:`TTSProviderError`.
    """

    config: ElevenLabsConfig
    transport: httpx.AsyncBaseTransport | None = None
    logger: logging.Logger = field(default=LOGGER, repr=False)
    _client: httpx.AsyncClient | None = field(init=False, default=None, repr=False)

    @property
    def configured(self) -> bool:
        return bool(self.config.api_key)

    @property
    def sample_rate(self) -> int:
        return self.config.sample_rate

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers={"xi-api-key": self.config.api_key or "", "Accept": "audio/*"},
                timeout=self.config.timeout,
                transport=self.transport,
            )
        return self._client

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    async def synthesize(
        self,
        text: str,
        voice_id: str,
        *,
        model_id: str | None = None,
        settings: VoiceSettings | None = None,
    ) -> bytes:
        if not self.configured:
            raise TTSNotConfiguredError("ElevenLabs API key is not configured")
        payload = {
            "text": text,
            "model_id": model_id or self.config.model_id,
            "voice_settings": (settings or self.config.voice_settings).as_payload(),
        }
        try:
            response = await self._http().post(
                f"/v1/text-to-speech/{voice_id}",
                params={"output_format": self.config.output_format},
                json=payload,
            )
        except httpx.RequestError as exc:
            raise TTSProviderError(f"Failed to contact ElevenLabs: {exc}") from exc
        if response.status_code == 401:
            raise TTSNotConfiguredError(_STATUS_MESSAGES[401])
        if response.status_code >= 400:
            message = _STATUS_MESSAGES.get(response.status_code, f"ElevenLabs error {response.status_code}")
            self.logger.debug("ElevenLabs %s: %s", response.status_code, response.text[:200])
            raise TTSProviderError(message, status_code=response.status_code)
        if not response.content:
            raise TTSProviderError("Empty audio data received", status_code=response.status_code)
        return response.content
