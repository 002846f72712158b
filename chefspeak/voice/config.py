"""Configuration helpers for the ChefSpeak voice subsystem."""

from __future__ import annotations

import os
import shlex
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from chefspeak.utils import parse_bool, parse_float, parse_int, parse_ms


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


DEFAULT_LANGUAGE = "en"
DEFAULT_ELEVEN_LABS_MODEL = "eleven_multilingual_v2"
DEFAULT_OUTPUT_FORMAT = "pcm_16000"


@dataclass(frozen=True)
class WyomingEndpoint:
    host: str
    port: int
    model: str | None = None


@dataclass(frozen=True)
class MicConfig:
    command: list[str]
    rate: int
    width: int
    channels: int
    chunk_ms: int

    @property
    def bytes_per_chunk(self) -> int:
        samples = int(self.rate * (self.chunk_ms / 1000))
        return samples * self.width * self.channels


@dataclass(frozen=True)
class PhraseConfig:
    min_seconds: float
    max_seconds: float
    silence_ms: int
    rms_floor: int


@dataclass(frozen=True)
class VoiceSettings:
    stability: float = 0.5
    similarity_boost: float = 0.75
    style: float | None = 0.0
    use_speaker_boost: bool = True

    def as_payload(self) -> dict[str, float | bool]:
        payload: dict[str, float | bool] = {
            "stability": self.stability,
            "similarity_boost": self.similarity_boost,
            "use_speaker_boost": self.use_speaker_boost,
        }
        if self.style is not None:
            payload["style"] = self.style
        return payload


@dataclass(frozen=True)
class ElevenLabsConfig:
    api_key: str | None
    base_url: str
    model_id: str
    output_format: str
    timeout: float
    voice_settings: VoiceSettings

    @property
    def sample_rate(self) -> int:
        """Sample rate encoded in a ``pcm_<rate>`` output format."""
        _, _, rate = self.output_format.partition("_")
        return parse_int(rate, 16000)


@dataclass(frozen=True)
class LocalVoiceConfig:
    rate: float
    pitch: float
    volume: float
    voice: str | None


@dataclass(frozen=True)
class TimingConfig:
    debounce_seconds: float
    language_settle_seconds: float
    context_expiry_seconds: float
    max_fallback_attempts: int
    local_settle_seconds: float


@dataclass(frozen=True)
class MqttConfig:
    host: str | None
    port: int
    username: str | None
    password: str | None
    tls_enabled: bool
    cert: str | None
    key: str | None
    ca_cert: str | None
    topic_base: str


@dataclass(frozen=True)
class VoiceConfig:
    hostname: str
    language: str
    prefer_cloud_tts: bool
    voice_id: str | None
    voice_gender: Literal["female", "male"]
    eleven_labs: ElevenLabsConfig
    local_voice: LocalVoiceConfig
    mic: MicConfig
    phrase: PhraseConfig
    stt_endpoint: WyomingEndpoint
    tts_endpoint: WyomingEndpoint
    timing: TimingConfig
    lexicon_file: Path | None
    mqtt: MqttConfig
    state_topic: str
    transcript_topic: str
    command_topic: str
    error_topic: str

    @staticmethod
    def from_env(env: dict[str, str] | None = None) -> VoiceConfig:
        source = os.environ if env is None else env
        hostname = source.get("CHEFSPEAK_HOSTNAME") or socket.gethostname()
        language = (source.get("CHEFSPEAK_LANGUAGE") or DEFAULT_LANGUAGE).strip().lower() or DEFAULT_LANGUAGE

        output_format = (source.get("ELEVEN_LABS_OUTPUT_FORMAT") or DEFAULT_OUTPUT_FORMAT).strip().lower()
        if not output_format.startswith("pcm_"):
            output_format = DEFAULT_OUTPUT_FORMAT

        eleven_labs = ElevenLabsConfig(
            api_key=_strip_or_none(source.get("ELEVEN_LABS_API_KEY")),
            base_url=(source.get("ELEVEN_LABS_BASE_URL") or "https://api.elevenlabs.io").rstrip("/"),
            model_id=source.get("ELEVEN_LABS_MODEL_ID") or DEFAULT_ELEVEN_LABS_MODEL,
            output_format=output_format,
            timeout=parse_float(source.get("ELEVEN_LABS_TIMEOUT_SECONDS"), 30.0),
            voice_settings=VoiceSettings(
                stability=parse_float(source.get("ELEVEN_LABS_STABILITY"), 0.5),
                similarity_boost=parse_float(source.get("ELEVEN_LABS_SIMILARITY_BOOST"), 0.75),
                style=parse_float(source.get("ELEVEN_LABS_STYLE"), 0.0),
                use_speaker_boost=parse_bool(source.get("ELEVEN_LABS_SPEAKER_BOOST"), True),
            ),
        )

        local_voice = LocalVoiceConfig(
            rate=parse_float(source.get("CHEFSPEAK_LOCAL_TTS_RATE"), 0.9),
            pitch=parse_float(source.get("CHEFSPEAK_LOCAL_TTS_PITCH"), 1.0),
            volume=parse_float(source.get("CHEFSPEAK_LOCAL_TTS_VOLUME"), 0.8),
            voice=_strip_or_none(source.get("CHEFSPEAK_LOCAL_TTS_VOICE")),
        )

        mic_cmd = shlex.split(
            source.get(
                "CHEFSPEAK_MIC_CMD",
                "arecord -q -t raw -f S16_LE -c 1 -r 16000 -",
            )
        )
        mic = MicConfig(
            command=mic_cmd,
            rate=parse_int(source.get("CHEFSPEAK_MIC_RATE"), 16000),
            width=parse_int(source.get("CHEFSPEAK_MIC_WIDTH"), 2),
            channels=parse_int(source.get("CHEFSPEAK_MIC_CHANNELS"), 1),
            chunk_ms=parse_int(source.get("CHEFSPEAK_MIC_CHUNK_MS"), 30),
        )
        phrase = PhraseConfig(
            min_seconds=parse_float(source.get("CHEFSPEAK_MIN_PHRASE_SECONDS"), 1.0),
            max_seconds=parse_float(source.get("CHEFSPEAK_MAX_PHRASE_SECONDS"), 8.0),
            silence_ms=parse_int(source.get("CHEFSPEAK_SILENCE_MS"), 900),
            rms_floor=parse_int(source.get("CHEFSPEAK_RMS_THRESHOLD"), 120),
        )

        stt_endpoint = WyomingEndpoint(
            host=source.get("WYOMING_WHISPER_HOST", "127.0.0.1"),
            port=parse_int(source.get("WYOMING_WHISPER_PORT"), 10300),
            model=source.get("CHEFSPEAK_STT_MODEL"),
        )
        tts_endpoint = WyomingEndpoint(
            host=source.get("WYOMING_PIPER_HOST", "127.0.0.1"),
            port=parse_int(source.get("WYOMING_PIPER_PORT"), 10200),
            model=None,
        )

        timing = TimingConfig(
            debounce_seconds=parse_ms(source.get("CHEFSPEAK_DEBOUNCE_MS"), 1000),
            language_settle_seconds=parse_ms(source.get("CHEFSPEAK_LANGUAGE_SETTLE_MS"), 300),
            context_expiry_seconds=parse_ms(source.get("CHEFSPEAK_CONTEXT_EXPIRY_MS"), 5000),
            max_fallback_attempts=max(0, parse_int(source.get("CHEFSPEAK_MAX_FALLBACK_ATTEMPTS"), 2)),
            local_settle_seconds=parse_ms(source.get("CHEFSPEAK_LOCAL_TTS_SETTLE_MS"), 100),
        )

        lexicon_file = None
        if path := source.get("CHEFSPEAK_LEXICON_FILE"):
            candidate = Path(path)
            if candidate.is_file():
                lexicon_file = candidate

        topic_base = source.get("CHEFSPEAK_TOPIC_BASE") or f"chefspeak/{hostname}/voice"
        mqtt = MqttConfig(
            host=_strip_or_none(source.get("MQTT_HOST")),
            port=parse_int(source.get("MQTT_PORT"), 1883),
            username=_strip_or_none(source.get("MQTT_USER") or source.get("MQTT_USERNAME")),
            password=_strip_or_none(source.get("MQTT_PASS") or source.get("MQTT_PASSWORD")),
            tls_enabled=parse_bool(source.get("MQTT_TLS_ENABLED"), False),
            cert=_strip_or_none(source.get("MQTT_CERT")),
            key=_strip_or_none(source.get("MQTT_KEY")),
            ca_cert=_strip_or_none(source.get("MQTT_CA_CERT")),
            topic_base=topic_base.rstrip("/"),
        )

        return VoiceConfig(
            hostname=hostname,
            language=language,
            prefer_cloud_tts=parse_bool(source.get("CHEFSPEAK_TTS_PREFER_CLOUD"), True),
            voice_id=_strip_or_none(source.get("CHEFSPEAK_TTS_VOICE_ID")),
            voice_gender=_normalize_choice(source.get("CHEFSPEAK_TTS_GENDER"), {"female", "male"}, "female"),
            eleven_labs=eleven_labs,
            local_voice=local_voice,
            mic=mic,
            phrase=phrase,
            stt_endpoint=stt_endpoint,
            tts_endpoint=tts_endpoint,
            timing=timing,
            lexicon_file=lexicon_file,
            mqtt=mqtt,
            state_topic=f"{mqtt.topic_base}/state",
            transcript_topic=f"{mqtt.topic_base}/transcript",
            command_topic=f"{mqtt.topic_base}/command",
            error_topic=f"{mqtt.topic_base}/error",
        )


def _normalize_choice(value: str | None, allowed: set[str], default: str) -> str:
    if not value:
        return default
    lowered = value.strip().lower()
    if lowered in allowed:
        return lowered
    return default
