"""MQTT status publisher for the voice session."""

from __future__ import annotations

import json
import logging
import ssl
import threading
from typing import Any

import paho.mqtt.client as mqtt

from .config import MqttConfig


class VoiceMqtt:
    """Fire-and-forget telemetry. Every method is a no-op when MQTT is not configured."""

    def __init__(self, config: MqttConfig, client_id: str | None = None, logger: logging.Logger | None = None) -> None:
        self.config = config
        self.client_id = client_id or f"chefspeak-voice-{config.topic_base.replace('/', '-')}"
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._lock = threading.Lock()

    @property
    def availability_topic(self) -> str:
        return f"{self.config.topic_base}/availability"

    def connect(self) -> None:
        if not self.config.host:
            self._logger.debug("[mqtt] No MQTT host; voice telemetry disabled")
            return
        with self._lock:
            if self._client is not None:
                return
            client = mqtt.Client(
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
                client_id=self.client_id,
                clean_session=True,
            )
            if self.config.username:
                client.username_pw_set(self.config.username, self.config.password or "")
            if self.config.tls_enabled:
                client.tls_set(
                    ca_certs=self.config.ca_cert,
                    certfile=self.config.cert,
                    keyfile=self.config.key,
                    tls_version=ssl.PROTOCOL_TLS_CLIENT,
                )
            client.will_set(self.availability_topic, payload="offline", retain=True)
            try:
                client.connect(self.config.host, self.config.port, keepalive=30)
            except (OSError, ValueError) as exc:
                self._logger.warning("[mqtt] Could not connect to %s:%s: %s", self.config.host, self.config.port, exc)
                return
            client.loop_start()
            self._client = client
        self.publish(self.availability_topic, "online", retain=True)

    def disconnect(self) -> None:
        with self._lock:
            client, self._client = self._client, None
        if client is None:
            return
        try:
            client.publish(self.availability_topic, payload="offline", retain=True)
        except (OSError, ValueError) as exc:
            self._logger.debug("[mqtt] Failed to publish offline state: %s", exc)
        client.loop_stop()
        client.disconnect()

    def is_connected(self) -> bool:
        client = self._client
        return bool(client and client.is_connected())

    def publish(self, topic: str, payload: str, retain: bool = False, qos: int = 0) -> None:
        client = self._client
        if client is None:
            return
        try:
            client.publish(topic, payload=payload, qos=qos, retain=retain)
        except (OSError, ValueError) as exc:
            self._logger.debug("[mqtt] Failed to publish to %s: %s", topic, exc)

    def publish_json(self, topic: str, payload: Any, retain: bool = False) -> None:
        self.publish(topic, json.dumps(payload, ensure_ascii=False), retain=retain)
