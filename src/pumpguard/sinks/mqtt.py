"""MQTT notification publisher.

Publishes every notification event as JSON through a threaded paho-mqtt
client. Device-scoped events go to ``<prefix>/<device_id>/<kind>``;
system alerts go to ``<prefix>/alerts`` so dashboards can follow every
device with a single subscription.
"""

from __future__ import annotations

import logging
from typing import Any, cast

import paho.mqtt.client as mqtt

from pumpguard.exceptions import SinkError
from pumpguard.models.notifications import NotificationEvent, SystemAlert


def topic_for(prefix: str, event: NotificationEvent) -> str:
    base = prefix.rstrip("/")
    if isinstance(event, SystemAlert):
        return f"{base}/alerts"
    return f"{base}/{event.device_id}/{event.kind}"


def encode_notification(event: NotificationEvent) -> bytes:
    return event.model_dump_json().encode("utf-8")


class MqttNotifier:
    """Threaded paho-mqtt publisher for notification events."""

    def __init__(
        self,
        *,
        host: str,
        port: int = 1883,
        topic_prefix: str = "pumpguard",
        client_id: str = "",
        username: str | None = None,
        password: str | None = None,
        keepalive: int = 60,
        qos: int = 1,
        logger: logging.Logger | None = None,
        client: mqtt.Client | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._topic_prefix = topic_prefix
        self._client_id = client_id
        self._username = username
        self._password = password
        self._keepalive = keepalive
        self._qos = qos
        self._logger = logger or logging.getLogger(__name__)
        self._client = client
        self._running = client is not None

    @property
    def is_running(self) -> bool:
        """Whether the MQTT network loop is active."""
        return self._running

    def start(self) -> None:
        """Connect to the broker and start the network loop."""
        self.stop()
        self._logger.debug(
            "MQTT notifier start requested host=%s port=%s prefix=%s",
            self._host,
            self._port,
            self._topic_prefix,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=self._client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if self._username:
            client.username_pw_set(self._username, self._password)

        def on_connect(
            _c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected reason=%s", reason_code)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_disconnect = on_disconnect

        client.connect(self._host, self._port, keepalive=self._keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Stop and disconnect the current client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    async def publish(self, event: NotificationEvent) -> None:
        client = self._client
        if client is None or not self._running:
            raise SinkError("MQTT notifier is not running", endpoint=self._host)
        topic = topic_for(self._topic_prefix, event)
        info = client.publish(topic, encode_notification(event), qos=self._qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise SinkError(f"MQTT publish to {topic} failed rc={info.rc}", endpoint=topic)
        self._logger.debug("MQTT published topic=%s kind=%s", topic, event.kind)
