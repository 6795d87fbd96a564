"""Transport for transform updates and marker channels.

Two flavours are provided:
- in-process hubs (``Local*``) used offline and in tests
- MQTT clients (``Mqtt*``) carrying JSON payloads
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

TransformCallback = Callable[[Any], None]
MessageCallback = Callable[[Any], None]


class Subscription:
    def __init__(self, on_cancel: Optional[Callable[[], None]] = None):
        self._on_cancel = on_cancel
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._on_cancel is not None:
            self._on_cancel()


class Throttle:
    """Drops calls arriving sooner than ``rate_ms`` after the last accepted one."""

    def __init__(self, rate_ms: float, clock: Callable[[], float] = time.monotonic):
        self.rate_s = max(0.0, float(rate_ms or 0.0)) / 1000.0
        self._clock = clock
        self._last: Optional[float] = None

    def allow(self) -> bool:
        now = self._clock()
        if self._last is not None and (now - self._last) < self.rate_s:
            return False
        self._last = now
        return True


class TransformProvider(ABC):
    @abstractmethod
    def subscribe(self, frame_name: str, cb: TransformCallback) -> Subscription: ...


class ChannelProvider(ABC):
    @abstractmethod
    def subscribe(self, spec, cb: MessageCallback) -> Subscription: ...


class LocalTransformProvider(TransformProvider):
    def __init__(self):
        self._subs: dict[str, list[TransformCallback]] = {}

    def subscribe(self, frame_name: str, cb: TransformCallback) -> Subscription:
        self._subs.setdefault(frame_name, []).append(cb)
        return Subscription(lambda: self._subs.get(frame_name, []).remove(cb))

    def publish(self, frame_name: str, pose) -> int:
        delivered = 0
        for cb in list(self._subs.get(frame_name, [])):
            cb(pose)
            delivered += 1
        return delivered


class LocalChannelProvider(ChannelProvider):
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._subs: dict[str, list[tuple[Throttle, MessageCallback]]] = {}

    def subscribe(self, spec, cb: MessageCallback) -> Subscription:
        entry = (Throttle(spec.throttle_rate_ms, self._clock), cb)
        self._subs.setdefault(spec.name, []).append(entry)
        return Subscription(lambda: self._subs.get(spec.name, []).remove(entry))

    def publish(self, name: str, message) -> int:
        delivered = 0
        for throttle, cb in list(self._subs.get(name, [])):
            if not throttle.allow():
                continue
            cb(message)
            delivered += 1
        return delivered


class _MqttHub:
    def __init__(
        self,
        broker_ip: str,
        broker_port: int = 1883,
        prefix: str = "",
        keepalive: int = 60,
        client: Optional[mqtt.Client] = None,
    ):
        self.broker_ip = broker_ip
        self.broker_port = broker_port
        self.prefix = prefix.strip("/")
        self.keepalive = keepalive
        self.client = client or mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        self._connected = False

    def topic_for(self, name: str) -> str:
        name = name.strip("/")
        return f"{self.prefix}/{name}" if self.prefix else name

    def connect(self) -> None:
        if self._connected:
            return
        self.client.connect(self.broker_ip, self.broker_port, self.keepalive)
        self.client.loop_start()
        self._connected = True
        logger.info("mqtt connected broker=%s:%d prefix=%s", self.broker_ip, self.broker_port, self.prefix)

    def close(self) -> None:
        if not self._connected:
            return
        self.client.loop_stop()
        self.client.disconnect()
        self._connected = False

    def _listen(self, topic: str, handler: Callable[[Any], None]) -> Subscription:
        def _on_message(_client, _userdata, msg):
            try:
                payload = json.loads(msg.payload.decode("utf-8"))
            except (UnicodeDecodeError, ValueError) as e:
                logger.warning("dropping malformed payload on %s: %s", msg.topic, e)
                return
            handler(payload)

        self.connect()
        self.client.message_callback_add(topic, _on_message)
        self.client.subscribe(topic)

        def _cancel():
            self.client.unsubscribe(topic)
            self.client.message_callback_remove(topic)

        return Subscription(_cancel)


class MqttTransformProvider(_MqttHub, TransformProvider):
    def subscribe(self, frame_name: str, cb: TransformCallback) -> Subscription:
        return self._listen(self.topic_for(frame_name), cb)


class MqttChannelProvider(_MqttHub, ChannelProvider):
    def __init__(self, *args, clock: Callable[[], float] = time.monotonic, **kwargs):
        super().__init__(*args, **kwargs)
        self._clock = clock

    def subscribe(self, spec, cb: MessageCallback) -> Subscription:
        throttle = Throttle(spec.throttle_rate_ms, self._clock)

        def _throttled(payload):
            if throttle.allow():
                cb(payload)

        return self._listen(self.topic_for(spec.name), _throttled)
