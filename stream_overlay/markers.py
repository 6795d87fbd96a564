"""Marker channel subscriptions and the active marker set."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

from .overlay_types import MarkerMessage
from .providers import ChannelProvider, Subscription
from .transforms import Dispatcher, TransformFrameTracker, _call_now

INTERACTIVE_MARKER_INIT = "visualization_msgs/InteractiveMarkerInit"


@dataclass(frozen=True)
class ChannelSpec:
    name: str
    message_type: str = INTERACTIVE_MARKER_INIT
    # provider-side throttle, upstream messages faster than this are dropped
    throttle_rate_ms: float = 3800


@dataclass
class _Channel:
    spec: ChannelSpec
    kind: str
    subscription: Subscription


class MarkerStreamManager:
    """
    Holds at most one active MarkerMessage per kind.

    A new message of a kind replaces the previous one. Frames referenced by
    incoming messages are registered with the tracker on first sight.
    """

    def __init__(
        self,
        tracker: TransformFrameTracker,
        provider: Optional[ChannelProvider] = None,
        dispatch: Dispatcher = _call_now,
        logger: Optional[logging.Logger] = None,
    ):
        self.tracker = tracker
        self.provider = provider
        self.dispatch = dispatch
        self.logger = logger or logging.getLogger(__name__)
        self._active: dict[str, MarkerMessage] = {}
        self._channels: dict[str, _Channel] = {}

    @property
    def channels(self) -> tuple[str, ...]:
        return tuple(self._channels)

    def subscribe(self, spec: ChannelSpec, kind: Optional[str] = None) -> None:
        if self.provider is None:
            raise RuntimeError("no channel provider configured")
        kind = kind or spec.message_type
        if spec.name in self._channels:
            self.unsubscribe(spec.name)

        def _on_message(message, _kind=kind):
            self.dispatch(lambda: self.handle_message(_kind, message))

        sub = self.provider.subscribe(spec, _on_message)
        self._channels[spec.name] = _Channel(spec, kind, sub)
        self.logger.info(
            "subscribed channel=%s kind=%s throttle_ms=%s",
            spec.name,
            kind,
            spec.throttle_rate_ms,
        )

    def unsubscribe(self, name: str, purge: bool = False) -> bool:
        channel = self._channels.pop(name, None)
        if channel is None:
            return False
        channel.subscription.cancel()
        # a kind still fed by another channel keeps its markers
        if purge and not any(c.kind == channel.kind for c in self._channels.values()):
            self._active.pop(channel.kind, None)
        self.logger.info("unsubscribed channel=%s purge=%s", name, purge)
        return True

    def handle_message(self, kind: str, message) -> bool:
        """Apply one inbound message. Returns False when it was dropped."""
        if isinstance(message, Mapping):
            message = MarkerMessage.from_dict(kind, message)
        elif not isinstance(message, MarkerMessage):
            self.logger.debug("dropping marker message kind=%s: unexpected payload %r", kind, type(message))
            return False
        if not message.elements or not message.source_frame:
            self.logger.debug("dropping marker message kind=%s: nothing to project", kind)
            return False
        if message.kind != kind:
            message = MarkerMessage(kind, message.source_frame, message.groups)

        if not self.tracker.is_tracked(message.source_frame):
            self.tracker.register_frame(message.source_frame)

        # pop first so the replacement moves to the end of arrival order
        self._active.pop(kind, None)
        self._active[kind] = message
        return True

    def active(self) -> list[MarkerMessage]:
        return list(self._active.values())

    def active_kinds(self) -> list[str]:
        return list(self._active)

    def get(self, kind: str) -> Optional[MarkerMessage]:
        return self._active.get(kind)

    def close(self) -> None:
        for name in list(self._channels):
            self.unsubscribe(name)
