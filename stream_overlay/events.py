from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventChannel:
    """A named notification that listeners subscribe to."""

    def __init__(self, name: str):
        self.name = name
        self._listeners: list[Callable[[Any], None]] = []

    def subscribe(self, cb: Callable[[Any], None]) -> Callable[[], None]:
        self._listeners.append(cb)

        def _unsubscribe():
            if cb in self._listeners:
                self._listeners.remove(cb)

        return _unsubscribe

    def emit(self, payload: Any) -> None:
        for cb in list(self._listeners):
            try:
                cb(payload)
            except Exception:
                logger.exception("listener for '%s' failed", self.name)

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)
