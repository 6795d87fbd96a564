"""Tracking of named coordinate frames and their latest pose."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .overlay_types import Pose
from .providers import Subscription, TransformProvider

Dispatcher = Callable[[Callable[[], None]], None]


def _call_now(fn: Callable[[], None]) -> None:
    fn()


class TransformFrameTracker:
    """
    Keeps the latest Pose for every registered frame.

    Provider callbacks are routed through ``dispatch`` so the owning viewer can
    apply them on its own thread. Lookups never fail: a frame without a pose
    (not registered, or no update yet) resolves to the identity pose.
    """

    def __init__(
        self,
        provider: Optional[TransformProvider] = None,
        dispatch: Dispatcher = _call_now,
        logger: Optional[logging.Logger] = None,
    ):
        self.provider = provider
        self.dispatch = dispatch
        self.logger = logger or logging.getLogger(__name__)
        self._poses: dict[str, Optional[Pose]] = {}
        self._subs: dict[str, Subscription] = {}

    @property
    def frames(self) -> tuple[str, ...]:
        return tuple(self._poses)

    def is_tracked(self, name: str) -> bool:
        return name in self._poses

    def register_frame(self, name: str) -> None:
        if name in self._poses:
            return
        self._poses[name] = None
        if self.provider is not None:

            def _on_transform(raw, _name=name):
                self.dispatch(lambda: self.update_pose(_name, raw))

            try:
                self._subs[name] = self.provider.subscribe(name, _on_transform)
            except Exception:
                # untracked again, so a later register_frame retries
                del self._poses[name]
                raise
        self.logger.info("tracking frame %s", name)

    def update_pose(self, name: str, pose) -> None:
        if name not in self._poses:
            self.logger.debug("ignoring pose for unregistered frame %s", name)
            return
        if not isinstance(pose, Pose):
            pose = Pose.from_dict(pose)
        self._poses[name] = pose

    def lookup(self, name: str) -> Pose:
        pose = self._poses.get(name)
        return pose if pose is not None else Pose.identity()

    def close(self) -> None:
        for sub in self._subs.values():
            sub.cancel()
        self._subs.clear()
