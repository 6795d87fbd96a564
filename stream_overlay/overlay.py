from __future__ import annotations

import logging
import math
from typing import Callable, Iterable, Optional

import cv2
import numpy as np

from .markers import INTERACTIVE_MARKER_INIT
from .overlay_types import LabelPlacement, MarkerMessage
from .projection import project
from .transforms import TransformFrameTracker

FONT = cv2.FONT_HERSHEY_SIMPLEX
# keep cv2 away from coordinates it cannot represent as int32
_MAX_COORD = 1 << 24

Drawer = Callable[["OverlayRenderer", MarkerMessage, TransformFrameTracker, int, int], list]


def font_size_for_depth(depth: float) -> float:
    return (depth + 1) * 10


def draw_label(surface: np.ndarray, text: str, x: float, y: float, font_size: float, color) -> bool:
    """Draw ``text`` with its baseline-left corner at (x, y), ``font_size`` pixels tall."""
    if not all(math.isfinite(v) for v in (x, y, font_size)):
        return False
    if font_size <= 0 or abs(x) > _MAX_COORD or abs(y) > _MAX_COORD:
        return False
    px = max(1, int(round(font_size)))
    thickness = 1
    scale = cv2.getFontScaleFromHeight(FONT, px, thickness)
    cv2.putText(surface, text, (int(round(x)), int(round(y))), FONT, scale, color, thickness, cv2.LINE_AA)
    return True


def draw_interactive_marker_init(
    renderer: "OverlayRenderer",
    message: MarkerMessage,
    tracker: TransformFrameTracker,
    width: int,
    height: int,
) -> list[LabelPlacement]:
    pose = tracker.lookup(message.source_frame)
    placed = []
    for group in message.groups:
        for control in group.controls:
            for element in control.elements:
                if not element.label:
                    continue
                try:
                    p = project(pose, element.position, width, height)
                except ValueError:
                    # math.cos/sin reject infinities
                    continue
                fs = font_size_for_depth(p.depth)
                lx, ly = p.x - 2 * fs, p.y - 2 * fs
                if draw_label(renderer.surface, element.label, lx, ly, fs, renderer.color):
                    placed.append(LabelPlacement(element.label, lx, ly, fs))
    return placed


class OverlayRenderer:
    """Draws the active markers onto a transparent BGRA surface."""

    def __init__(self, width: int, height: int, color=(255, 255, 255), logger: Optional[logging.Logger] = None):
        self.color = tuple(color)[:3] + (255,)
        self.logger = logger or logging.getLogger(__name__)
        self.surface = np.zeros((height, width, 4), dtype=np.uint8)
        self._drawers: dict[str, Drawer] = {INTERACTIVE_MARKER_INIT: draw_interactive_marker_init}

    @property
    def kinds(self) -> list[str]:
        return list(self._drawers)

    def register_kind(self, kind: str, drawer: Drawer) -> None:
        self._drawers[kind] = drawer

    def clear(self, width: int, height: int) -> None:
        if self.surface.shape[:2] != (height, width):
            self.surface = np.zeros((height, width, 4), dtype=np.uint8)
        else:
            self.surface[:] = 0

    def render(
        self,
        active: Iterable[MarkerMessage],
        tracker: TransformFrameTracker,
        width: int,
        height: int,
    ) -> list[LabelPlacement]:
        # full redraw every call, no dirty-region tracking
        self.clear(width, height)
        placed: list[LabelPlacement] = []
        for message in list(active):
            drawer = self._drawers.get(message.kind)
            if drawer is None:
                self.logger.debug("no drawer for marker kind %s", message.kind)
                continue
            placed.extend(drawer(self, message, tracker, width, height))
        return placed


def composite(primary: np.ndarray, overlay: np.ndarray) -> np.ndarray:
    """Alpha-blend a BGRA overlay over a BGR image of the same size."""
    alpha = overlay[..., 3:4].astype(np.float32) / 255.0
    blended = primary.astype(np.float32) * (1.0 - alpha) + overlay[..., :3].astype(np.float32) * alpha
    return np.clip(blended + 0.5, 0, 255).astype(np.uint8)
