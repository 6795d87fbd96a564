from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

import cv2
import numpy as np

from .config import ViewerConfig
from .events import EventChannel
from .image_source import (
    ImageSource,
    StreamImageSource,
    build_stream_uri,
    cache_busted_uri,
    load_placeholder,
)
from .logging_utils import set_stream, setup_logger
from .markers import ChannelSpec, MarkerStreamManager
from .output import PresentSink
from .overlay import OverlayRenderer, composite
from .overlay_types import ViewerState
from .providers import ChannelProvider, TransformProvider
from .transforms import TransformFrameTracker

INVALID_STREAM = "Invalid stream"


@dataclass
class RunSummary:
    ticks: int
    warnings: int
    avg_fps: float


class StreamCatalog:
    """The streams a viewer can switch between, with display labels."""

    def __init__(self, streams: list[str], labels: Optional[list[str]] = None):
        self.streams = list(streams)
        labels = list(labels or [])
        self.labels = [labels[i] if i < len(labels) else s for i, s in enumerate(self.streams)]

    def entries(self) -> list[tuple[str, str]]:
        return list(zip(self.streams, self.labels))

    def default(self, index: int) -> Optional[str]:
        if not self.streams:
            return None
        if 0 <= index < len(self.streams):
            return self.streams[index]
        return self.streams[0]

    def label_for(self, stream_id: str) -> str:
        for s, label in self.entries():
            if s == stream_id:
                return label
        return stream_id


class StreamViewer:
    """
    Streams one image source onto a fixed-size surface and draws live marker
    labels over it on every tick.

    Transform and marker callbacks may arrive on any thread. They are queued
    with ``post`` and applied at the start of the next tick, so the tracker
    and active marker set are only mutated on the thread running ``tick``.

    Notifications:
        warning -- emitted with a reason each tick the stream has no image
        changed -- emitted with the new stream id after ``switch_stream``
    """

    def __init__(
        self,
        config: ViewerConfig,
        transform_provider: Optional[TransformProvider] = None,
        channel_provider: Optional[ChannelProvider] = None,
        image_source_factory: Optional[Callable[[str], ImageSource]] = None,
        sinks: Optional[list[PresentSink]] = None,
        logger=None,
        stream_id: Optional[str] = None,
    ):
        self.config = config
        self.logger = logger or setup_logger(config.viewer_name)
        self.width = int(config.width)
        self.height = int(config.height)
        self.image_source_factory = image_source_factory or StreamImageSource
        self.sinks = list(sinks or [])

        self.state = ViewerState.IDLE
        self.current_stream_id: Optional[str] = None
        self.image_source: Optional[ImageSource] = None

        self.warning = EventChannel("warning")
        self.changed = EventChannel("changed")

        self._inbox: deque[Callable[[], None]] = deque()
        self._stop_event = threading.Event()
        self._sinks_open = False
        self._stream_ok: Optional[bool] = None

        self.tracker = TransformFrameTracker(transform_provider, dispatch=self.post, logger=self.logger)
        self.markers = MarkerStreamManager(
            self.tracker, channel_provider, dispatch=self.post, logger=self.logger
        )
        self.renderer = OverlayRenderer(self.width, self.height, logger=self.logger)
        self.placeholder = load_placeholder(config.placeholder_path)
        self.catalog = StreamCatalog(config.streams, config.labels)

        self.primary = np.zeros((self.height, self.width, 3), dtype=np.uint8)
        self._composited = self.primary.copy()
        self.last_placements = []
        self.ticks = 0
        self.warnings = 0

        self.tracker.register_frame(config.base_frame)
        if channel_provider is not None:
            for ch in config.marker_channels:
                self.markers.subscribe(ChannelSpec(ch.name, ch.message_type, ch.throttle_rate_ms))

        initial = stream_id or self.catalog.default(config.default_stream)
        if initial:
            self.switch_stream(initial)

    @property
    def composited(self) -> np.ndarray:
        view = self._composited.view()
        view.flags.writeable = False
        return view

    @property
    def tick_interval_ms(self) -> float:
        return self.config.tick_interval_ms

    def post(self, fn: Callable[[], None]) -> None:
        """Queue ``fn`` to run on the tick thread. Ignored once disposed."""
        if self.state is ViewerState.DISPOSED:
            return
        self._inbox.append(fn)

    def _drain(self) -> None:
        for _ in range(len(self._inbox)):
            fn = self._inbox.popleft()
            try:
                fn()
            except Exception:
                self.logger.exception("update callback failed")

    def switch_stream(self, stream_id: str) -> None:
        if self.state is ViewerState.DISPOSED:
            raise RuntimeError("viewer is disposed")

        uri = build_stream_uri(
            self.config.host,
            self.config.port,
            stream_id,
            self.width,
            self.height,
            quality=self.config.quality,
            invert=self.config.invert,
        )
        old = self.image_source
        source = self.image_source_factory(uri)
        source.start()
        if old is not None:
            try:
                # the old reader winds down on its own thread
                old.stop(wait=False)
            except Exception:
                self.logger.exception("stopping previous image source failed")
        self.image_source = source
        self.current_stream_id = stream_id
        set_stream(self.logger, stream_id)
        self.state = ViewerState.STREAMING
        self._stream_ok = None
        self.logger.info("stream -> %s (%s) uri=%s", stream_id, self.catalog.label_for(stream_id), uri)
        self.changed.emit(stream_id)

    def _draw_primary(self) -> bool:
        self.primary[:] = 0
        src = self.image_source
        img = src.latest() if src is not None else None
        if img is not None and img.ndim >= 2 and img.shape[0] * img.shape[1] > 0:
            if img.ndim == 2:
                img = cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
            elif img.shape[2] == 4:
                img = cv2.cvtColor(img, cv2.COLOR_BGRA2BGR)
            self.primary[:] = cv2.resize(img, (self.width, self.height))
            return True
        self._draw_placeholder()
        return False

    def _draw_placeholder(self) -> None:
        # centred at half the surface size
        pw, ph = self.width // 2, self.height // 2
        if pw <= 0 or ph <= 0:
            return
        x0, y0 = (self.width - pw) // 2, (self.height - ph) // 2
        self.primary[y0:y0 + ph, x0:x0 + pw] = cv2.resize(self.placeholder, (pw, ph))

    def _maybe_cache_bust(self) -> None:
        src = self.image_source
        if not self.config.cache_bust or src is None:
            return
        if self.ticks % max(1, self.config.cache_bust_every) == 0:
            src.reissue(cache_busted_uri(src.uri))

    def _report(self, valid: bool) -> None:
        if valid:
            if self._stream_ok is False:
                self.logger.info("stream %s recovered", self.current_stream_id)
            self._stream_ok = True
            return
        if self._stream_ok is not False:
            self.logger.warning("%s: %s", INVALID_STREAM, self.current_stream_id)
        self._stream_ok = False
        self.warnings += 1
        self.warning.emit(INVALID_STREAM)

    def _present(self, frame: np.ndarray) -> None:
        self._composited = frame
        if not self.sinks:
            return
        if not self._sinks_open:
            for sink in self.sinks:
                sink.open()
            self._sinks_open = True
        for sink in self.sinks:
            sink.present(self.ticks, frame)

    def tick(self) -> bool:
        """Run one render cycle. Returns True when a stream image was drawn."""
        if self.state is ViewerState.DISPOSED:
            return False
        self._drain()
        self.ticks += 1

        try:
            valid = self._draw_primary()
            self.last_placements = self.renderer.render(
                self.markers.active(), self.tracker, self.width, self.height
            )
            frame = composite(self.primary, self.renderer.surface)
            self._maybe_cache_bust()
        except Exception:
            self.logger.exception("tick %d failed", self.ticks)
            valid = False
            self.last_placements = []
            try:
                self.primary[:] = 0
                self._draw_placeholder()
            except Exception:
                self.logger.exception("placeholder draw failed")
            frame = self.primary.copy()

        self._report(valid)
        try:
            self._present(frame)
        except Exception:
            self.logger.exception("presenting tick %d failed", self.ticks)
        return valid

    def run(self, max_ticks: Optional[int] = None) -> RunSummary:
        interval = self.tick_interval_ms / 1000.0
        self._stop_event.clear()
        self.logger.info("render loop started interval_ms=%.1f", self.tick_interval_ms)

        t0 = time.monotonic()
        next_t = t0
        count = 0
        warnings_before = self.warnings
        while not self._stop_event.is_set() and self.state is not ViewerState.DISPOSED:
            if max_ticks is not None and count >= max_ticks:
                break
            self.tick()
            count += 1
            next_t += interval
            delay = next_t - time.monotonic()
            if delay > 0:
                self._stop_event.wait(delay)
            else:
                # fell behind, do not burst to catch up
                next_t = time.monotonic()

        avg = count / max(1e-6, (time.monotonic() - t0))
        summary = RunSummary(count, self.warnings - warnings_before, avg)
        self.logger.info("summary ticks=%d avg_fps=%.2f warnings=%d", summary.ticks, avg, summary.warnings)
        return summary

    def stop(self) -> None:
        self._stop_event.set()

    def dispose(self) -> None:
        if self.state is ViewerState.DISPOSED:
            return
        self.stop()
        self.state = ViewerState.DISPOSED
        self._inbox.clear()
        self.markers.close()
        self.tracker.close()
        if self.image_source is not None:
            try:
                self.image_source.stop()
            except Exception:
                self.logger.exception("stopping image source failed")
        if self._sinks_open:
            for sink in self.sinks:
                try:
                    sink.close()
                except Exception:
                    self.logger.exception("closing sink failed")
            self._sinks_open = False
        self.logger.info("viewer disposed")
