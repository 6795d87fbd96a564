"""Image source abstraction for the primary stream.

Provides a unified interface for where the primary image comes from:
- MJPEG / HTTP streams (via OpenCV)
- Static images and never-resolving sources (offline, tests)

A source reports zero dimensions until it has produced a frame. Loading is
fire-and-forget: callers poll ``latest()`` and never block on it.
"""

from __future__ import annotations

import logging
import random
import threading
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import cv2
import numpy as np

logger = logging.getLogger(__name__)

CACHE_BUST_PARAM = "killcache"


def build_stream_uri(
    host: str,
    port: int,
    stream_id: str,
    width: int,
    height: int,
    quality: Optional[int] = None,
    invert: bool = False,
) -> str:
    src = f"http://{host}:{port}/stream?topic={stream_id}"
    src += f"&width={width}"
    src += f"&height={height}"
    if quality is not None and quality > 0:
        src += f"&quality={quality}"
    if invert:
        src += "&invert=true"
    return src


def cache_busted_uri(uri: str, rng: Optional[random.Random] = None) -> str:
    """Return ``uri`` with a fresh random cache-busting query parameter."""
    rng = rng or random
    parts = urlsplit(uri)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != CACHE_BUST_PARAM]
    query.append((CACHE_BUST_PARAM, f"{rng.random():.12f}"))
    return urlunsplit(parts._replace(query=urlencode(query, safe="/")))


class ImageSource(ABC):
    """Abstract base class for primary image sources."""

    uri: str = ""

    @abstractmethod
    def start(self) -> None:
        """Begin loading. Must return immediately."""
        ...

    @abstractmethod
    def latest(self) -> Optional[np.ndarray]:
        """Most recent decoded BGR frame, or None if nothing has loaded."""
        ...

    @property
    def width(self) -> int:
        img = self.latest()
        return 0 if img is None else int(img.shape[1])

    @property
    def height(self) -> int:
        img = self.latest()
        return 0 if img is None else int(img.shape[0])

    def reissue(self, uri: str) -> None:
        """Point the source at ``uri``, e.g. a cache-busted variant."""
        self.uri = uri

    @abstractmethod
    def stop(self, wait: bool = True) -> None:
        """Stop loading and release resources.

        With ``wait=False`` the call only signals the loader and returns.
        """
        ...


class StreamImageSource(ImageSource):
    """HTTP/MJPEG stream read by OpenCV on a background thread.

    Open and read failures are retried quietly. Until the first frame
    arrives the source stays zero-dimensioned.
    """

    def __init__(self, uri: str, retry_delay_s: float = 1.0):
        self.uri = uri
        self.retry_delay_s = retry_delay_s
        self.cap: Any = None
        self._frame: Optional[np.ndarray] = None
        self._opened_uri: Optional[str] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        # a stopped source stays stopped, its reader may still be winding down
        if self._thread is not None or self._stop_event.is_set():
            return
        self._thread = threading.Thread(target=self._reader, name="stream-reader", daemon=True)
        self._thread.start()

    def latest(self) -> Optional[np.ndarray]:
        return self._frame

    def _open(self, uri: str) -> bool:
        self._release()
        self.cap = cv2.VideoCapture(uri)
        self._opened_uri = uri
        if not self.cap.isOpened():
            logger.debug("could not open stream %s", uri)
            self._release()
            return False
        return True

    def _release(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None

    def _reader(self) -> None:
        while not self._stop_event.is_set():
            if self.cap is None or self._opened_uri != self.uri:
                if not self._open(self.uri):
                    self._stop_event.wait(self.retry_delay_s)
                    continue
            ok, img = self.cap.read()
            if not ok or img is None:
                self._release()
                self._stop_event.wait(self.retry_delay_s)
                continue
            self._frame = img
        self._release()

    def stop(self, wait: bool = True) -> None:
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if wait and thread is not None:
            thread.join(timeout=2.0)


class StaticImageSource(ImageSource):
    """Serves a fixed image. ``image=None`` models a stream that never loads."""

    def __init__(self, image: Optional[np.ndarray] = None, uri: str = ""):
        self.uri = uri
        self.image = image
        self.started = False
        self.stopped = False
        self.reissued: list[str] = []

    def start(self) -> None:
        self.started = True

    def latest(self) -> Optional[np.ndarray]:
        return self.image

    def reissue(self, uri: str) -> None:
        super().reissue(uri)
        self.reissued.append(uri)

    def stop(self, wait: bool = True) -> None:
        self.stopped = True


def make_placeholder(width: int = 256, height: int = 256) -> np.ndarray:
    img = np.full((height, width, 3), 170, dtype=np.uint8)
    pad = max(2, min(width, height) // 6)
    red = (40, 40, 200)
    thickness = max(2, min(width, height) // 24)
    cv2.rectangle(img, (pad, pad), (width - pad, height - pad), red, thickness, cv2.LINE_AA)
    cv2.line(img, (pad, pad), (width - pad, height - pad), red, thickness, cv2.LINE_AA)
    cv2.line(img, (width - pad, pad), (pad, height - pad), red, thickness, cv2.LINE_AA)
    return img


def load_placeholder(path: Optional[str] = None) -> np.ndarray:
    if path:
        img = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if img is not None:
            return img
        logger.warning("placeholder image %s unreadable, using built-in icon", path)
    return make_placeholder()

