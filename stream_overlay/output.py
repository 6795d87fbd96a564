from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import cv2
import numpy as np


class PresentSink(ABC):
    @abstractmethod
    def open(self) -> None: ...

    @abstractmethod
    def present(self, index: int, frame: np.ndarray) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class SnapshotSink(PresentSink):
    """Writes every ``every``-th composited frame to ``directory``."""

    def __init__(self, directory: str | Path, every: int = 1):
        self.directory = Path(directory)
        self.every = max(1, int(every))
        self.last_path: Optional[str] = None

    def open(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def present(self, index: int, frame: np.ndarray) -> None:
        if index % self.every:
            return
        p = self.directory / f"f{index:06d}.jpg"
        cv2.imwrite(str(p), frame)
        self.last_path = str(p)

    def close(self) -> None:
        return None


class WindowSink(PresentSink):
    def __init__(self, title: str = "stream_overlay"):
        self.title = title

    def open(self) -> None:
        cv2.namedWindow(self.title, cv2.WINDOW_AUTOSIZE)

    def present(self, index: int, frame: np.ndarray) -> None:
        cv2.imshow(self.title, frame)
        cv2.waitKey(1)

    def close(self) -> None:
        cv2.destroyWindow(self.title)


class NullSink(PresentSink):
    def open(self) -> None:
        return None

    def present(self, index: int, frame: np.ndarray) -> None:
        return None

    def close(self) -> None:
        return None
