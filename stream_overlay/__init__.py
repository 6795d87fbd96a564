"""Live marker-label overlay for streamed camera images."""

from .config import ViewerConfig
from .markers import ChannelSpec, MarkerStreamManager
from .overlay import OverlayRenderer
from .projection import project
from .transforms import TransformFrameTracker
from .viewer import StreamViewer

__all__ = [
    "ChannelSpec",
    "MarkerStreamManager",
    "OverlayRenderer",
    "StreamViewer",
    "TransformFrameTracker",
    "ViewerConfig",
    "project",
]
