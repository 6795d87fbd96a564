import numpy as np
import pytest

from stream_overlay.config import ViewerConfig
from stream_overlay.image_source import StaticImageSource


def make_init_message(frame_id="base", labels=(("A", (0.0, 0.0, 0.0)),), name="marker"):
    """Build an InteractiveMarkerInit-shaped payload with one control per label."""
    controls = [
        {"markers": [{"pose": {"position": {"x": x, "y": y, "z": z}}, "text": text}]}
        for text, (x, y, z) in labels
    ]
    return {"markers": [{"header": {"frame_id": frame_id}, "name": name, "controls": controls}]}


IDENTITY = {
    "rotation": {"x": 0.0, "y": 0.0, "z": 0.0},
    "translation": {"x": 0.0, "y": 0.0, "z": 0.0},
}


@pytest.fixture
def small_config():
    return ViewerConfig(
        viewer_name="test",
        width=200,
        height=200,
        refresh_rate=1000.0,
        interval_ms=0.0,
        base_frame="base",
    )


@pytest.fixture
def sources():
    """Factory that records every StaticImageSource it builds."""
    built = []

    def _factory(image=None):
        def _make(uri):
            src = StaticImageSource(image, uri=uri)
            built.append(src)
            return src

        return _make

    _factory.built = built
    return _factory


@pytest.fixture
def grey_frame():
    return np.full((50, 80, 3), 200, dtype=np.uint8)
