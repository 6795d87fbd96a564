import numpy as np

from conftest import make_init_message
from stream_overlay.markers import INTERACTIVE_MARKER_INIT
from stream_overlay.overlay import (
    OverlayRenderer,
    composite,
    draw_interactive_marker_init,
    font_size_for_depth,
)
from stream_overlay.overlay_types import LabelPlacement, MarkerMessage, Pose, Vector3
from stream_overlay.transforms import TransformFrameTracker


def _msg(kind=INTERACTIVE_MARKER_INIT, **kwargs):
    return MarkerMessage.from_dict(kind, make_init_message(**kwargs))


def test_label_drawn_offset_by_font_size():
    """Origin on a 200x200 surface projects to (100, 200); label sits at (80, 180)."""
    tracker = TransformFrameTracker()
    tracker.register_frame("base")
    tracker.update_pose("base", Pose.identity())
    renderer = OverlayRenderer(200, 200)

    placed = renderer.render([_msg()], tracker, 200, 200)

    assert placed == [LabelPlacement("A", 80, 180, 10)]
    assert renderer.surface[165:185, 78:100, 3].any()


def test_font_scales_with_depth():
    assert font_size_for_depth(0) == 10
    assert font_size_for_depth(1.5) == 25


def test_unknown_kind_is_not_drawn():
    renderer = OverlayRenderer(100, 100)
    placed = renderer.render([_msg(kind="visualization_msgs/MarkerArray")], TransformFrameTracker(), 100, 100)

    assert placed == []
    assert not renderer.surface.any()


def test_registered_kind_is_drawn():
    renderer = OverlayRenderer(200, 200)
    renderer.register_kind("K1", draw_interactive_marker_init)

    placed = renderer.render([_msg(kind="K1")], TransformFrameTracker(), 200, 200)
    assert [p.text for p in placed] == ["A"]


def test_empty_labels_are_skipped():
    renderer = OverlayRenderer(200, 200)
    msg = _msg(labels=(("", (0, 0, 0)), ("B", (0.0, 0.5, 0.0))))

    placed = renderer.render([msg], TransformFrameTracker(), 200, 200)
    assert [p.text for p in placed] == ["B"]
    assert placed[0].y == 200 * 0.5 - 20


def test_untracked_frame_uses_identity():
    renderer = OverlayRenderer(200, 200)
    placed = renderer.render([_msg(frame_id="not_yet_seen")], TransformFrameTracker(), 200, 200)

    assert placed == [LabelPlacement("A", 80, 180, 10)]


def test_frame_pose_moves_label():
    tracker = TransformFrameTracker()
    tracker.register_frame("base")
    tracker.update_pose("base", Pose(Vector3(), Vector3(0.5, 0.0, 1.0)))
    renderer = OverlayRenderer(200, 200)

    placed = renderer.render([_msg()], tracker, 200, 200)
    # x = 1.5 * 100, depth doubles to 2 at zero rotation -> font 30, offset 60
    assert placed == [LabelPlacement("A", 90, 140, 30)]


def test_unprojectable_labels_are_skipped():
    tracker = TransformFrameTracker()
    tracker.register_frame("base")
    renderer = OverlayRenderer(200, 200)

    tracker.update_pose("base", Pose(Vector3(), Vector3(0, 0, -5)))
    assert renderer.render([_msg()], tracker, 200, 200) == []

    tracker.update_pose("base", {"translation": {"x": "bad", "y": 0, "z": 0}, "rotation": {"x": 0, "y": 0, "z": 0}})
    assert renderer.render([_msg()], tracker, 200, 200) == []

    tracker.update_pose("base", Pose(Vector3(0, float("inf"), 0), Vector3()))
    assert renderer.render([_msg()], tracker, 200, 200) == []


def test_render_fully_clears_previous_pass():
    renderer = OverlayRenderer(200, 200)
    renderer.render([_msg()], TransformFrameTracker(), 200, 200)
    assert renderer.surface.any()

    renderer.render([], TransformFrameTracker(), 200, 200)
    assert not renderer.surface.any()


def test_render_resizes_surface():
    renderer = OverlayRenderer(10, 10)
    renderer.render([], TransformFrameTracker(), 40, 30)
    assert renderer.surface.shape == (30, 40, 4)


def test_composite_keeps_primary_where_overlay_is_clear():
    primary = np.full((4, 4, 3), 90, dtype=np.uint8)
    overlay = np.zeros((4, 4, 4), dtype=np.uint8)
    overlay[1, 2] = (255, 0, 0, 255)

    out = composite(primary, overlay)
    assert out.dtype == np.uint8
    assert (out[0, 0] == 90).all()
    assert tuple(out[1, 2]) == (255, 0, 0)
    assert (primary == 90).all()
