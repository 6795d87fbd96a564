import pytest

from conftest import make_init_message
from stream_overlay.markers import INTERACTIVE_MARKER_INIT, ChannelSpec, MarkerStreamManager
from stream_overlay.overlay_types import MarkerMessage
from stream_overlay.providers import LocalChannelProvider, LocalTransformProvider
from stream_overlay.transforms import TransformFrameTracker


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _manager(channel_provider=None):
    tracker = TransformFrameTracker(LocalTransformProvider())
    return MarkerStreamManager(tracker, channel_provider), tracker


def test_same_kind_replaces_previous_message():
    """The active set holds exactly the most recent message of a kind."""
    mgr, _ = _manager()
    for i in range(4):
        mgr.handle_message("K", make_init_message(labels=((f"L{i}", (0, 0, 0)),)))

    active = mgr.active()
    assert len(active) == 1
    assert active[0].elements[0].label == "L3"


def test_replacement_moves_kind_to_end_of_arrival_order():
    mgr, _ = _manager()
    mgr.handle_message("K1", make_init_message())
    mgr.handle_message("K2", make_init_message())
    mgr.handle_message("K1", make_init_message())

    assert mgr.active_kinds() == ["K2", "K1"]


def test_empty_message_does_not_mutate_state():
    """Zero elements means nothing to project: no insert and no frame registration."""
    mgr, tracker = _manager()
    frames_before = tracker.frames

    assert mgr.handle_message("K", {"markers": []}) is False
    assert mgr.handle_message("K", {"markers": [{"header": {"frame_id": "arm"}, "controls": []}]}) is False

    assert mgr.active() == []
    assert tracker.frames == frames_before


def test_message_without_frame_is_dropped():
    mgr, _ = _manager()
    assert mgr.handle_message("K", make_init_message(frame_id="")) is False
    assert mgr.active() == []


def test_untracked_frame_is_registered():
    mgr, tracker = _manager()
    mgr.handle_message("K", make_init_message(frame_id="gripper"))

    assert tracker.is_tracked("gripper")


def test_none_entries_are_skipped_when_parsing():
    raw = make_init_message(labels=(("A", (1, 2, 3)),))
    raw["markers"][0]["controls"].append(None)
    raw["markers"][0]["controls"][0]["markers"].insert(0, None)

    message = MarkerMessage.from_dict("K", raw)
    assert [e.label for e in message.elements] == ["A"]
    assert message.source_frame == "base"


@pytest.mark.parametrize(
    "mangle, kept",
    [
        (lambda raw: raw["markers"][0].update(header="oops"), False),
        (lambda raw: raw["markers"][0].update(controls=5), False),
        (lambda raw: raw.update(markers="oops"), False),
        # the element survives with an unprojectable position
        (lambda raw: raw["markers"][0]["controls"][0]["markers"][0].update(pose="oops"), True),
    ],
)
def test_wrongly_shaped_fields_do_not_raise(mangle, kept):
    mgr, _ = _manager()
    raw = make_init_message(frame_id="arm")
    mangle(raw)

    assert mgr.handle_message("K", raw) is kept
    assert mgr.active_kinds() == (["K"] if kept else [])


def test_subscribe_delivers_and_throttles():
    """The provider drops messages faster than the channel throttle."""
    clock = FakeClock()
    provider = LocalChannelProvider(clock=clock)
    mgr, _ = _manager(provider)
    mgr.subscribe(ChannelSpec("/updates", INTERACTIVE_MARKER_INIT, throttle_rate_ms=1000))

    assert provider.publish("/updates", make_init_message(labels=(("first", (0, 0, 0)),))) == 1
    clock.now = 0.5
    assert provider.publish("/updates", make_init_message(labels=(("early", (0, 0, 0)),))) == 0
    clock.now = 1.2
    assert provider.publish("/updates", make_init_message(labels=(("late", (0, 0, 0)),))) == 1

    assert mgr.get(INTERACTIVE_MARKER_INIT).elements[0].label == "late"


def test_unsubscribe_keeps_last_known_markers():
    provider = LocalChannelProvider()
    mgr, _ = _manager(provider)
    mgr.subscribe(ChannelSpec("/updates", "K", throttle_rate_ms=0))
    provider.publish("/updates", make_init_message())

    assert mgr.unsubscribe("/updates") is True
    assert mgr.channels == ()
    assert mgr.active_kinds() == ["K"]
    assert provider.publish("/updates", make_init_message()) == 0


def test_unsubscribe_with_purge_drops_markers():
    provider = LocalChannelProvider()
    mgr, _ = _manager(provider)
    mgr.subscribe(ChannelSpec("/updates", "K", throttle_rate_ms=0))
    provider.publish("/updates", make_init_message())

    mgr.unsubscribe("/updates", purge=True)
    assert mgr.active() == []
    assert mgr.unsubscribe("/updates") is False


def test_purge_keeps_kind_fed_by_another_channel():
    provider = LocalChannelProvider()
    mgr, _ = _manager(provider)
    mgr.subscribe(ChannelSpec("/left", "K", throttle_rate_ms=0))
    mgr.subscribe(ChannelSpec("/right", "K", throttle_rate_ms=0))
    provider.publish("/right", make_init_message())

    mgr.unsubscribe("/left", purge=True)
    assert mgr.active_kinds() == ["K"]

    mgr.unsubscribe("/right", purge=True)
    assert mgr.active() == []


def test_resubscribe_replaces_channel():
    provider = LocalChannelProvider()
    mgr, _ = _manager(provider)
    mgr.subscribe(ChannelSpec("/updates", "K", throttle_rate_ms=0))
    mgr.subscribe(ChannelSpec("/updates", "K", throttle_rate_ms=0), kind="K2")

    assert provider.publish("/updates", make_init_message()) == 1
    assert mgr.active_kinds() == ["K2"]


def test_subscribe_without_provider_raises():
    mgr, _ = _manager()
    with pytest.raises(RuntimeError):
        mgr.subscribe(ChannelSpec("/updates"))


def test_unexpected_payload_is_dropped():
    mgr, _ = _manager()
    assert mgr.handle_message("K", ["not", "a", "message"]) is False
    assert mgr.active() == []
