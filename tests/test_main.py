import json
from unittest.mock import MagicMock, patch

from stream_overlay.config import MqttConfig, ViewerConfig
from stream_overlay.providers import LocalChannelProvider, MqttChannelProvider, MqttTransformProvider
from stream_overlay.run import _build_providers, main


def test_main_runs_offline_and_writes_snapshots(tmp_path):
    """CLI wiring builds a viewer, runs the requested ticks and writes frames."""
    cfg_path = tmp_path / "viewer.json"
    cfg_path.write_text(
        json.dumps({"viewer_name": "cli", "width": 64, "height": 48, "refresh_rate": 1000, "interval_ms": 0}),
        encoding="utf-8",
    )
    shots = tmp_path / "shots"
    argv = [
        "prog",
        "--config",
        str(cfg_path),
        "--max-ticks",
        "2",
        "--snapshot-dir",
        str(shots),
    ]
    with patch("sys.argv", argv), patch("stream_overlay.run.signal.signal"):
        assert main() == 0

    assert sorted(p.name for p in shots.iterdir()) == ["f000001.jpg", "f000002.jpg"]


def test_main_disposes_viewer():
    fake_viewer = MagicMock()
    fake_viewer.run.return_value = "summary"

    with patch("stream_overlay.run.load_config", return_value=ViewerConfig()), patch(
        "stream_overlay.run.StreamViewer", return_value=fake_viewer
    ) as mock_viewer, patch("stream_overlay.run.signal.signal"):
        with patch("sys.argv", ["prog", "--config", "x.json", "--stream", "/cam", "--width", "320"]):
            main()

    kwargs = mock_viewer.call_args.kwargs
    assert kwargs["stream_id"] == "/cam"
    assert mock_viewer.call_args.args[0].width == 320
    fake_viewer.run.assert_called_once_with(max_ticks=None)
    fake_viewer.dispose.assert_called_once()


@patch("stream_overlay.providers.mqtt.Client")
def test_build_providers_prefers_mqtt(mock_client_class):
    cfg = ViewerConfig(mqtt=MqttConfig(broker_ip="10.0.0.9"))

    tf, channels = _build_providers(cfg, offline=False)
    assert isinstance(tf, MqttTransformProvider)
    assert isinstance(channels, MqttChannelProvider)
    assert channels.prefix == "markers"

    _, offline_channels = _build_providers(cfg, offline=True)
    assert isinstance(offline_channels, LocalChannelProvider)
