import argparse
import logging
import signal
import sys

from .config import ViewerConfig, load_config
from .logging_utils import add_file_handler, setup_logger
from .output import SnapshotSink, WindowSink
from .providers import (
    LocalChannelProvider,
    LocalTransformProvider,
    MqttChannelProvider,
    MqttTransformProvider,
)
from .viewer import StreamViewer


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Stream an image topic with live marker labels overlaid")
    ap.add_argument("--config", required=True, help="Path to JSON/YAML config")

    ap.add_argument("--viewer-name")
    ap.add_argument("--stream", help="Stream id to start on (overrides default_stream)")
    ap.add_argument("--host")
    ap.add_argument("--port", type=int)
    ap.add_argument("--width", type=int)
    ap.add_argument("--height", type=int)
    ap.add_argument("--quality", type=int)
    ap.add_argument("--invert", action="store_true")
    ap.add_argument("--refresh-rate", type=float)
    ap.add_argument("--max-ticks", type=int)
    ap.add_argument("--snapshot-dir")
    ap.add_argument("--snapshot-every", type=int, default=1)
    ap.add_argument("--show", action="store_true", help="Display the composited stream in a window")
    ap.add_argument("--log-file")
    ap.add_argument("--offline", action="store_true", help="Use in-process providers even if mqtt is configured")
    ap.add_argument("--debug", action="store_true")

    return ap


def _apply_args(cfg: ViewerConfig, args: argparse.Namespace) -> ViewerConfig:
    cfg.apply_overrides(
        viewer_name=args.viewer_name,
        host=args.host,
        port=args.port,
        width=args.width,
        height=args.height,
        quality=args.quality,
        invert=True if args.invert else None,
        refresh_rate=args.refresh_rate,
    )
    return cfg


def _build_providers(cfg: ViewerConfig, offline: bool):
    if cfg.mqtt is None or offline:
        return LocalTransformProvider(), LocalChannelProvider()
    mq = cfg.mqtt
    tf = MqttTransformProvider(
        mq.broker_ip, mq.broker_port, prefix=mq.transform_prefix, keepalive=mq.keepalive
    )
    channels = MqttChannelProvider(
        mq.broker_ip, mq.broker_port, prefix=mq.marker_prefix, keepalive=mq.keepalive
    )
    return tf, channels


def main() -> int:
    ap = _build_parser()
    args = ap.parse_args()

    cfg = load_config(args.config)
    cfg = _apply_args(cfg, args)

    level = logging.DEBUG if args.debug else logging.INFO
    logger = setup_logger(cfg.viewer_name, level)
    if args.log_file:
        add_file_handler(logger, cfg.viewer_name, args.log_file, level=level)

    sinks = []
    if args.snapshot_dir:
        sinks.append(SnapshotSink(args.snapshot_dir, every=args.snapshot_every))
    if args.show:
        sinks.append(WindowSink(cfg.viewer_name))

    tf_provider, channel_provider = _build_providers(cfg, args.offline)
    viewer = StreamViewer(
        cfg,
        transform_provider=tf_provider,
        channel_provider=channel_provider,
        sinks=sinks,
        logger=logger,
        stream_id=args.stream,
    )

    def _handle_signal(_sig, _frame):
        viewer.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle_signal)

    try:
        summary = viewer.run(max_ticks=args.max_ticks)
    finally:
        viewer.dispose()
        for provider in (tf_provider, channel_provider):
            close = getattr(provider, "close", None)
            if close is not None:
                close()
    print(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
