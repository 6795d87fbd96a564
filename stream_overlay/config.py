from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Optional


@dataclass
class ChannelConfig:
    """A marker channel to subscribe to at startup."""

    name: str = ""
    message_type: str = "visualization_msgs/InteractiveMarkerInit"
    throttle_rate_ms: float = 3800  # upstream publishes far faster than labels need

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MqttConfig:
    broker_ip: str = "localhost"
    broker_port: int = 1883
    transform_prefix: str = "tf"
    marker_prefix: str = "markers"
    keepalive: int = 60

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ViewerConfig:
    viewer_name: str = "viewer"
    host: str = "localhost"
    port: int = 8080
    width: int = 640
    height: int = 480
    quality: Optional[int] = None  # 1-100, omitted from the URI when unset
    invert: bool = False
    refresh_rate: float = 10.0  # Hz
    interval_ms: float = 30.0  # lower bound on the tick period
    streams: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    default_stream: int = 0
    base_frame: str = "arm_mount_plate_link"
    marker_channels: list[ChannelConfig] = field(default_factory=list)
    cache_bust: bool = False
    cache_bust_every: int = 1  # ticks between re-issued URIs
    placeholder_path: Optional[str] = None
    mqtt: Optional[MqttConfig] = None

    @property
    def tick_interval_ms(self) -> float:
        rate = self.refresh_rate if self.refresh_rate and self.refresh_rate > 0 else 10.0
        return max(1000.0 / rate, self.interval_ms)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "ViewerConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self


def _load_yaml(path: Path) -> dict[str, Any]:
    import yaml

    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError("YAML config root must be a mapping")
    return data


def _as_str_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"{key} must be a list of strings")
    return [str(v) for v in value]


def _load_channels(raw: Any) -> list[ChannelConfig]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError("marker_channels must be a list")
    channels = []
    for entry in raw:
        if isinstance(entry, str):
            channels.append(ChannelConfig(name=entry))
            continue
        if not isinstance(entry, dict) or not entry.get("name"):
            raise ValueError("each marker channel needs a name")
        ch = ChannelConfig()
        ch.name = str(entry["name"])
        ch.message_type = str(entry.get("message_type", ch.message_type))
        ch.throttle_rate_ms = float(entry.get("throttle_rate_ms", ch.throttle_rate_ms))
        channels.append(ch)
    return channels


def load_config(path: str | Path) -> ViewerConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = _load_yaml(p)
    else:
        with p.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)

    if not isinstance(raw, dict):
        raise ValueError("Config root must be a JSON/YAML object")

    cfg = ViewerConfig()
    cfg.viewer_name = str(raw.get("viewer_name", cfg.viewer_name))
    cfg.host = str(raw.get("host", cfg.host))
    cfg.port = int(raw.get("port", cfg.port))
    cfg.width = int(raw.get("width", cfg.width))
    cfg.height = int(raw.get("height", cfg.height))
    cfg.quality = raw.get("quality", cfg.quality)
    if cfg.quality is not None:
        cfg.quality = int(cfg.quality)
    cfg.invert = bool(raw.get("invert", cfg.invert))
    cfg.refresh_rate = float(raw.get("refresh_rate", cfg.refresh_rate))
    cfg.interval_ms = float(raw.get("interval_ms", cfg.interval_ms))
    cfg.streams = _as_str_list(raw.get("streams"), "streams")
    cfg.labels = _as_str_list(raw.get("labels"), "labels")
    cfg.default_stream = int(raw.get("default_stream", cfg.default_stream))
    cfg.base_frame = str(raw.get("base_frame", cfg.base_frame))
    cfg.marker_channels = _load_channels(raw.get("marker_channels"))
    cfg.cache_bust = bool(raw.get("cache_bust", cfg.cache_bust))
    cfg.cache_bust_every = max(1, int(raw.get("cache_bust_every", cfg.cache_bust_every)))
    cfg.placeholder_path = raw.get("placeholder_path", cfg.placeholder_path)

    mqtt_raw = raw.get("mqtt")
    if mqtt_raw is not None:
        if not isinstance(mqtt_raw, dict):
            raise ValueError("mqtt must be a mapping")
        mq = MqttConfig()
        mq.broker_ip = str(mqtt_raw.get("broker_ip", mq.broker_ip))
        mq.broker_port = int(mqtt_raw.get("broker_port", mq.broker_port))
        mq.transform_prefix = str(mqtt_raw.get("transform_prefix", mq.transform_prefix))
        mq.marker_prefix = str(mqtt_raw.get("marker_prefix", mq.marker_prefix))
        mq.keepalive = int(mqtt_raw.get("keepalive", mq.keepalive))
        cfg.mqtt = mq

    return cfg
