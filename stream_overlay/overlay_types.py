from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional


def _num(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _entries(raw: Any, key: str) -> list:
    value = raw.get(key) if isinstance(raw, Mapping) else None
    return list(value) if isinstance(value, (list, tuple)) else []


@dataclass(frozen=True)
class Vector3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "Vector3":
        # no validation: bad fields become nan and flow through projection
        if not isinstance(raw, Mapping):
            return cls(math.nan, math.nan, math.nan)
        return cls(_num(raw.get("x")), _num(raw.get("y")), _num(raw.get("z")))


@dataclass(frozen=True)
class Pose:
    """Placement of a frame relative to the base frame."""

    rotation: Vector3 = Vector3()
    translation: Vector3 = Vector3()

    @classmethod
    def identity(cls) -> "Pose":
        return cls(Vector3(), Vector3())

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Pose":
        """
        Build a Pose from a transform mapping.

        Accepts ``{"rotation": {...}, "translation": {...}}`` as well as the
        ``{"transform": {...}}`` envelope carried by TF messages. Any quaternion
        ``w`` component is ignored.
        """
        if isinstance(raw, Mapping) and isinstance(raw.get("transform"), Mapping):
            raw = raw["transform"]
        if not isinstance(raw, Mapping):
            raw = {}
        return cls(
            rotation=Vector3.from_dict(raw.get("rotation")),
            translation=Vector3.from_dict(raw.get("translation")),
        )


@dataclass(frozen=True)
class MarkerElement:
    position: Vector3
    label: str = ""


@dataclass
class MarkerControl:
    elements: list[MarkerElement] = field(default_factory=list)


@dataclass
class MarkerGroup:
    frame_id: str
    name: str = ""
    controls: list[MarkerControl] = field(default_factory=list)


@dataclass
class MarkerMessage:
    kind: str
    source_frame: str
    groups: list[MarkerGroup] = field(default_factory=list)

    @property
    def elements(self) -> list[MarkerElement]:
        return [
            el
            for group in self.groups
            for control in group.controls
            for el in control.elements
        ]

    @classmethod
    def from_dict(cls, kind: str, raw: Mapping[str, Any]) -> "MarkerMessage":
        """
        Parse a visualization_msgs/InteractiveMarkerInit style payload.

        ``markers[].header.frame_id`` names each group's frame,
        ``markers[].controls[].markers[]`` are the leaf elements with
        ``pose.position`` and ``text``. ``None`` entries are skipped at every level.
        """
        groups: list[MarkerGroup] = []
        for m in _entries(raw, "markers"):
            if not isinstance(m, Mapping):
                continue
            header = m.get("header")
            if not isinstance(header, Mapping):
                header = {}
            controls = []
            for c in _entries(m, "controls"):
                if not isinstance(c, Mapping):
                    continue
                elements = []
                for leaf in _entries(c, "markers"):
                    if not isinstance(leaf, Mapping):
                        continue
                    pose = leaf.get("pose")
                    if not isinstance(pose, Mapping):
                        pose = {}
                    elements.append(
                        MarkerElement(
                            position=Vector3.from_dict(pose.get("position")),
                            label=str(leaf.get("text") or ""),
                        )
                    )
                controls.append(MarkerControl(elements))
            groups.append(
                MarkerGroup(
                    frame_id=str(header.get("frame_id") or ""),
                    name=str(m.get("name") or ""),
                    controls=controls,
                )
            )
        source_frame = groups[0].frame_id if groups else ""
        return cls(kind=kind, source_frame=source_frame, groups=groups)


@dataclass(frozen=True)
class ProjectedPoint:
    x: float
    y: float
    depth: float


@dataclass(frozen=True)
class LabelPlacement:
    text: str
    x: float
    y: float
    font_size: float


class ViewerState(enum.Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    DISPOSED = "disposed"
