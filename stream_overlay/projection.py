"""Frame-relative 3-D point to 2-D surface projection."""

import math

from .overlay_types import Pose, ProjectedPoint, Vector3


def project(pose: Pose, point: Vector3, surface_width: float, surface_height: float) -> ProjectedPoint:
    """
    Project ``point`` expressed in a frame placed at ``pose`` onto the surface.

    The rotation step is a cheap approximation, not a rotation-matrix
    composition: each axis is scaled by a trig factor of the rotation angles.

        x'' = x' + x' * cos(rz) * sin(ry)
        y'' = y' + y' * sin(rz)
        z'' = z' + z' * cos(rz) * cos(ry)

    Surface coordinates map x in [-1, 1] across the width and y = 0 to the
    bottom edge. The returned depth is z''.
    """
    t = pose.translation
    r = pose.rotation

    x = point.x + t.x
    y = point.y + t.y
    z = point.z + t.z

    x = x + x * math.cos(r.z) * math.sin(r.y)
    y = y + y * math.sin(r.z)
    z = z + z * math.cos(r.z) * math.cos(r.y)

    return ProjectedPoint(
        x=(1 + x) * (surface_width / 2),
        y=surface_height * (1 - y),
        depth=z,
    )
