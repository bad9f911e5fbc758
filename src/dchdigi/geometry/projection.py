from __future__ import annotations
from typing import NamedTuple
import numpy as np

from .wires import WireDescriptor
from ..errors import GeometryError


def _unit(v: np.ndarray) -> np.ndarray:
    n = np.linalg.norm(v)
    if n == 0 or not np.isfinite(n):
        raise GeometryError("Zero-length wire direction")
    return v / n


class WireFrameCoordinates(NamedTuple):
    along_wire: float          # signed distance from the wire's z=0 point [cm]
    distance: float            # perpendicular distance hit -> wire, >= 0 [cm]
    closest_point: np.ndarray  # (3,) point of closest approach on the wire [cm]
    hit_to_wire: np.ndarray    # (3,) closest_point - hit [cm]


def project(hit_position: np.ndarray, wire: WireDescriptor) -> WireFrameCoordinates:
    """
    Decompose a hit position into wire-frame coordinates.

    The closest approach of a point to a line is its orthogonal projection:
    P = z0 + ((hit - z0) . ez) ez.
    """
    ez = _unit(np.asarray(wire.direction, dtype=np.float64))
    hit = np.asarray(hit_position, dtype=np.float64).reshape(3)
    d = hit - wire.z0_point
    along = float(d @ ez)
    closest = wire.z0_point + along * ez
    hit_to_wire = closest - hit
    return WireFrameCoordinates(
        along_wire=along,
        distance=float(np.linalg.norm(hit_to_wire)),
        closest_point=closest,
        hit_to_wire=hit_to_wire,
    )


def distance_to_wire(point: np.ndarray, wire: WireDescriptor) -> float:
    return project(point, wire).distance
