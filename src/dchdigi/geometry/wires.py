"""
Sense-wire geometry of the twisted-tube drift chamber.

Each sense wire is approximated by the straight line joining its two end
points on the end plates (z = -Lhalf and z = +Lhalf). In the frame of a cell
at phi = 0 the end points are

    p1 = (r, -s * r * tan(twist/2), -Lhalf)
    p2 = (r, +s * r * tan(twist/2), +Lhalf)

with r the sense-wire radius at z=0 and s = +1/-1 the stereo sign of the
layer. The whole cell is then rotated about z by the wire azimuth at z=0,

    phi_z0 = (nphi + 0.25 * (layer % 2)) * 2*pi / ncells(layer)

(odd layers are staggered by a quarter cell). See Hoshina et al.,
Comput. Phys. Commun. 153 (2003) 3, eq. 2.9.

All lengths are in cm.
"""
from __future__ import annotations
from dataclasses import dataclass

import numpy as np

from .cellid import CellAddress
from .chamber import DriftChamber
from ..errors import GeometryError


def _rotate_z(v: np.ndarray, phi: float) -> np.ndarray:
    c, s = np.cos(phi), np.sin(phi)
    return np.array([c * v[0] - s * v[1], s * v[0] + c * v[1], v[2]], dtype=np.float64)


@dataclass(frozen=True)
class WireDescriptor:
    layer: int
    nphi: int
    direction: np.ndarray   # (3,), unit, pointing towards +z
    z0_point: np.ndarray    # (3,), wire position at z=0 [cm]
    phi_z0: float           # azimuth of z0_point [rad]
    stereo_angle: float     # signed stereo angle of the cell [rad]


class WireGeometryModel:
    """
    Closed-form wire lookup for a (layer, nphi) pair.

    Pure function of the chamber database: nothing is cached, nothing is random.
    """

    def __init__(self, chamber: DriftChamber):
        self.chamber = chamber

    def _check(self, layer: int, nphi: int):
        info = self.chamber.layer(layer)
        if not (0 <= nphi < info.ncells):
            raise GeometryError(
                f"phi cell {nphi} out of range [0, {info.ncells - 1}] for layer {layer}"
            )
        return info

    def wire_phi_z0(self, layer: int, nphi: int) -> float:
        info = self._check(layer, nphi)
        phistep = 2.0 * np.pi / info.ncells
        return float((nphi + 0.25 * (info.layer % 2)) * phistep)

    def wire_z0_point(self, layer: int, nphi: int) -> np.ndarray:
        info = self._check(layer, nphi)
        p = np.array([info.r_sw_z0, 0.0, 0.0], dtype=np.float64)
        return _rotate_z(p, self.wire_phi_z0(layer, nphi))

    def wire_direction(self, layer: int, nphi: int) -> np.ndarray:
        info = self._check(layer, nphi)
        L = self.chamber.half_length
        dy = info.stereo_sign * info.r_sw_z0 * np.tan(0.5 * self.chamber.twist_angle)
        p1 = np.array([info.r_sw_z0, -dy, -L], dtype=np.float64)
        p2 = np.array([info.r_sw_z0, dy, L], dtype=np.float64)
        phi = self.wire_phi_z0(layer, nphi)
        d = _rotate_z(p2, phi) - _rotate_z(p1, phi)
        n = np.linalg.norm(d)
        if n == 0 or not np.isfinite(n):
            raise GeometryError(f"degenerate wire direction for layer {layer}, phi cell {nphi}")
        return d / n

    def wire_stereo_angle(self, layer: int) -> float:
        """Signed stereo angle evaluated at the radial middle of the cell."""
        info = self.chamber.layer(layer)
        return info.stereo_sign * self.chamber.stereoangle_z0(info.r_ave_z0)

    def describe(self, layer: int | CellAddress, nphi: int | None = None) -> WireDescriptor:
        if isinstance(layer, CellAddress):
            layer, nphi = layer.layer, layer.nphi
        if nphi is None:
            raise TypeError("describe() needs nphi when called with a layer number")
        direction = self.wire_direction(layer, nphi)
        return WireDescriptor(
            layer=layer,
            nphi=nphi,
            direction=direction,
            z0_point=self.wire_z0_point(layer, nphi),
            phi_z0=self.wire_phi_z0(layer, nphi),
            stereo_angle=self.wire_stereo_angle(layer),
        )

