# src/dchdigi/geometry/chamber.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict

import numpy as np

from ..config.schemas import DetectorCfg
from ..errors import ConfigurationError, GeometryError


@dataclass(frozen=True, slots=True)
class LayerInfo:
    """
    One layer of hyperboloidal cells, described at z=0 [cm].

    r_sw  : sense-wire radius
    r_fdw : field wires below (inner) the sense wire
    r_fuw : field wires above (outer) the sense wire
    """
    layer: int
    nwires: int
    height_z0: float
    r_sw_z0: float
    r_fdw_z0: float
    r_fuw_z0: float

    @property
    def ncells(self) -> int:
        return self.nwires // 2

    @property
    def stereo_sign(self) -> int:
        # odd layers twist one way, even layers the other
        return 1 if self.layer % 2 == 1 else -1

    @property
    def r_ave_z0(self) -> float:
        return 0.5 * (self.r_fdw_z0 + self.r_fuw_z0)


@dataclass(frozen=True)
class DriftChamber:
    """
    Per-layer database of the twisted-tube chamber.

    Layer 1 comes from the configured first sense radius and cell width; every
    following layer keeps the cell aspect ratio (height scales with radius) and
    sits directly on top of the previous one. Cells per layer grow by
    ncell_increment at each superlayer boundary.
    """
    nsuperlayers: int
    nlayers_per_superlayer: int
    half_length: float
    twist_angle: float
    layers: Dict[int, LayerInfo]

    @classmethod
    def from_cfg(cls, det: DetectorCfg) -> "DriftChamber":
        if not (0.0 < det.twist_angle_rad < np.pi):
            raise ConfigurationError(f"detector.twist_angle_rad must be in (0, pi), got {det.twist_angle_rad}")
        if det.first_sense_r_cm - 0.5 * det.first_width_cm <= 0:
            raise ConfigurationError("detector.first_width_cm too large for detector.first_sense_r_cm")

        nlayers = det.nsuperlayers * det.nlayers_per_superlayer
        layers: Dict[int, LayerInfo] = {}
        r_sw = det.first_sense_r_cm
        h = det.first_width_cm
        layers[1] = LayerInfo(
            layer=1,
            nwires=2 * det.ncell0,
            height_z0=h,
            r_sw_z0=r_sw,
            r_fdw_z0=r_sw - 0.5 * h,
            r_fuw_z0=r_sw + 0.5 * h,
        )
        for ilayer in range(2, nlayers + 1):
            prev = layers[ilayer - 1]
            isl = (ilayer - 1) // det.nlayers_per_superlayer
            h = prev.height_z0 * prev.r_fuw_z0 / prev.r_sw_z0
            layers[ilayer] = LayerInfo(
                layer=ilayer,
                nwires=2 * (det.ncell0 + det.ncell_increment * isl),
                height_z0=h,
                r_sw_z0=prev.r_fuw_z0 + 0.5 * h,
                r_fdw_z0=prev.r_fuw_z0,
                r_fuw_z0=prev.r_fuw_z0 + h,
            )
        return cls(
            nsuperlayers=det.nsuperlayers,
            nlayers_per_superlayer=det.nlayers_per_superlayer,
            half_length=float(det.half_length_cm),
            twist_angle=float(det.twist_angle_rad),
            layers=layers,
        )

    @property
    def nlayers(self) -> int:
        return len(self.layers)

    @property
    def r_outer(self) -> float:
        return self.layers[self.nlayers].r_fuw_z0

    def layer(self, ilayer: int) -> LayerInfo:
        info = self.layers.get(ilayer)
        if info is None:
            raise GeometryError(f"layer {ilayer} out of range [1, {self.nlayers}]")
        return info

    def stereoangle_z0(self, r_z0: float) -> float:
        """tan(stereo) = r(z=0) / Lhalf * tan(twist/2)"""
        return float(np.arctan(r_z0 / self.half_length * np.tan(0.5 * self.twist_angle)))

