from __future__ import annotations
from typing import NamedTuple
import numpy as np

from .hits import MM_TO_CM
from ..errors import ConfigurationError


class SmearResult(NamedTuple):
    along_wire: float   # observed along-wire coordinate [cm]
    distance: float     # observed distance to wire, >= 0 [cm]
    dz: float           # applied along-wire shift [cm]
    dxy: float          # drawn perpendicular shift [cm]


class ResolutionSmearer:
    """
    Independent Gaussian smearing along and perpendicular to the sense wire.

    The along-wire sigma (read out from both wire ends) is normally much
    coarser than the drift-distance sigma. Sigmas are given in mm and kept
    in cm internally.
    """

    def __init__(self, sigma_along_mm: float, sigma_perp_mm: float):
        if sigma_along_mm < 0 or sigma_perp_mm < 0:
            raise ConfigurationError(
                f"resolutions must be >= 0 (z={sigma_along_mm} mm, xy={sigma_perp_mm} mm)"
            )
        self.sigma_along_cm = float(sigma_along_mm) * MM_TO_CM
        self.sigma_perp_cm = float(sigma_perp_mm) * MM_TO_CM

    def smear(self, along_wire: float, distance: float, rng: np.random.Generator) -> SmearResult:
        # two draws per hit, z first, so the stream position depends only on hit order
        dz = float(rng.normal(0.0, self.sigma_along_cm))
        dxy = float(rng.normal(0.0, self.sigma_perp_cm))
        # clamp, do not mirror: a negative drift distance is unphysical
        observed = max(0.0, distance + dxy)
        return SmearResult(along_wire + dz, observed, dz, dxy)
