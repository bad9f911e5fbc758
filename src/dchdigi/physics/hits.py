from __future__ import annotations
from dataclasses import dataclass, field
from typing import Tuple
import numpy as np

# EDM4hep-style collections are in mm, the chamber geometry works in cm
MM_TO_CM = 0.1
CM_TO_MM = 1.0 / MM_TO_CM


def _frozen_vec(v) -> np.ndarray:
    a = np.array(v, dtype=np.float64).reshape(3)
    a.setflags(write=False)
    return a


@dataclass(frozen=True, slots=True, eq=False)
class RawHit:
    """
    Simulated energy deposit in one drift cell (input, immutable).

    position_mm    : (3,) step position [mm]
    momentum       : (3,) particle momentum at the step [GeV/c]
    edep           : deposited energy [GeV]
    path_length_mm : step length inside the sensitive gas [mm]
    """
    cell_id: int
    position_mm: np.ndarray
    momentum: np.ndarray
    edep: float
    path_length_mm: float
    time_ns: float = 0.0
    mc_particle: int = -1

    def __post_init__(self):
        object.__setattr__(self, "position_mm", _frozen_vec(self.position_mm))
        object.__setattr__(self, "momentum", _frozen_vec(self.momentum))

    @property
    def position_cm(self) -> np.ndarray:
        return self.position_mm * MM_TO_CM

    @property
    def path_length_cm(self) -> float:
        return self.path_length_mm * MM_TO_CM


@dataclass(frozen=True, slots=True, eq=False)
class DigitizedHit:
    """
    Digitized drift-chamber hit (output). Lengths in mm.

    position_mm is the (smeared) point on the sense wire; distance_to_wire_mm
    the (smeared) drift distance. The raw_* fields keep the pre-smearing values
    for diagnostics.
    """
    cell_id: int
    time_ns: float
    edep: float
    position_mm: np.ndarray
    direction_sw: np.ndarray
    along_wire_mm: float
    distance_to_wire_mm: float
    raw_along_wire_mm: float
    raw_distance_to_wire_mm: float
    wire_stereo_angle: float
    wire_azimuthal_angle: float
    n_clusters: int
    cluster_sizes: Tuple[int, ...] = field(default_factory=tuple)
    sim_hit_index: int = -1
    edep_error: float = 0.0
    type: int = 0
    quality: int = 0

    def __post_init__(self):
        object.__setattr__(self, "position_mm", _frozen_vec(self.position_mm))
        object.__setattr__(self, "direction_sw", _frozen_vec(self.direction_sw))
        object.__setattr__(self, "cluster_sizes", tuple(int(s) for s in self.cluster_sizes))
        if self.n_clusters < 0:
            raise ValueError(f"n_clusters must be >= 0, got {self.n_clusters}")
        if len(self.cluster_sizes) != self.n_clusters:
            raise ValueError(
                f"cluster_sizes has {len(self.cluster_sizes)} entries for n_clusters={self.n_clusters}"
            )
        if any(s < 1 for s in self.cluster_sizes):
            raise ValueError("every cluster holds at least one electron")


@dataclass(frozen=True, slots=True)
class AssociationLink:
    """Digi <-> sim-hit link; indices into the event's output and input collections."""
    digi_index: int
    sim_index: int
