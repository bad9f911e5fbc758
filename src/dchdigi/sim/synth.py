from __future__ import annotations
import numpy as np
from scipy import stats

from ..geometry.cellid import CellIDDecoder
from ..geometry.wires import WireGeometryModel
from ..physics.clusters import EmpiricalClusterTable
from ..physics.events import SimEvent
from ..physics.hits import CM_TO_MM, RawHit


def synth_cluster_table(
    path_edges_cm: np.ndarray | None = None,
    angle_edges_rad: np.ndarray | None = None,
    clusters_per_cm: float = 12.0,
    max_count: int | None = None,
    max_size: int = 30,
    size_power: float = 2.0,
) -> EmpiricalClusterTable:
    """
    Build a toy calibration: Poisson cluster counts with mean proportional to
    the bucket's mid path length (scaled by 1/sin(angle) when angle-resolved),
    and a 1/n^size_power cluster-size spectrum.

    Only meant for tests and smoke runs; real tables come from a detailed
    ionization simulation.
    """
    if path_edges_cm is None:
        path_edges_cm = np.array([0.05, 0.1, 0.2, 0.4, 0.6, 0.8, 1.0, 1.5, 2.0])
    path_edges_cm = np.asarray(path_edges_cm, dtype=np.float64)
    mids = 0.5 * (path_edges_cm[:-1] + path_edges_cm[1:])

    if angle_edges_rad is None:
        angle_scale = np.ones(1)
    else:
        angle_edges_rad = np.asarray(angle_edges_rad, dtype=np.float64)
        amid = 0.5 * (angle_edges_rad[:-1] + angle_edges_rad[1:])
        angle_scale = 1.0 / np.clip(np.sin(amid), 0.2, 1.0)

    lam = clusters_per_cm * mids[:, None] * angle_scale[None, :]            # (P, A)
    if max_count is None:
        max_count = int(np.ceil(lam.max() + 6.0 * np.sqrt(lam.max()))) + 5
    count_values = np.arange(0, max_count + 1)
    count_pdf = stats.poisson.pmf(count_values[None, None, :], lam[..., None])

    size_values = np.arange(1, max_size + 1)
    spectrum = 1.0 / size_values.astype(np.float64) ** size_power
    size_pdf = np.broadcast_to(spectrum, lam.shape + (size_values.size,)).copy()

    return EmpiricalClusterTable(
        path_edges_cm=path_edges_cm,
        angle_edges_rad=angle_edges_rad,
        count_values=count_values,
        count_pdf=count_pdf,
        size_values=size_values,
        size_pdf=size_pdf,
        meta={"source": "dchdigi.sim.synth", "clusters_per_cm": clusters_per_cm},
    )


def hit_near_wire(
    geometry: WireGeometryModel,
    decoder: CellIDDecoder,
    layer: int,
    nphi: int,
    along_cm: float,
    perp_cm: float,
    *,
    edep: float = 1e-6,
    path_length_mm: float = 5.0,
    momentum: tuple[float, float, float] | None = None,
    time_ns: float = 0.0,
) -> RawHit:
    """
    Sim hit at a chosen wire-frame position: along_cm from the wire's z=0
    point, then perp_cm radially outward (the radial direction at the wire's
    azimuth is orthogonal to every stereo wire).
    """
    wire = geometry.describe(layer, nphi)
    radial = np.array([np.cos(wire.phi_z0), np.sin(wire.phi_z0), 0.0])
    pos_cm = wire.z0_point + along_cm * wire.direction + perp_cm * radial
    if momentum is None:
        momentum = tuple(radial)
    return RawHit(
        cell_id=decoder.encode(layer, nphi),
        position_mm=pos_cm * CM_TO_MM,
        momentum=momentum,
        edep=edep,
        path_length_mm=path_length_mm,
        time_ns=time_ns,
    )


def synth_events(
    geometry: WireGeometryModel,
    decoder: CellIDDecoder,
    n_events: int,
    hits_per_event: int = 20,
    run: int = 1,
    rng: np.random.Generator | None = None,
) -> list[SimEvent]:
    """
    Random sim hits scattered over the chamber: uniform layer/cell, along-wire
    position within +-0.8 Lhalf, distance to the wire within half a cell.
    """
    rng = rng or np.random.default_rng()
    chamber = geometry.chamber
    events: list[SimEvent] = []
    for iev in range(n_events):
        hits = []
        for _ in range(hits_per_event):
            layer = int(rng.integers(1, chamber.nlayers + 1))
            info = chamber.layer(layer)
            nphi = int(rng.integers(0, info.ncells))
            along = float(rng.uniform(-0.8, 0.8) * chamber.half_length)
            perp = float(rng.uniform(0.0, 0.5 * info.height_z0))
            p = rng.normal(size=3)
            hits.append(hit_near_wire(
                geometry, decoder, layer, nphi, along, perp,
                edep=float(rng.exponential(2e-6)),
                path_length_mm=float(rng.uniform(0.5, 20.0)),
                momentum=tuple(p / np.linalg.norm(p) * rng.uniform(0.1, 5.0)),
                time_ns=float(rng.uniform(0.0, 20.0)),
            ))
        events.append(SimEvent(run=run, event=iev, hits=hits))
    return events
