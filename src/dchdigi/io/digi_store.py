from __future__ import annotations
from typing import List, Sequence
import h5py
import numpy as np
from datetime import datetime, timezone
from pathlib import Path
from ..config.load import snapshot_config_toml
from ..physics.events import DigiEvent
from ..physics.hits import DigitizedHit, AssociationLink

FORMAT_VERSION = "1.0"
SOFTWARE = "dch-digi 0.1.0"

_FLOAT_COLUMNS = (
    "time_ns", "edep", "edep_error",
    "along_wire_mm", "distance_to_wire_mm",
    "raw_along_wire_mm", "raw_distance_to_wire_mm",
    "wire_stereo_angle", "wire_azimuthal_angle",
)
_INT_COLUMNS = ("type", "quality", "n_clusters", "sim_hit_index")


def write_init(path: str | Path, cfg_path: str | Path | None = None) -> h5py.File:
    f = h5py.File(path, "w")
    f.attrs["format_version"] = FORMAT_VERSION
    f.attrs["created_utc"] = datetime.now(timezone.utc).isoformat()
    f.attrs["software"] = SOFTWARE
    if cfg_path is not None:
        f.attrs["config_text"] = snapshot_config_toml(cfg_path)
    return f


def _replace(grp: h5py.Group, name: str, data: np.ndarray) -> None:
    if name in grp:
        del grp[name]
    grp.create_dataset(name, data=data, compression="gzip")


def write_digi_events(
    f: h5py.File,
    events: Sequence[DigiEvent],
    *,
    digi_collection: str = "DCH_DigiCollection",
    link_collection: str = "DCH_DigiSimAssociationCollection",
) -> None:
    """
    Store digis and digi<->sim links of many events as ragged (CSR) columns.

    Layout:

    /<digi>/event_ptr            (N_events+1,) int64
    /<digi>/cellID               (M,) uint64
    /<digi>/position_mm          (M, 3) float64
    /<digi>/direction_sw         (M, 3) float64
    /<digi>/<scalar columns>     (M,)
    /<digi>/cluster_ptr          (M+1,) int64   CSR into cluster_sizes
    /<digi>/cluster_sizes        (sum n_clusters,) int32
    /<digi>/events/run, event    (N_events,) int64
    /<link>/event_ptr            (N_events+1,) int64
    /<link>/digi_index, sim_index (M,) int64
    """
    digis: List[DigitizedHit] = [d for ev in events for d in ev.digis]
    links: List[AssociationLink] = [l for ev in events for l in ev.links]

    ptr = np.zeros(len(events) + 1, dtype=np.int64)
    lptr = np.zeros(len(events) + 1, dtype=np.int64)
    for i, ev in enumerate(events):
        ptr[i + 1] = ptr[i] + len(ev.digis)
        lptr[i + 1] = lptr[i] + len(ev.links)

    cptr = np.zeros(len(digis) + 1, dtype=np.int64)
    for i, d in enumerate(digis):
        cptr[i + 1] = cptr[i] + d.n_clusters
    sizes = np.fromiter((s for d in digis for s in d.cluster_sizes), dtype=np.int32, count=int(cptr[-1]))

    g = f.require_group(digi_collection)
    _replace(g, "event_ptr", ptr)
    _replace(g, "cellID", np.array([d.cell_id for d in digis], dtype=np.uint64))
    _replace(g, "position_mm", np.array([d.position_mm for d in digis], dtype=np.float64).reshape(-1, 3))
    _replace(g, "direction_sw", np.array([d.direction_sw for d in digis], dtype=np.float64).reshape(-1, 3))
    for key in _FLOAT_COLUMNS:
        _replace(g, key, np.array([getattr(d, key) for d in digis], dtype=np.float64))
    for key in _INT_COLUMNS:
        _replace(g, key, np.array([getattr(d, key) for d in digis], dtype=np.int64))
    _replace(g, "cluster_ptr", cptr)
    _replace(g, "cluster_sizes", sizes)

    g_ev = g.require_group("events")
    _replace(g_ev, "run", np.array([ev.run for ev in events], dtype=np.int64))
    _replace(g_ev, "event", np.array([ev.event for ev in events], dtype=np.int64))

    gl = f.require_group(link_collection)
    _replace(gl, "event_ptr", lptr)
    _replace(gl, "digi_index", np.array([l.digi_index for l in links], dtype=np.int64))
    _replace(gl, "sim_index", np.array([l.sim_index for l in links], dtype=np.int64))


def read_digi_events(
    path: str | Path,
    *,
    digi_collection: str = "DCH_DigiCollection",
    link_collection: str = "DCH_DigiSimAssociationCollection",
) -> List[DigiEvent]:
    with h5py.File(str(path), "r") as f:
        if digi_collection not in f:
            raise KeyError(f"{digi_collection} not found in {path}")
        g = f[digi_collection]
        cols = {k: g[k][...] for k in g.keys() if isinstance(g[k], h5py.Dataset)}
        runs = g["events/run"][...]
        evts = g["events/event"][...]
        gl = f[link_collection]
        lptr = gl["event_ptr"][...]
        ldigi = gl["digi_index"][...]
        lsim = gl["sim_index"][...]

    ptr, cptr, sizes = cols["event_ptr"], cols["cluster_ptr"], cols["cluster_sizes"]
    out: List[DigiEvent] = []
    for i in range(len(ptr) - 1):
        ev = DigiEvent(run=int(runs[i]), event=int(evts[i]))
        for w in range(int(ptr[i]), int(ptr[i + 1])):
            kw = {k: float(cols[k][w]) for k in _FLOAT_COLUMNS}
            kw.update({k: int(cols[k][w]) for k in _INT_COLUMNS})
            ev.digis.append(DigitizedHit(
                cell_id=int(cols["cellID"][w]),
                position_mm=cols["position_mm"][w],
                direction_sw=cols["direction_sw"][w],
                cluster_sizes=tuple(int(s) for s in sizes[cptr[w]:cptr[w + 1]]),
                **kw,
            ))
        for w in range(int(lptr[i]), int(lptr[i + 1])):
            ev.links.append(AssociationLink(digi_index=int(ldigi[w]), sim_index=int(lsim[w])))
        out.append(ev)
    return out
