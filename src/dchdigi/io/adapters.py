"""
dchdigi.io.adapters

Readers that turn simulated drift-chamber hit files into SimEvent objects
(dchdigi.physics.events.SimEvent holding dchdigi.physics.hits.RawHit).

Supported inputs
----------------
- HDF5 ragged layout (CSR, one flat array per column):

    /<collection>/event_ptr        (N_events+1,) int64
    /<collection>/cellID           (M,) uint64
    /<collection>/x_mm, y_mm, z_mm (M,) float64
    /<collection>/px, py, pz       (M,) float64   [GeV/c]
    /<collection>/edep             (M,) float64   [GeV]
    /<collection>/path_length_mm   (M,) float64
    /<collection>/time_ns          (M,) float64
    /<collection>/events/run       (N_events,) int64
    /<collection>/events/event     (N_events,) int64

- EDM4hep-style ROOT files (uproot), tree "events", one entry per event:

    <collection>.cellID, .eDep, .time, .pathLength
    <collection>.position.x/y/z, <collection>.momentum.x/y/z
    EventHeader.runNumber, EventHeader.eventNumber   (optional)

- Flat tables (CSV / Parquet via pandas), one row per hit with the same
  column names plus `run` and `event`. Hits keep file order inside an
  event; events come out in order of first appearance.

Units are those of the simulation output (mm, ns, GeV); conversion to the
geometry unit happens in the digitizer.
"""
from __future__ import annotations
from pathlib import Path
from typing import Iterator, List, Sequence

import h5py
import numpy as np
import pandas as pd
import uproot

from ..config.schemas import IOCfg
from ..errors import ConfigurationError
from ..physics.events import SimEvent
from ..physics.hits import RawHit

HIT_COLUMNS = ("cellID", "x_mm", "y_mm", "z_mm", "px", "py", "pz", "edep", "path_length_mm", "time_ns")
_OPTIONAL_DEFAULTS = {"px": 0.0, "py": 0.0, "pz": 0.0, "time_ns": 0.0}


def _hits_from_columns(cols: dict, start: int, stop: int) -> List[RawHit]:
    hits: List[RawHit] = []
    for w in range(start, stop):
        hits.append(RawHit(
            cell_id=int(cols["cellID"][w]),
            position_mm=(cols["x_mm"][w], cols["y_mm"][w], cols["z_mm"][w]),
            momentum=(cols["px"][w], cols["py"][w], cols["pz"][w]),
            edep=float(cols["edep"][w]),
            path_length_mm=float(cols["path_length_mm"][w]),
            time_ns=float(cols["time_ns"][w]),
        ))
    return hits


def iter_hdf5_events(path: str | Path, collection: str = "DCH_simhits") -> Iterator[SimEvent]:
    p = Path(path)
    with h5py.File(p, "r") as f:
        if collection not in f:
            raise ConfigurationError(f"collection '{collection}' not found in {p}")
        g = f[collection]
        missing = [k for k in ("event_ptr",) + HIT_COLUMNS
                   if k not in g and k not in _OPTIONAL_DEFAULTS]
        if missing:
            raise ConfigurationError(f"{p}:/{collection} lacks column(s) {missing}")
        ptr = g["event_ptr"][...].astype(np.int64)
        n_hits = int(ptr[-1]) if len(ptr) else 0
        cols = {}
        for key in HIT_COLUMNS:
            if key in g:
                cols[key] = g[key][...]
            else:
                cols[key] = np.full(n_hits, _OPTIONAL_DEFAULTS[key])
        n_events = len(ptr) - 1
        runs = g["events/run"][...] if "events/run" in g else np.zeros(n_events, dtype=np.int64)
        evts = g["events/event"][...] if "events/event" in g else np.arange(n_events, dtype=np.int64)

    for i in range(n_events):
        yield SimEvent(run=int(runs[i]), event=int(evts[i]),
                       hits=_hits_from_columns(cols, int(ptr[i]), int(ptr[i + 1])))


def iter_table_events(path: str | Path, fmt: str = "csv") -> Iterator[SimEvent]:
    p = Path(path)
    if fmt == "csv":
        df = pd.read_csv(p)
    elif fmt == "parquet":
        df = pd.read_parquet(p)
    else:
        raise ConfigurationError(f"unknown table format {fmt!r}")

    for key, val in _OPTIONAL_DEFAULTS.items():
        if key not in df.columns:
            df[key] = val
    missing = [k for k in ("run", "event") + HIT_COLUMNS if k not in df.columns]
    if missing:
        raise ConfigurationError(f"{p} lacks column(s) {missing}")

    for (run, event), grp in df.groupby(["run", "event"], sort=False):
        cols = {k: grp[k].to_numpy() for k in HIT_COLUMNS}
        yield SimEvent(run=int(run), event=int(event), hits=_hits_from_columns(cols, 0, len(grp)))


_ROOT_LEAVES = {
    "cellID": "cellID",
    "x_mm": "position.x", "y_mm": "position.y", "z_mm": "position.z",
    "px": "momentum.x", "py": "momentum.y", "pz": "momentum.z",
    "edep": "eDep",
    "path_length_mm": "pathLength",
    "time_ns": "time",
}


def _pick(arrays: dict, name: str):
    # subbranches come back either by name or by full path "parent/name"
    for k, v in arrays.items():
        if k == name or k.endswith("/" + name):
            return v
    return None


def iter_root_events(
    path: str | Path,
    collection: str = "DCH_simhits",
    tree: str = "events",
) -> Iterator[SimEvent]:
    p = Path(path)
    with uproot.open(p) as f:
        if tree not in f:
            raise ConfigurationError(f"tree '{tree}' not found in {p}; keys: {list(f.keys())}")
        t = f[tree]
        branches = {k: f"{collection}.{leaf}" for k, leaf in _ROOT_LEAVES.items()}
        present = set(t.keys(recursive=True, full_paths=False))
        missing = [b for k, b in branches.items() if b not in present and k not in _OPTIONAL_DEFAULTS]
        if missing:
            raise ConfigurationError(f"{p}:{tree} lacks branch(es) {missing}")
        wanted = [b for b in branches.values() if b in present]
        header = [b for b in ("EventHeader.runNumber", "EventHeader.eventNumber") if b in present]

        ientry = 0
        for arrays in t.iterate(filter_name=wanted + header, library="np", step_size="100 MB"):
            cols_all = {key: _pick(arrays, b) for key, b in branches.items()}
            runs = _pick(arrays, "EventHeader.runNumber")
            evts = _pick(arrays, "EventHeader.eventNumber")
            for i in range(len(cols_all["cellID"])):
                n_hits = len(cols_all["cellID"][i])
                cols = {key: (col[i] if col is not None else np.full(n_hits, _OPTIONAL_DEFAULTS[key]))
                        for key, col in cols_all.items()}
                run = int(runs[i][0]) if runs is not None else 0
                event = int(evts[i][0]) if evts is not None else ientry
                yield SimEvent(run=run, event=event, hits=_hits_from_columns(cols, 0, n_hits))
                ientry += 1


def make_adapter(io_cfg: IOCfg):
    """Return a zero-argument callable yielding SimEvents for the configured input."""
    if io_cfg.input_format == "hdf5":
        return lambda: iter_hdf5_events(io_cfg.input_path, io_cfg.input_collection)
    if io_cfg.input_format in ("csv", "parquet"):
        return lambda: iter_table_events(io_cfg.input_path, io_cfg.input_format)
    if io_cfg.input_format == "root":
        return lambda: iter_root_events(io_cfg.input_path, io_cfg.input_collection)
    raise ConfigurationError(f"unknown input_format {io_cfg.input_format!r}")


def write_hdf5_events(h5: h5py.File, events: Sequence[SimEvent], *, collection: str = "DCH_simhits") -> None:
    """Write SimEvents in the ragged layout read by iter_hdf5_events()."""
    g = h5.require_group(collection)
    ptr = np.zeros(len(events) + 1, dtype=np.int64)
    for i, ev in enumerate(events):
        ptr[i + 1] = ptr[i] + len(ev.hits)
    hits = [h for ev in events for h in ev.hits]

    pos = np.array([h.position_mm for h in hits], dtype=np.float64).reshape(-1, 3)
    mom = np.array([h.momentum for h in hits], dtype=np.float64).reshape(-1, 3)
    cols = {
        "cellID": np.array([h.cell_id for h in hits], dtype=np.uint64),
        "x_mm": pos[:, 0], "y_mm": pos[:, 1], "z_mm": pos[:, 2],
        "px": mom[:, 0], "py": mom[:, 1], "pz": mom[:, 2],
        "edep": np.array([h.edep for h in hits], dtype=np.float64),
        "path_length_mm": np.array([h.path_length_mm for h in hits], dtype=np.float64),
        "time_ns": np.array([h.time_ns for h in hits], dtype=np.float64),
    }
    for key in ("event_ptr",) + HIT_COLUMNS:
        if key in g:
            del g[key]
    g.create_dataset("event_ptr", data=ptr, dtype="i8")
    for key in HIT_COLUMNS:
        g.create_dataset(key, data=cols[key])

    g_ev = g.require_group("events")
    for key, arr in (("run", [ev.run for ev in events]), ("event", [ev.event for ev in events])):
        if key in g_ev:
            del g_ev[key]
        g_ev.create_dataset(key, data=np.asarray(arr, dtype=np.int64))
