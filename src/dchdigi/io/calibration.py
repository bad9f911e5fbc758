from __future__ import annotations
from pathlib import Path
import json

import h5py
import numpy as np

from ..errors import CalibrationError
from ..physics.clusters import EmpiricalClusterTable

_REQUIRED = ("path_edges_cm", "count_values", "count_pdf", "size_values", "size_pdf")
_H5_GROUP = "cluster_calibration"


def _table_from_arrays(arrays: dict, meta: dict, source: Path) -> EmpiricalClusterTable:
    missing = [k for k in _REQUIRED if k not in arrays]
    if missing:
        raise CalibrationError(
            f"Could not find calibration arrays {missing} in {source.name}. "
            f"Found keys: {sorted(arrays)}"
        )
    try:
        return EmpiricalClusterTable(
            path_edges_cm=arrays["path_edges_cm"],
            count_values=arrays["count_values"],
            count_pdf=arrays["count_pdf"],
            size_values=arrays["size_values"],
            size_pdf=arrays["size_pdf"],
            angle_edges_rad=arrays.get("angle_edges_rad"),
            meta=meta,
        )
    except CalibrationError as exc:
        raise CalibrationError(f"{source}: {exc}") from exc


def _load_npz(p: Path) -> EmpiricalClusterTable:
    with np.load(p, allow_pickle=False) as z:
        arrays = {k: np.asarray(z[k]) for k in z.files if k != "meta_json"}
        meta = json.loads(str(z["meta_json"])) if "meta_json" in z.files else {}
    return _table_from_arrays(arrays, meta, p)


def _load_h5(p: Path) -> EmpiricalClusterTable:
    with h5py.File(p, "r") as f:
        if _H5_GROUP not in f:
            raise CalibrationError(f"{p.name} has no /{_H5_GROUP} group")
        g = f[_H5_GROUP]
        arrays = {k: np.asarray(g[k][...]) for k in g.keys()}
        meta = {k: (v.decode() if isinstance(v, bytes) else v) for k, v in g.attrs.items()}
    return _table_from_arrays(arrays, meta, p)


def load_calibration(path: str | Path) -> EmpiricalClusterTable:
    """
    Load the cluster count/size distributions.

    Accepts .npz or .h5/.hdf5 files with the arrays of EmpiricalClusterTable.
    A missing or malformed file is fatal: there is no per-hit fallback.
    """
    p = Path(path)
    if not p.is_file():
        raise CalibrationError(f"cluster calibration file not found: {p}")
    suffix = p.suffix.lower()
    try:
        if suffix == ".npz":
            return _load_npz(p)
        if suffix in (".h5", ".hdf5"):
            return _load_h5(p)
    except CalibrationError:
        raise
    except (OSError, ValueError, KeyError) as exc:
        raise CalibrationError(f"cannot read cluster calibration {p}: {exc}") from exc
    raise CalibrationError(f"unsupported calibration format {suffix!r} for {p} (use .npz or .h5)")


def save_calibration(path: str | Path, table: EmpiricalClusterTable) -> Path:
    p = Path(path)
    arrays = {
        "path_edges_cm": table.path_edges_cm,
        "count_values": table.count_values,
        "count_pdf": table.count_pdf,
        "size_values": table.size_values,
        "size_pdf": table.size_pdf,
    }
    if table.angle_edges_rad is not None:
        arrays["angle_edges_rad"] = table.angle_edges_rad

    if p.suffix.lower() == ".npz":
        np.savez(p, meta_json=np.array(json.dumps(table.meta)), **arrays)
    else:
        with h5py.File(p, "w") as f:
            g = f.require_group(_H5_GROUP)
            for k, v in arrays.items():
                g.create_dataset(k, data=v)
            for k, v in table.meta.items():
                g.attrs[k] = v
    return p
