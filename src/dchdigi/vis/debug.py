from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

import h5py
import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt


@dataclass
class Histogram1D:
    name: str
    title: str
    edges: np.ndarray
    counts: np.ndarray = None
    underflow: int = 0
    overflow: int = 0

    def __post_init__(self):
        self.edges = np.asarray(self.edges, dtype=np.float64)
        if self.counts is None:
            self.counts = np.zeros(len(self.edges) - 1, dtype=np.int64)

    @classmethod
    def uniform(cls, name: str, title: str, nbins: int, lo: float, hi: float) -> "Histogram1D":
        return cls(name, title, np.linspace(lo, hi, nbins + 1))

    def empty_like(self) -> "Histogram1D":
        return Histogram1D(self.name, self.title, self.edges.copy())

    def fill(self, x: float) -> None:
        if x < self.edges[0]:
            self.underflow += 1
        elif x >= self.edges[-1]:
            self.overflow += 1
        else:
            i = int(np.searchsorted(self.edges, x, side="right")) - 1
            self.counts[i] += 1

    def merge(self, other: "Histogram1D") -> None:
        if not np.array_equal(self.edges, other.edges):
            raise ValueError(f"cannot merge histograms '{self.name}' with different binning")
        self.counts += other.counts
        self.underflow += other.underflow
        self.overflow += other.overflow

    @property
    def entries(self) -> int:
        return int(self.counts.sum()) + self.underflow + self.overflow


@dataclass
class DebugHistograms:
    """
    Control histograms of the digitizer (all lengths in cm).

    hDpw : distance from hit position to the wire
    hDww : distance from the smeared projection to the wire (should be zero)
    hSz  : smearing applied along the wire
    hSxy : smearing applied perpendicular to the wire

    One instance is filled per event and merged by the caller, so nothing
    here is shared between worker threads.
    """
    hists: Dict[str, Histogram1D] = field(default_factory=dict)
    clamped_buckets: int = 0
    hits: int = 0

    @classmethod
    def create(cls, sigma_along_cm: float, sigma_perp_cm: float, max_distance_cm: float = 2.0) -> "DebugHistograms":
        wz = 5.0 * sigma_along_cm if sigma_along_cm > 0 else 1e-3
        wxy = 5.0 * sigma_perp_cm if sigma_perp_cm > 0 else 1e-3
        hists = [
            Histogram1D.uniform("hDpw", "Distance hit to the wire;cm", 100, 0.0, max_distance_cm),
            Histogram1D.uniform("hDww", "Distance hit projection to the wire (should be zero);cm", 100, 0.0, 1e-6),
            Histogram1D.uniform("hSz", "Smearing along the wire;cm", 100, -wz, wz),
            Histogram1D.uniform("hSxy", "Smearing perpendicular to the wire;cm", 100, -wxy, wxy),
        ]
        return cls(hists={h.name: h for h in hists})

    def empty_like(self) -> "DebugHistograms":
        return DebugHistograms(hists={k: h.empty_like() for k, h in self.hists.items()})

    def fill(self, name: str, x: float) -> None:
        self.hists[name].fill(x)

    def merge(self, other: "DebugHistograms") -> None:
        for k, h in other.hists.items():
            self.hists[k].merge(h)
        self.clamped_buckets += other.clamped_buckets
        self.hits += other.hits

    def write_h5(self, path: str | Path) -> Path:
        p = Path(path)
        with h5py.File(p, "w") as f:
            g = f.require_group("debug")
            g.attrs["clamped_buckets"] = self.clamped_buckets
            g.attrs["hits"] = self.hits
            for name, h in self.hists.items():
                gh = g.require_group(name)
                gh.attrs["title"] = h.title
                gh.attrs["underflow"] = h.underflow
                gh.attrs["overflow"] = h.overflow
                gh.create_dataset("counts", data=h.counts)
                gh.create_dataset("edges", data=h.edges)
        return p


def read_debug_histograms(path: str | Path) -> Dict[str, Histogram1D]:
    out: Dict[str, Histogram1D] = {}
    with h5py.File(str(path), "r") as f:
        if "debug" not in f:
            raise KeyError(f"/debug not found in {path}")
        for name, gh in f["debug"].items():
            out[name] = Histogram1D(
                name=name,
                title=str(gh.attrs.get("title", name)),
                edges=np.array(gh["edges"]),
                counts=np.array(gh["counts"], dtype=np.int64),
                underflow=int(gh.attrs.get("underflow", 0)),
                overflow=int(gh.attrs.get("overflow", 0)),
            )
    return out


def save_debug_png(h5_path: str | Path, out_png: str | None = None) -> str:
    hists = read_debug_histograms(h5_path)
    if out_png is None:
        out_png = str(Path(h5_path).with_suffix(".png"))

    fig, axes = plt.subplots(2, 2, figsize=(10, 8))
    for ax, (name, h) in zip(axes.ravel(), sorted(hists.items())):
        title, _, xlabel = h.title.partition(";")
        ax.stairs(h.counts, h.edges)
        ax.set_title(f"{name}: {title}", fontsize=9)
        ax.set_xlabel(xlabel or "cm")
    fig.tight_layout()
    fig.savefig(out_png, dpi=150)
    plt.close(fig)
    return out_png
