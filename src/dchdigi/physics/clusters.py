# src/dchdigi/physics/clusters.py
"""
Cluster counting from empirical distributions.

The number of ionization clusters in a step and the number of electrons in
each cluster are not simulated from first principles. They are resampled
from distributions built offline from a detailed ionization simulation and
binned in step length (and optionally in incidence angle).

Bucket policy (both axes): buckets are left-closed [e_i, e_i+1), the last one
also includes its upper edge. Values below the first edge use the first
bucket, values above the last edge use the last bucket; both cases are
reported as clamped.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import NamedTuple, Optional, Protocol, Tuple

import numpy as np

from ..errors import CalibrationError, HitDataError


class BucketChoice(NamedTuple):
    ip: int          # path-length bucket
    ia: int          # angle bucket (0 when the table is not angle-resolved)
    clamped: bool


class ClusterResult(NamedTuple):
    n_clusters: int
    sizes: Tuple[int, ...]
    clamped: bool = False


class ClusterSampler(Protocol):
    """Read-only sampling service keyed by calibration bucket."""

    def bucket(self, path_length_cm: float, angle_rad: float) -> BucketChoice: ...

    def sample_count(self, ip: int, ia: int, rng: np.random.Generator) -> int: ...

    def sample_sizes(self, ip: int, ia: int, n: int, rng: np.random.Generator) -> np.ndarray: ...


def _bucket(x: float, edges: np.ndarray) -> tuple[int, bool]:
    nb = len(edges) - 1
    if x < edges[0]:
        return 0, True
    if x > edges[-1]:
        return nb - 1, True
    i = int(np.searchsorted(edges, x, side="right")) - 1
    return min(i, nb - 1), False


def _cdf(pdf: np.ndarray, what: str) -> np.ndarray:
    if np.any(~np.isfinite(pdf)) or np.any(pdf < 0):
        raise CalibrationError(f"{what}: probabilities must be finite and >= 0")
    tot = pdf.sum(axis=-1, keepdims=True)
    if np.any(tot <= 0):
        bad = np.argwhere(tot[..., 0] <= 0)[0]
        raise CalibrationError(f"{what}: empty distribution in bucket {tuple(int(b) for b in bad)}")
    cdf = np.cumsum(pdf / tot, axis=-1)
    cdf[..., -1] = 1.0
    return cdf


def _check_edges(edges: np.ndarray, what: str) -> None:
    if edges.ndim != 1 or len(edges) < 2:
        raise CalibrationError(f"{what} needs at least two edges")
    if not np.all(np.isfinite(edges)) or np.any(np.diff(edges) <= 0):
        raise CalibrationError(f"{what} must be finite and strictly increasing")


@dataclass(frozen=True, eq=False)
class EmpiricalClusterTable:
    """
    Calibration tables, read-only after construction.

    path_edges_cm  : (P+1,) bucket edges in step length [cm]
    angle_edges_rad: (A+1,) bucket edges in incidence angle, or None (A=1)
    count_values   : (K,) possible cluster counts (>= 0)
    count_pdf      : (P, A, K) weights of each count per bucket
    size_values    : (S,) possible cluster sizes in electrons (>= 1)
    size_pdf       : (P, A, S) weights of each size per bucket
    """
    path_edges_cm: np.ndarray
    count_values: np.ndarray
    count_pdf: np.ndarray
    size_values: np.ndarray
    size_pdf: np.ndarray
    angle_edges_rad: Optional[np.ndarray] = None
    meta: dict | None = None

    def __post_init__(self):
        pe = np.asarray(self.path_edges_cm, dtype=np.float64)
        _check_edges(pe, "path_edges_cm")
        ae = None
        if self.angle_edges_rad is not None:
            ae = np.asarray(self.angle_edges_rad, dtype=np.float64)
            _check_edges(ae, "angle_edges_rad")
        na = 1 if ae is None else len(ae) - 1

        cv = np.asarray(self.count_values, dtype=np.int64).ravel()
        sv = np.asarray(self.size_values, dtype=np.int64).ravel()
        if cv.size == 0 or np.any(cv < 0):
            raise CalibrationError("count_values must be non-empty and >= 0")
        if sv.size == 0 or np.any(sv < 1):
            raise CalibrationError("size_values must be non-empty and >= 1")

        cp = np.asarray(self.count_pdf, dtype=np.float64)
        sp = np.asarray(self.size_pdf, dtype=np.float64)
        # tables without an angle axis may be stored as (P, K)
        if cp.ndim == 2:
            cp = cp[:, None, :]
        if sp.ndim == 2:
            sp = sp[:, None, :]
        want_c = (len(pe) - 1, na, cv.size)
        want_s = (len(pe) - 1, na, sv.size)
        if cp.shape != want_c:
            raise CalibrationError(f"count_pdf has shape {cp.shape}, expected {want_c}")
        if sp.shape != want_s:
            raise CalibrationError(f"size_pdf has shape {sp.shape}, expected {want_s}")

        for name, arr in (("path_edges_cm", pe), ("angle_edges_rad", ae),
                          ("count_values", cv), ("size_values", sv),
                          ("count_pdf", cp), ("size_pdf", sp)):
            if arr is not None:
                arr.setflags(write=False)
            object.__setattr__(self, name, arr)

        count_cdf = _cdf(cp, "count_pdf")
        size_cdf = _cdf(sp, "size_pdf")
        count_cdf.setflags(write=False)
        size_cdf.setflags(write=False)
        object.__setattr__(self, "_count_cdf", count_cdf)
        object.__setattr__(self, "_size_cdf", size_cdf)
        object.__setattr__(self, "meta", dict(self.meta or {}))

    @property
    def n_path_buckets(self) -> int:
        return len(self.path_edges_cm) - 1

    @property
    def n_angle_buckets(self) -> int:
        return 1 if self.angle_edges_rad is None else len(self.angle_edges_rad) - 1

    def bucket(self, path_length_cm: float, angle_rad: float = 0.0) -> BucketChoice:
        ip, clamped_p = _bucket(path_length_cm, self.path_edges_cm)
        if self.angle_edges_rad is None:
            return BucketChoice(ip, 0, clamped_p)
        ia, clamped_a = _bucket(angle_rad, self.angle_edges_rad)
        return BucketChoice(ip, ia, clamped_p or clamped_a)

    def sample_count(self, ip: int, ia: int, rng: np.random.Generator) -> int:
        k = int(np.searchsorted(self._count_cdf[ip, ia], rng.random(), side="right"))
        return int(self.count_values[min(k, self.count_values.size - 1)])

    def sample_sizes(self, ip: int, ia: int, n: int, rng: np.random.Generator) -> np.ndarray:
        if n <= 0:
            return np.zeros(0, dtype=np.int64)
        k = np.searchsorted(self._size_cdf[ip, ia], rng.random(n), side="right")
        return self.size_values[np.minimum(k, self.size_values.size - 1)]

    def mean_count(self, ip: int, ia: int = 0) -> float:
        p = self.count_pdf[ip, ia]
        return float((p * self.count_values).sum() / p.sum())


class ClusterEstimator:
    """
    Number of clusters and cluster sizes for one step.

    The sampler is injected so it can be shared read-only between workers
    (and replaced in tests).
    """

    def __init__(self, sampler: ClusterSampler):
        if sampler is None:
            raise CalibrationError("cluster calibration not loaded")
        self.sampler = sampler

    def estimate(
        self,
        edep: float,
        path_length_cm: float,
        angle_rad: float,
        rng: np.random.Generator,
    ) -> ClusterResult:
        if not (np.isfinite(edep) and np.isfinite(path_length_cm) and np.isfinite(angle_rad)):
            raise HitDataError(
                f"non-finite step (edep={edep}, path_length={path_length_cm}, angle={angle_rad})"
            )
        # nothing deposited or no length travelled: no clusters, and no draw
        if edep <= 0 or path_length_cm <= 0:
            return ClusterResult(0, ())

        choice = self.sampler.bucket(path_length_cm, angle_rad)
        n = int(self.sampler.sample_count(choice.ip, choice.ia, rng))
        if n < 0:
            raise CalibrationError(f"sampler returned a negative cluster count ({n})")
        sizes = tuple(int(s) for s in self.sampler.sample_sizes(choice.ip, choice.ia, n, rng))
        if len(sizes) != n:
            raise CalibrationError(f"sampler returned {len(sizes)} sizes for {n} clusters")
        if any(s < 1 for s in sizes):
            raise CalibrationError("sampler returned an empty cluster (size < 1)")
        return ClusterResult(n, sizes, choice.clamped)


def incidence_angle(momentum: np.ndarray, wire_direction: np.ndarray) -> float:
    """
    Angle between the track and the sense wire, folded into [0, pi/2].

    pi/2 means the track crosses the wire perpendicularly. A step without
    momentum information is treated as perpendicular.
    """
    p = np.asarray(momentum, dtype=np.float64)
    pn = np.linalg.norm(p)
    if pn == 0 or not np.isfinite(pn):
        return 0.5 * np.pi
    ez = np.asarray(wire_direction, dtype=np.float64)
    c = abs(float(p @ ez)) / (pn * np.linalg.norm(ez))
    return float(np.arccos(np.clip(c, 0.0, 1.0)))
