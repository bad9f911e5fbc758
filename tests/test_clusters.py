import numpy as np
import pytest

from dchdigi.errors import CalibrationError, HitDataError
from dchdigi.physics.clusters import (
    BucketChoice,
    ClusterEstimator,
    EmpiricalClusterTable,
    incidence_angle,
)
from dchdigi.sim.synth import synth_cluster_table


def _table(**kw):
    args = dict(
        path_edges_cm=[0.1, 0.5, 1.0],
        count_values=[0, 1, 2, 3],
        count_pdf=[[0.0, 0.0, 1.0, 0.0], [0.0, 0.0, 0.0, 1.0]],
        size_values=[1, 2, 3],
        size_pdf=[[1.0, 0.0, 0.0], [0.0, 0.0, 1.0]],
    )
    args.update(kw)
    return EmpiricalClusterTable(**args)


def test_bucket_policy():
    t = _table()
    assert t.bucket(0.1) == BucketChoice(0, 0, False)      # lower edge is inside
    assert t.bucket(0.4999) == BucketChoice(0, 0, False)
    assert t.bucket(0.5) == BucketChoice(1, 0, False)      # left-closed
    assert t.bucket(1.0) == BucketChoice(1, 0, False)      # last bucket includes its upper edge
    assert t.bucket(0.05) == BucketChoice(0, 0, True)
    assert t.bucket(3.0) == BucketChoice(1, 0, True)


def test_angle_buckets():
    t = _table(
        angle_edges_rad=[0.0, 0.5, np.pi / 2],
        count_pdf=np.ones((2, 2, 4)),
        size_pdf=np.ones((2, 2, 3)),
    )
    assert t.n_angle_buckets == 2
    assert t.bucket(0.3, 0.2) == BucketChoice(0, 0, False)
    assert t.bucket(0.3, np.pi / 2) == BucketChoice(0, 1, False)
    assert t.bucket(0.3, 2.0).clamped


def test_deterministic_tables_sample_exactly():
    est = ClusterEstimator(_table())
    rng = np.random.default_rng(0)
    r = est.estimate(1e-6, 0.2, 1.0, rng)
    assert r.n_clusters == 2 and r.sizes == (1, 1) and not r.clamped
    r = est.estimate(1e-6, 0.7, 1.0, rng)
    assert r.n_clusters == 3 and r.sizes == (3, 3, 3)
    r = est.estimate(1e-6, 5.0, 1.0, rng)
    assert r.n_clusters == 3 and r.clamped


def test_zero_edep_or_path_gives_no_clusters_and_no_draw():
    est = ClusterEstimator(_table())
    rng = np.random.default_rng(11)
    state = rng.bit_generator.state
    assert est.estimate(0.0, 0.5, 1.0, rng) == (0, (), False)
    assert est.estimate(1e-6, 0.0, 1.0, rng) == (0, (), False)
    assert est.estimate(-1.0, 0.5, 1.0, rng).n_clusters == 0
    assert rng.bit_generator.state == state


def test_non_finite_input_rejected():
    est = ClusterEstimator(_table())
    with pytest.raises(HitDataError):
        est.estimate(np.nan, 0.5, 1.0, np.random.default_rng())


class _BadSampler:
    def __init__(self, count, sizes):
        self.count, self.sizes = count, sizes

    def bucket(self, path_length_cm, angle_rad):
        return BucketChoice(0, 0, False)

    def sample_count(self, ip, ia, rng):
        return self.count

    def sample_sizes(self, ip, ia, n, rng):
        return np.asarray(self.sizes)


def test_injected_sampler_is_checked():
    rng = np.random.default_rng()
    assert ClusterEstimator(_BadSampler(2, [4, 1])).estimate(1.0, 1.0, 0.0, rng).sizes == (4, 1)
    with pytest.raises(CalibrationError):
        ClusterEstimator(_BadSampler(2, [0, 1])).estimate(1.0, 1.0, 0.0, rng)
    with pytest.raises(CalibrationError):
        ClusterEstimator(_BadSampler(2, [1])).estimate(1.0, 1.0, 0.0, rng)
    with pytest.raises(CalibrationError):
        ClusterEstimator(_BadSampler(-1, [])).estimate(1.0, 1.0, 0.0, rng)
    with pytest.raises(CalibrationError):
        ClusterEstimator(None)


def test_malformed_tables():
    with pytest.raises(CalibrationError):
        _table(path_edges_cm=[0.5, 0.1, 1.0])
    with pytest.raises(CalibrationError):
        _table(size_values=[0, 1, 2])
    with pytest.raises(CalibrationError):
        _table(count_pdf=[[0.0, 0.0, 0.0, 0.0], [1.0, 0.0, 0.0, 0.0]])
    with pytest.raises(CalibrationError):
        _table(count_pdf=np.ones((3, 4)))
    with pytest.raises(CalibrationError):
        _table(size_pdf=[[1.0, -1.0, 1.0], [1.0, 1.0, 1.0]])


def test_table_is_read_only():
    t = _table()
    with pytest.raises(ValueError):
        t.count_pdf[0, 0, 0] = 3.0


def test_synthetic_table_mean_grows_with_path():
    t = synth_cluster_table()
    means = [t.mean_count(ip) for ip in range(t.n_path_buckets)]
    assert all(b > a for a, b in zip(means, means[1:]))
    est = ClusterEstimator(t)
    rng = np.random.default_rng(9)
    for _ in range(200):
        r = est.estimate(1e-6, 0.5, 1.0, rng)
        assert len(r.sizes) == r.n_clusters
        assert all(s >= 1 for s in r.sizes)


def test_incidence_angle():
    ez = np.array([0.0, 0.0, 1.0])
    assert incidence_angle([0, 0, 5], ez) == pytest.approx(0.0)
    assert incidence_angle([0, 0, -5], ez) == pytest.approx(0.0)
    assert incidence_angle([1, 0, 0], ez) == pytest.approx(np.pi / 2)
    assert incidence_angle([1, 0, 1], ez) == pytest.approx(np.pi / 4)
    assert incidence_angle([1, 0, -1], ez) == pytest.approx(np.pi / 4)
    assert incidence_angle([0, 0, 0], ez) == pytest.approx(np.pi / 2)
