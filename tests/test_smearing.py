import numpy as np
import pytest

from dchdigi.errors import ConfigurationError
from dchdigi.physics.smearing import ResolutionSmearer


def test_zero_sigma_is_identity():
    sm = ResolutionSmearer(0.0, 0.0)
    rng = np.random.default_rng(1)
    for along, dist in ((0.0, 0.0), (2.0, 0.05), (-1.5, 0.2)):
        r = sm.smear(along, dist, rng)
        assert r.along_wire == along
        assert r.distance == dist
        assert r.dz == 0.0 and r.dxy == 0.0


def test_sigmas_converted_to_cm():
    sm = ResolutionSmearer(1.0, 0.1)
    assert sm.sigma_along_cm == pytest.approx(0.1)
    assert sm.sigma_perp_cm == pytest.approx(0.01)


def test_statistics():
    sm = ResolutionSmearer(1.0, 0.1)
    rng = np.random.default_rng(2024)
    res = [sm.smear(10.0, 0.5, rng) for _ in range(20000)]
    dz = np.array([r.dz for r in res])
    dxy = np.array([r.dxy for r in res])
    assert abs(dz.mean()) < 0.005
    assert dz.std() == pytest.approx(0.1, rel=0.03)
    assert dxy.std() == pytest.approx(0.01, rel=0.03)
    np.testing.assert_allclose([r.along_wire for r in res], 10.0 + dz)


def test_perpendicular_clamped_not_mirrored():
    sm = ResolutionSmearer(0.0, 10.0)
    rng = np.random.default_rng(5)
    res = [sm.smear(0.0, 0.01, rng) for _ in range(200)]
    assert all(r.distance >= 0 for r in res)
    for r in res:
        if r.dxy < -0.01:
            assert r.distance == 0.0


def test_negative_sigma_rejected():
    with pytest.raises(ConfigurationError):
        ResolutionSmearer(-1.0, 0.1)
