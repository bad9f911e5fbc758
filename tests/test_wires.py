import numpy as np
import pytest

from dchdigi.config.schemas import DetectorCfg
from dchdigi.errors import ConfigurationError, GeometryError
from dchdigi.geometry.chamber import DriftChamber
from dchdigi.geometry.wires import WireGeometryModel


@pytest.fixture(scope="module")
def geo():
    return WireGeometryModel(DriftChamber.from_cfg(DetectorCfg()))


def test_layer_database_golden_values(geo):
    ch = geo.chamber
    assert ch.nlayers == 112
    l1 = ch.layer(1)
    assert l1.r_sw_z0 == pytest.approx(35.6)
    assert l1.r_fdw_z0 == pytest.approx(35.0)
    assert l1.r_fuw_z0 == pytest.approx(36.2)
    assert l1.ncells == 192

    l2 = ch.layer(2)
    h2 = 1.2 * 36.2 / 35.6
    assert l2.height_z0 == pytest.approx(h2)
    assert l2.r_fdw_z0 == pytest.approx(36.2)
    assert l2.r_sw_z0 == pytest.approx(36.2 + 0.5 * h2)
    assert l2.ncells == 192

    # cells grow at each superlayer boundary
    assert ch.layer(8).ncells == 192
    assert ch.layer(9).ncells == 240
    assert ch.layer(112).ncells == 192 + 13 * 48


def test_layers_are_stacked(geo):
    ch = geo.chamber
    for i in range(2, ch.nlayers + 1):
        assert ch.layer(i).r_fdw_z0 == pytest.approx(ch.layer(i - 1).r_fuw_z0)
    assert ch.r_outer == pytest.approx(ch.layer(ch.nlayers).r_fuw_z0)


def test_phi_golden_values(geo):
    assert geo.wire_phi_z0(2, 5) == pytest.approx(5 * 2 * np.pi / 192)
    # odd layers are staggered by a quarter cell
    assert geo.wire_phi_z0(1, 0) == pytest.approx(0.25 * 2 * np.pi / 192)
    assert geo.wire_phi_z0(9, 3) == pytest.approx(3.25 * 2 * np.pi / 240)


def test_direction_matches_endpoints(geo):
    ch = geo.chamber
    for layer, nphi in ((1, 0), (2, 5), (57, 100)):
        info = ch.layer(layer)
        phi = geo.wire_phi_z0(layer, nphi)
        dy = info.stereo_sign * info.r_sw_z0 * np.tan(0.5 * ch.twist_angle)
        L = ch.half_length
        expected = np.array([-np.sin(phi) * dy, np.cos(phi) * dy, L])
        expected /= np.linalg.norm(expected)
        d = geo.wire_direction(layer, nphi)
        np.testing.assert_allclose(d, expected, atol=1e-12)
        assert np.linalg.norm(d) == pytest.approx(1.0)
        assert d[2] > 0


def test_z0_point_golden(geo):
    p = geo.wire_z0_point(2, 5)
    r = geo.chamber.layer(2).r_sw_z0
    phi = 5 * 2 * np.pi / 192
    np.testing.assert_allclose(p, [r * np.cos(phi), r * np.sin(phi), 0.0], atol=1e-12)


def test_stereo_angle_sign_and_magnitude(geo):
    ch = geo.chamber
    assert geo.wire_stereo_angle(1) > 0
    assert geo.wire_stereo_angle(2) < 0
    for layer in (1, 2, 30):
        w = geo.describe(layer, 0)
        tilt = np.arccos(w.direction[2])
        assert abs(w.stereo_angle) == pytest.approx(tilt, abs=1e-12)
        assert abs(w.stereo_angle) == pytest.approx(
            np.arctan(ch.layer(layer).r_ave_z0 / ch.half_length * np.tan(0.5 * ch.twist_angle))
        )


def test_describe_is_deterministic(geo):
    a = geo.describe(17, 33)
    b = geo.describe(17, 33)
    np.testing.assert_array_equal(a.direction, b.direction)
    np.testing.assert_array_equal(a.z0_point, b.z0_point)
    assert a.phi_z0 == b.phi_z0 and a.stereo_angle == b.stereo_angle


def test_out_of_range(geo):
    with pytest.raises(GeometryError):
        geo.describe(0, 0)
    with pytest.raises(GeometryError):
        geo.describe(113, 0)
    with pytest.raises(GeometryError):
        geo.describe(2, 192)
    with pytest.raises(GeometryError):
        geo.describe(2, -1)


def test_bad_chamber_config():
    with pytest.raises(ConfigurationError):
        DriftChamber.from_cfg(DetectorCfg(twist_angle_rad=3.5))
    with pytest.raises(ConfigurationError):
        DriftChamber.from_cfg(DetectorCfg(first_sense_r_cm=1.0, first_width_cm=3.0))
