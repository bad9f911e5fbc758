import numpy as np
import pytest

from dchdigi.config.schemas import DetectorCfg
from dchdigi.errors import GeometryError
from dchdigi.geometry.chamber import DriftChamber
from dchdigi.geometry.projection import distance_to_wire, project
from dchdigi.geometry.wires import WireDescriptor, WireGeometryModel


@pytest.fixture(scope="module")
def wire():
    return WireGeometryModel(DriftChamber.from_cfg(DetectorCfg())).describe(2, 5)


def test_point_on_wire(wire):
    for s in (-150.0, 0.0, 12.5):
        c = project(wire.z0_point + s * wire.direction, wire)
        assert c.along_wire == pytest.approx(s)
        assert c.distance == pytest.approx(0.0, abs=1e-9)


def test_decomposition(wire):
    rng = np.random.default_rng(3)
    for _ in range(20):
        hit = wire.z0_point + rng.normal(scale=5.0, size=3)
        c = project(hit, wire)
        # closest point lies on the wire and the offset is perpendicular to it
        assert distance_to_wire(c.closest_point, wire) == pytest.approx(0.0, abs=1e-9)
        assert float(c.hit_to_wire @ wire.direction) == pytest.approx(0.0, abs=1e-9)
        np.testing.assert_allclose(c.closest_point - c.hit_to_wire, hit, atol=1e-12)
        assert c.distance >= 0


def test_zero_direction_rejected(wire):
    bad = WireDescriptor(layer=1, nphi=0, direction=np.zeros(3), z0_point=np.zeros(3),
                         phi_z0=0.0, stereo_angle=0.0)
    with pytest.raises(GeometryError):
        project(np.ones(3), bad)
