import h5py
import numpy as np
import pytest

from dchdigi.errors import CalibrationError, ConfigurationError
from dchdigi.io.calibration import load_calibration, save_calibration
from dchdigi.sim.synth import synth_cluster_table


@pytest.mark.parametrize("suffix", [".npz", ".h5"])
def test_save_load(tmp_path, suffix):
    t = synth_cluster_table(angle_edges_rad=np.linspace(0.0, np.pi / 2, 4))
    p = save_calibration(tmp_path / f"calib{suffix}", t)
    back = load_calibration(p)
    np.testing.assert_array_equal(back.path_edges_cm, t.path_edges_cm)
    np.testing.assert_array_equal(back.angle_edges_rad, t.angle_edges_rad)
    np.testing.assert_allclose(back.count_pdf, t.count_pdf)
    np.testing.assert_array_equal(back.size_values, t.size_values)
    assert back.meta["source"] == "dchdigi.sim.synth"


def test_missing_file(tmp_path):
    with pytest.raises(CalibrationError):
        load_calibration(tmp_path / "nope.npz")
    # fatal at startup like any other configuration problem
    assert issubclass(CalibrationError, ConfigurationError)


def test_missing_arrays(tmp_path):
    p = tmp_path / "partial.npz"
    np.savez(p, path_edges_cm=np.array([0.1, 1.0]))
    with pytest.raises(CalibrationError, match="count_values"):
        load_calibration(p)


def test_h5_without_group(tmp_path):
    p = tmp_path / "empty.h5"
    with h5py.File(p, "w") as f:
        f.create_dataset("x", data=[1])
    with pytest.raises(CalibrationError):
        load_calibration(p)


def test_unsupported_format(tmp_path):
    p = tmp_path / "calib.root"
    p.write_bytes(b"\x00")
    with pytest.raises(CalibrationError):
        load_calibration(p)


def test_corrupt_file(tmp_path):
    p = tmp_path / "calib.npz"
    p.write_text("not a zip archive")
    with pytest.raises(CalibrationError):
        load_calibration(p)
