import h5py
import numpy as np
from typer.testing import CliRunner

from dchdigi.cli.viz import app as viz_app
from dchdigi.io.digi_store import read_digi_events
from dchdigi.pipelines.core import app, run_pipeline, write_synthetic_inputs
from dchdigi.vis.debug import read_debug_histograms

runner = CliRunner()


def test_run_pipeline_end_to_end(tmp_path):
    cfg_path = write_synthetic_inputs(tmp_path, n_events=4, hits_per_event=10, seed=1)
    out = run_pipeline(str(cfg_path))
    assert out.resolve() == (tmp_path / "digis.h5").resolve()

    events = read_digi_events(out)
    assert [e.event for e in events] == [0, 1, 2, 3]
    assert all(len(e.digis) == 10 and len(e.links) == 10 for e in events)

    hists = read_debug_histograms(tmp_path / "dch_digi_alg_debug.h5")
    assert set(hists) == {"hDpw", "hDww", "hSz", "hSxy"}
    assert hists["hSz"].entries == 40

    with h5py.File(out, "r") as h5:
        assert "[digi]" in h5.attrs["config_text"]


def test_threads_match_serial(tmp_path):
    cfg_path = write_synthetic_inputs(tmp_path, n_events=6, hits_per_event=8, seed=2)
    serial = read_digi_events(run_pipeline(str(cfg_path), workers=0))
    threaded = read_digi_events(run_pipeline(str(cfg_path), workers=3))
    for a, b in zip(serial, threaded):
        assert a.event == b.event
        for x, y in zip(a.digis, b.digis):
            np.testing.assert_array_equal(x.position_mm, y.position_mm)
            assert x.cluster_sizes == y.cluster_sizes


def test_max_events_override(tmp_path):
    cfg_path = write_synthetic_inputs(tmp_path, n_events=5, hits_per_event=3)
    out = run_pipeline(str(cfg_path), max_events=2, debug=False)
    assert len(read_digi_events(out)) == 2


def test_cli_run_and_viz(tmp_path):
    res = runner.invoke(app, ["synth", str(tmp_path), "--events", "2", "--hits", "5"])
    assert res.exit_code == 0, res.output
    res = runner.invoke(app, ["run", str(tmp_path / "dchdigi.toml"), "--workers", "2"])
    assert res.exit_code == 0, res.output
    assert (tmp_path / "digis.h5").is_file()

    res = runner.invoke(viz_app, [str(tmp_path / "dch_digi_alg_debug.h5"), "--out", str(tmp_path / "dbg.png")])
    assert res.exit_code == 0, res.output
    assert (tmp_path / "dbg.png").is_file()


def test_cli_reports_configuration_errors(tmp_path):
    cfg_path = write_synthetic_inputs(tmp_path, n_events=1, hits_per_event=1)
    (tmp_path / "calibration.npz").unlink()
    res = runner.invoke(app, ["run", str(cfg_path)])
    assert res.exit_code == 1
    assert "[dchdigi] ERROR:" in res.output
    assert "calibration" in res.output
