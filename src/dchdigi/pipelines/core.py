from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from itertools import islice
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import h5py
import numpy as np
import typer
from tqdm import tqdm

from dchdigi.config.load import format_configuration, load_config, validate_startup
from dchdigi.config.schemas import Config, DetectorCfg
from dchdigi.errors import DigiError
from dchdigi.geometry.cellid import CellIDDecoder
from dchdigi.geometry.chamber import DriftChamber
from dchdigi.geometry.wires import WireGeometryModel
from dchdigi.io.adapters import make_adapter, write_hdf5_events
from dchdigi.io.calibration import load_calibration, save_calibration
from dchdigi.io.digi_store import write_digi_events, write_init
from dchdigi.physics.events import DigiEvent, SimEvent
from dchdigi.pipelines.digitize import Digitizer
from dchdigi.sim.synth import synth_cluster_table, synth_events
from dchdigi.vis.debug import DebugHistograms, save_debug_png


def _resolve_workers(workers: int | str) -> int:
    if workers == "auto":
        return max(1, os.cpu_count() or 1)
    if isinstance(workers, int):
        return max(0, workers)
    raise ValueError("workers must be int or 'auto'")


def digitize_events(
    digitizer: Digitizer,
    events: Sequence[SimEvent],
    *,
    workers: int | str = 0,
    progress: bool = False,
) -> Tuple[List[DigiEvent], Optional[DebugHistograms]]:
    """
    Digitize events in input order, serially (workers == 0) or on a thread pool.

    Per-event debug histograms are merged into one set here, in the calling
    thread.
    """
    n_workers = _resolve_workers(workers)
    merged = digitizer.debug_template.empty_like() if digitizer.debug_template is not None else None

    if n_workers == 0 or len(events) < 2:
        it = map(digitizer.process_event, events)
        results = list(tqdm(it, total=len(events), desc="DCHdigi", unit="evt") if progress else it)
    else:
        with ThreadPoolExecutor(max_workers=n_workers) as ex:
            it = ex.map(digitizer.process_event, events)
            results = list(tqdm(it, total=len(events), desc=f"DCHdigi x{n_workers}", unit="evt")
                           if progress else it)

    out: List[DigiEvent] = []
    for digi_ev, debug in results:
        out.append(digi_ev)
        if merged is not None and debug is not None:
            merged.merge(debug)
    return out, merged


def run_pipeline(
    cfg_path: str,
    *,
    workers: Optional[int] = None,
    max_events: Optional[int] = None,
    debug: Optional[bool] = None,
) -> Path:
    """
    Digitize one input file as described by a TOML config.

    CLI flags (--workers/--max-events/--debug/--no-debug) override the
    corresponding config fields when not None.

    Returns
    -------
    Path to the written HDF5 file.
    """
    cfg = load_config(cfg_path)

    # ---- apply CLI overrides on top of TOML ----
    if workers is not None:
        cfg.run.workers = workers
    if max_events is not None:
        cfg.run.max_events = max_events
    if debug is not None:
        cfg.debug.create_debug_histograms = debug

    validate_startup(cfg)

    diag_level = cfg.run.diagnostics_level
    if diag_level >= 1:
        print(f"[run] config = {cfg_path}")
        print(format_configuration(cfg))

    table = load_calibration(cfg.digi.calibration_path)
    if diag_level >= 2:
        print(f"[calib] {table.n_path_buckets} path buckets x {table.n_angle_buckets} angle buckets, "
              f"{len(table.count_values)} count values, {len(table.size_values)} size values")

    digitizer = Digitizer.from_config(cfg, table)
    if diag_level >= 2:
        chamber = digitizer.geometry.chamber
        print(f"[geometry] {chamber.nlayers} layers, "
              f"r_sw(layer 1) = {chamber.layer(1).r_sw_z0:.4f} cm, "
              f"r_outer = {chamber.r_outer:.4f} cm")

    source = make_adapter(cfg.io)()
    events = list(islice(source, cfg.run.max_events) if cfg.run.max_events is not None else source)
    if diag_level >= 1:
        print(f"[pipeline] Got {len(events)} events, {sum(len(ev.hits) for ev in events)} sim hits")

    digi_events, merged = digitize_events(
        digitizer, events, workers=cfg.run.workers, progress=cfg.run.progress,
    )

    out_path = Path(cfg.io.output_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    f = write_init(out_path, cfg_path)
    try:
        write_digi_events(
            f, digi_events,
            digi_collection=cfg.io.output_collection,
            link_collection=cfg.io.association_collection,
        )
    finally:
        f.close()

    if diag_level >= 1:
        n_digis = sum(len(ev.digis) for ev in digi_events)
        n_clusters = sum(d.n_clusters for ev in digi_events for d in ev.digis)
        print(f"[pipeline] Wrote {n_digis} digis ({n_clusters} clusters) to {out_path}")

    if merged is not None:
        debug_path = Path(cfg.debug.out_debug_filename)
        if not debug_path.is_absolute():
            debug_path = out_path.parent / debug_path
        merged.write_h5(debug_path)
        if diag_level >= 1:
            print(f"[debug] Wrote debug histograms to {debug_path} "
                  f"({merged.hits} hits, {merged.clamped_buckets} clamped cluster buckets)")
        if cfg.debug.export_png:
            out_png = save_debug_png(debug_path)
            if diag_level >= 1:
                print(f"[debug] Wrote PNG {out_png}")

    return out_path


def write_synthetic_inputs(
    out_dir: str | Path,
    *,
    n_events: int = 10,
    hits_per_event: int = 20,
    seed: int = 0,
    cfg: Optional[Config] = None,
) -> Path:
    """
    Write simhits.h5, calibration.npz and dchdigi.toml into out_dir.

    Returns the path of the config, ready for run_pipeline().
    """
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)

    det = cfg.detector if cfg is not None else DetectorCfg()
    geometry = WireGeometryModel(DriftChamber.from_cfg(det))
    decoder = CellIDDecoder(det.cellid_encoding, det.nlayers_per_superlayer)

    events = synth_events(geometry, decoder, n_events, hits_per_event, rng=np.random.default_rng(seed))
    with h5py.File(out / "simhits.h5", "w") as h5:
        write_hdf5_events(h5, events)

    save_calibration(out / "calibration.npz", synth_cluster_table())

    cfg_path = out / "dchdigi.toml"
    cfg_path.write_text(
        "[run]\n"
        "diagnostics_level = 1\n"
        "workers = 0\n"
        "\n"
        "[io]\n"
        'input_path = "simhits.h5"\n'
        'input_format = "hdf5"\n'
        'output_path = "digis.h5"\n'
        "\n"
        "[digi]\n"
        'calibration_path = "calibration.npz"\n'
        "z_resolution_mm = 1.0\n"
        "xy_resolution_mm = 0.1\n"
        "\n"
        "[debug]\n"
        "create_debug_histograms = true\n"
    )
    return cfg_path


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

app = typer.Typer(help="Drift-chamber digitizer (dchdigi.pipelines.core)")


@app.command("run")
def run(
    cfg_path: str = typer.Argument(..., help="Path to TOML config file"),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-j",
        help="Override [run].workers (0 = serial)",
    ),
    max_events: Optional[int] = typer.Option(
        None, "--max-events", "-n",
        help="Override [run].max_events",
    ),
    debug: Optional[bool] = typer.Option(
        None, "--debug / --no-debug",
        help="Enable or disable debug histograms; overrides [debug].create_debug_histograms when set",
    ),
):
    """
    Digitize the sim hits named in a config and write digis + associations.
    """
    try:
        out_path = run_pipeline(cfg_path, workers=workers, max_events=max_events, debug=debug)
    except DigiError as exc:
        typer.echo(f"[dchdigi] ERROR: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(str(out_path))


@app.command("synth")
def synth(
    out_dir: str = typer.Argument(..., help="Directory for simhits.h5, calibration.npz and dchdigi.toml"),
    events: int = typer.Option(10, "--events", help="Number of events"),
    hits: int = typer.Option(20, "--hits", help="Sim hits per event"),
    seed: int = typer.Option(0, "--seed", help="Seed of the synthetic generator"),
):
    """Write a synthetic input set for smoke runs."""
    try:
        cfg_path = write_synthetic_inputs(out_dir, n_events=events, hits_per_event=hits, seed=seed)
    except DigiError as exc:
        typer.echo(f"[dchdigi] ERROR: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(str(cfg_path))


if __name__ == "__main__":
    app()
