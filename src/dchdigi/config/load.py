from __future__ import annotations
from .schemas import Config
from ..errors import ConfigurationError
from pathlib import Path
from pydantic import ValidationError

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # py<=310


def load_config(path: str | Path) -> Config:
    """
    Parse and validate a TOML config.

    Relative calibration/input/output paths are resolved against the config
    file's directory. Any problem is raised as ConfigurationError.
    """
    p = Path(path)
    if not p.is_file():
        raise ConfigurationError(f"config file not found: {p}")
    try:
        data = tomllib.loads(p.read_text())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"cannot parse {p}: {exc}") from exc
    try:
        cfg = Config(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration in {p}:\n{exc}") from exc

    base = p.resolve().parent
    cfg.digi.calibration_path = str(_resolve(base, cfg.digi.calibration_path))
    cfg.io.input_path = str(_resolve(base, cfg.io.input_path))
    cfg.io.output_path = str(_resolve(base, cfg.io.output_path))
    return cfg


def _resolve(base: Path, raw: str) -> Path:
    q = Path(raw)
    return q if q.is_absolute() else (base / q)


def validate_startup(cfg: Config) -> None:
    """Checks that need the filesystem; run once before processing starts."""
    calib = Path(cfg.digi.calibration_path)
    if not calib.is_file():
        raise ConfigurationError(
            f"DCHdigi: calibration file (digi.calibration_path) does not exist: {calib}"
        )
    if not Path(cfg.io.input_path).exists():
        raise ConfigurationError(f"DCHdigi: input file (io.input_path) does not exist: {cfg.io.input_path}")


def snapshot_config_toml(path: str | Path) -> str:
    """Return the raw TOML text for embedding in HDF5 metadata."""
    return Path(path).read_text()


def format_configuration(cfg: Config) -> str:
    """Human-readable summary printed at the start of a run."""
    lines = [
        "[config] DCHdigi configuration",
        f"[config]   detector            = {cfg.detector.name} "
        f"({cfg.detector.nsuperlayers}x{cfg.detector.nlayers_per_superlayer} layers)",
        f"[config]   input               = {cfg.io.input_path} ({cfg.io.input_format}) "
        f"collection={cfg.io.input_collection}",
        f"[config]   output              = {cfg.io.output_path} "
        f"digis={cfg.io.output_collection} links={cfg.io.association_collection}",
        f"[config]   calibration         = {cfg.digi.calibration_path}",
        f"[config]   z resolution [mm]   = {cfg.digi.z_resolution_mm}",
        f"[config]   xy resolution [mm]  = {cfg.digi.xy_resolution_mm}",
        f"[config]   seed service        = {cfg.seed.service_name} (salt={cfg.seed.salt})",
        f"[config]   debug histograms    = {cfg.debug.create_debug_histograms}"
        + (f" -> {cfg.debug.out_debug_filename}" if cfg.debug.create_debug_histograms else ""),
    ]
    return "\n".join(lines)
