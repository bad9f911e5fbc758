from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional, Union

KNOWN_DETECTORS = ("DCH_v2",)


class RunCfg(BaseModel):
    """
    Global run controls.
    """

    # Performance / execution
    workers: Union[int, Literal["auto"]] = 0
    progress: bool = False

    # Diagnostics
    diagnostics_level: int = 1  # 0=off, 1=minimal, 2=verbose

    # Limits
    max_events: Optional[int] = None

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v

    @field_validator("workers")
    def _workers_non_negative(cls, v):
        if isinstance(v, int) and v < 0:
            raise ValueError("workers must be >= 0 or 'auto'")
        return v


class IOCfg(BaseModel):
    """
    Input/output files and collection names.

    TOML:

    [io]
    input_path   = "simhits.h5"
    input_format = "hdf5"            # "hdf5" | "csv" | "parquet" | "root"
    output_path  = "digis.h5"
    """

    input_path: str
    input_format: Literal["hdf5", "csv", "parquet", "root"] = "hdf5"
    output_path: str

    input_collection: str = "DCH_simhits"
    output_collection: str = "DCH_DigiCollection"
    association_collection: str = "DCH_DigiSimAssociationCollection"


class DetectorCfg(BaseModel):
    """
    Static description of the twisted-tube drift chamber.

    Lengths are in cm (the geometry's working unit), angles in rad.
    Defaults follow an IDEA-like layout: 14 superlayers of 8 layers.
    """

    name: str = "DCH_v2"

    nsuperlayers: int = 14
    nlayers_per_superlayer: int = 8
    ncell0: int = 192
    ncell_increment: int = 48

    first_width_cm: float = 1.2
    first_sense_r_cm: float = 35.6
    half_length_cm: float = 200.0
    twist_angle_rad: float = 0.5585

    cellid_encoding: str = "system:5,superlayer:5,layer:4,nphi:11,stereosign:-2"

    @field_validator("name")
    def _known_detector(cls, v: str) -> str:
        if v not in KNOWN_DETECTORS:
            raise ValueError(f"unknown detector name {v!r}; expected one of {KNOWN_DETECTORS}")
        return v

    @field_validator(
        "nsuperlayers", "nlayers_per_superlayer", "ncell0",
        "first_width_cm", "first_sense_r_cm", "half_length_cm",
    )
    def _positive(cls, v):
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("ncell_increment")
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @property
    def nlayers(self) -> int:
        return self.nsuperlayers * self.nlayers_per_superlayer


class DigiCfg(BaseModel):
    """
    Smearing and cluster-counting parameters.

    z_resolution_mm  : sigma along the sense wire (from reading out both wire ends)
    xy_resolution_mm : sigma perpendicular to the sense wire
    calibration_path : file with the cluster count/size distributions
    """

    calibration_path: str
    z_resolution_mm: float = 1.0
    xy_resolution_mm: float = 0.1

    @field_validator("z_resolution_mm", "xy_resolution_mm")
    def _sigma_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("resolution must be >= 0")
        return v


class SeedCfg(BaseModel):
    # name of the unique-id generator; part of every event seed
    service_name: str = "uidSvc"
    salt: int = 0

    @field_validator("salt")
    def _salt_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("salt must be >= 0")
        return v


class DebugCfg(BaseModel):
    create_debug_histograms: bool = False
    out_debug_filename: str = "dch_digi_alg_debug.h5"
    export_png: bool = False


class Config(BaseModel):
    """
    Top-level TOML configuration.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    io: IOCfg
    detector: DetectorCfg = Field(default_factory=DetectorCfg)
    digi: DigiCfg
    seed: SeedCfg = Field(default_factory=SeedCfg)
    debug: DebugCfg = Field(default_factory=DebugCfg)
