from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional, Dict, List, Any

N_RINGS = 4


class RunCfg(BaseModel):
    """
    Global run controls.
    """

    # Diagnostics
    diagnostics_level: int = 1  # 0=warnings, 1=info, 2=debug tracing
    progress: bool = True

    # Limits
    first_event: int = 0
    max_events: Optional[int] = None

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v

    @field_validator("first_event")
    def _first_event_positive(cls, v: int) -> int:
        if v < 0:
            raise ValueError("first_event must be >= 0")
        return v

    @field_validator("max_events")
    def _max_events_positive(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("max_events must be >= 0")
        return v


class IOCfg(BaseModel):
    """
    I/O paths for the hit store (input) and the cluster store (output).

    TOML:

    [io]
    input_path   = "..."
    input_format = "hdf5_dgtz"     # "hdf5_dgtz" | "csv"
    output_path  = "..."
    """

    input_path: str
    input_format: Literal["hdf5_dgtz", "csv"] = "hdf5_dgtz"
    output_path: str

    # Adapter-specific sub-config, e.g. [io.adapter]
    adapter: Dict[str, Any] = Field(default_factory=dict)


class GeometryCfg(BaseModel):
    """
    Per-ring HTCC geometry, in degrees and ns (converted to radians by
    GeometryParameters).

    TOML:

    [geometry]
    theta0_deg = [8.75, 16.25, 23.75, 31.25]
    phi_range_deg = [4.0, 2.4, 1.6, 1.2]
    t0_ns = [11.553, 11.943, 12.339, 12.75]
    """

    theta0_deg: List[float] = [8.75, 16.25, 23.75, 31.25]
    dtheta0_deg: List[float] = [3.75, 3.75, 3.75, 3.75]
    phi_range_deg: List[float] = [4.0, 2.4, 1.6, 1.2]
    theta_range_deg: float = 1.2
    phi0_deg: float = 15.0
    dphi0_deg: float = 15.0
    t0_ns: List[float] = [11.553, 11.943, 12.339, 12.75]

    @field_validator("theta0_deg", "dtheta0_deg", "phi_range_deg", "t0_ns")
    def _per_ring(cls, v: List[float]) -> List[float]:
        if len(v) != N_RINGS:
            raise ValueError(f"expected {N_RINGS} per-ring values, got {len(v)}")
        return v


class ThresholdsCfg(BaseModel):
    npheminhit: int = 1      # pool filter, nphe > npheminhit
    npheminmax: int = 1      # seed, nphe >= npheminmax
    npeminclst: int = 1      # accept, total nphe >= npeminclst
    nhitmaxclst: int = 4
    nthetamaxclst: int = 2
    nphimaxclst: int = 2
    maxtimediff: float = 2.0  # ns


class VisCfg(BaseModel):
    export_png_on_write: bool = False
    out_png: Optional[str] = None


class Config(BaseModel):
    """
    Top-level TOML configuration.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    io: IOCfg
    geometry: GeometryCfg = Field(default_factory=GeometryCfg)
    thresholds: ThresholdsCfg = Field(default_factory=ThresholdsCfg)
    vis: VisCfg = Field(default_factory=VisCfg)
