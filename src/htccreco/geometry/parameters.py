from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Optional, Tuple

import numpy as np

from htccreco.config.schemas import Config, GeometryCfg, ThresholdsCfg

N_THETA = 4   # rings
N_PHI = 12    # half-sectors, cyclic


class InvalidHitError(ValueError):
    """A hit index or photoelectron count outside the detector's valid range."""


def check_theta_index(itheta: int) -> int:
    if not (0 <= itheta < N_THETA):
        raise InvalidHitError(f"theta index {itheta} outside [0, {N_THETA})")
    return int(itheta)


def check_phi_index(iphi: int) -> int:
    if not (0 <= iphi < N_PHI):
        raise InvalidHitError(f"phi index {iphi} outside [0, {N_PHI})")
    return int(iphi)


def _rad4(values) -> Tuple[float, ...]:
    return tuple(float(x) for x in np.radians(np.asarray(values, dtype=float)))


@dataclass(frozen=True)
class GeometryParameters:
    """
    HTCC reconstruction parameters.

    All angles are in radians and all times in ns. Build from degrees with
    from_cfg() (or default()); direct construction takes radians.

    theta0[i]     nominal polar angle of ring i
    dtheta0[i]    ring half-width (carried along, not used by clustering)
    phi_range[i]  azimuthal alignment uncertainty of ring i
    theta_range   polar alignment uncertainty, same for all rings
    phi0, dphi0   azimuth of phi index 0 and the half step (bin width 2*dphi0)
    t0[i]         time offset subtracted from raw hit times of ring i
    """
    theta0: Tuple[float, ...]
    dtheta0: Tuple[float, ...]
    phi_range: Tuple[float, ...]
    theta_range: float
    phi0: float
    dphi0: float
    t0: Tuple[float, ...]

    npheminhit: int = 1
    npheminmax: int = 1
    npeminclst: int = 1
    nhitmaxclst: int = 4
    nthetamaxclst: int = 2
    nphimaxclst: int = 2
    maxtimediff: float = 2.0

    def __post_init__(self):
        for name in ("theta0", "dtheta0", "phi_range", "t0"):
            vals = tuple(float(x) for x in getattr(self, name))
            if len(vals) != N_THETA:
                raise ValueError(f"{name} needs {N_THETA} values, got {len(vals)}")
            object.__setattr__(self, name, vals)

    @classmethod
    def from_cfg(
        cls,
        geometry: Optional[GeometryCfg] = None,
        thresholds: Optional[ThresholdsCfg] = None,
    ) -> "GeometryParameters":
        g = geometry or GeometryCfg()
        th = thresholds or ThresholdsCfg()
        return cls(
            theta0=_rad4(g.theta0_deg),
            dtheta0=_rad4(g.dtheta0_deg),
            phi_range=_rad4(g.phi_range_deg),
            theta_range=float(np.radians(g.theta_range_deg)),
            phi0=float(np.radians(g.phi0_deg)),
            dphi0=float(np.radians(g.dphi0_deg)),
            t0=tuple(float(x) for x in g.t0_ns),
            **th.model_dump(),
        )

    @classmethod
    def from_config(cls, cfg: Config) -> "GeometryParameters":
        return cls.from_cfg(cfg.geometry, cfg.thresholds)

    @classmethod
    def default(cls) -> "GeometryParameters":
        return cls.from_cfg()

    # ---- per-index lookups ----

    def nominal_theta(self, itheta: int) -> float:
        return self.theta0[check_theta_index(itheta)]

    def nominal_phi(self, iphi: int) -> float:
        return self.phi0 + 2.0 * self.dphi0 * check_phi_index(iphi)

    def dtheta(self, itheta: int) -> float:
        check_theta_index(itheta)
        return self.theta_range

    def dphi(self, itheta: int) -> float:
        return self.phi_range[check_theta_index(itheta)]

    def corrected_time(self, itheta: int, raw_time: float) -> float:
        return float(raw_time) - self.t0[check_theta_index(itheta)]

    def to_dict(self) -> dict:
        return asdict(self)
