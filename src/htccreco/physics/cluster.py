from __future__ import annotations
from dataclasses import dataclass
from typing import NamedTuple, Tuple

import numpy as np

from htccreco.geometry.parameters import InvalidHitError, N_PHI, N_THETA


@dataclass(frozen=True, slots=True)
class ClusterHit:
    """
    A hit once merged into a cluster.

    time is already t0-corrected; theta/phi are the nominal bin angles [rad];
    dtheta/dphi are the (non-negative) alignment uncertainties [rad].
    """
    theta_index: int
    phi_index: int
    nphe: int
    time: float
    theta: float
    phi: float
    dtheta: float
    dphi: float


class ClusterRecord(NamedTuple):
    """One row of the clusters output bank."""
    nhits: int
    ntheta: int
    nphi: int
    mintheta: int
    maxtheta: int
    minphi: int
    maxphi: int
    nphe: int
    time: float
    theta: float
    phi: float
    dtheta: float
    dphi: float


RECORD_FIELDS = ClusterRecord._fields


def _ordered_sum(x: np.ndarray) -> np.float64:
    """Left-to-right float sum (ndarray.sum() is pairwise for n >= 8)."""
    return np.add.accumulate(x)[-1]


class Cluster:
    """
    Mutable aggregate of the hits assigned to one cluster.

    Every add_hit() appends to the ordered hit list and then recomputes all
    aggregates from the full list. The outward-sign reference means depend on
    every stored hit, so there is no incremental update.
    """

    def __init__(self):
        self._hits: list[ClusterHit] = []
        self._reset()

    def _reset(self) -> None:
        self.n_hits = 0
        self.n_theta = 0
        self.n_phi = 0
        self.theta_index_min = 0
        self.theta_index_max = 0
        self.phi_index_min = 0
        self.phi_index_max = 0
        self.nphe_total = 0
        self.time = 0.0
        self.theta = 0.0
        self.phi = 0.0
        self.dtheta = 0.0
        self.dphi = 0.0

    def add_hit(
        self,
        theta_index: int,
        phi_index: int,
        nphe: int,
        time: float,
        theta: float,
        phi: float,
        dtheta: float,
        dphi: float,
    ) -> None:
        if not (0 <= theta_index < N_THETA):
            raise InvalidHitError(f"theta index {theta_index} outside [0, {N_THETA})")
        if not (0 <= phi_index < N_PHI):
            raise InvalidHitError(f"phi index {phi_index} outside [0, {N_PHI})")
        if not (0 <= nphe):
            raise InvalidHitError(f"negative photoelectron count {nphe}")

        self._hits.append(ClusterHit(
            theta_index=int(theta_index),
            phi_index=int(phi_index),
            nphe=int(nphe),
            time=float(time),
            theta=float(theta),
            phi=float(phi),
            dtheta=abs(float(dtheta)),  # errors are always positive
            dphi=abs(float(dphi)),
        ))
        self.recompute()

    def recompute(self) -> None:
        """Recompute every aggregate from the stored hit sequence."""
        self._reset()
        n = len(self._hits)
        self.n_hits = n
        if n == 0:
            return

        itheta = np.array([h.theta_index for h in self._hits], dtype=np.int64)
        iphi = np.array([h.phi_index for h in self._hits], dtype=np.int64)
        nphe = np.array([h.nphe for h in self._hits], dtype=np.int64)
        t = np.array([h.time for h in self._hits], dtype=np.float64)
        th = np.array([h.theta for h in self._hits], dtype=np.float64)
        ph = np.array([h.phi for h in self._hits], dtype=np.float64)
        dth = np.array([h.dtheta for h in self._hits], dtype=np.float64)
        dph = np.array([h.dphi for h in self._hits], dtype=np.float64)

        # unweighted reference means, only used for the outward sign
        theta_ref = _ordered_sum(th) / n
        phi_ref = _ordered_sum(ph) / n

        self.theta_index_min = int(itheta.min())
        self.theta_index_max = int(itheta.max())
        self.phi_index_min = int(iphi.min())
        self.phi_index_max = int(iphi.max())

        self.nphe_total = int(nphe.sum())
        w = nphe.astype(np.float64)
        total = np.float64(self.nphe_total)

        # the alignment error always pushes away from the reference mean
        th_out = th + dth * np.sign(th - theta_ref)
        ph_out = ph + dph * np.sign(ph - phi_ref)

        # the per-hit uncertainty sums are never accumulated, so both
        # aggregates come out as 0 ** -0.5 = inf
        dtheta_sum = np.float64(0.0)
        dphi_sum = np.float64(0.0)

        with np.errstate(divide="ignore", invalid="ignore"):
            self.time = float(_ordered_sum(t * w) / total)
            self.theta = float(_ordered_sum(th_out * w) / total)
            cos_phi = _ordered_sum(np.cos(ph_out) * w) / total
            sin_phi = _ordered_sum(np.sin(ph_out) * w) / total
            self.phi = float(np.arctan2(sin_phi, cos_phi))
            self.dtheta = float(np.power(dtheta_sum, -0.5))
            self.dphi = float(np.power(dphi_sum, -0.5))

        self.n_theta = len(set(itheta.tolist()))
        self.n_phi = len(set(iphi.tolist()))

    # ---- positional access used during growth ----

    @property
    def hits(self) -> Tuple[ClusterHit, ...]:
        return tuple(self._hits)

    def hit_theta_index(self, pos: int) -> int:
        return self._hits[pos].theta_index

    def hit_phi_index(self, pos: int) -> int:
        return self._hits[pos].phi_index

    def __len__(self) -> int:
        return self.n_hits

    def __repr__(self) -> str:
        return (f"Cluster(n_hits={self.n_hits}, nphe={self.nphe_total}, "
                f"theta=[{self.theta_index_min},{self.theta_index_max}], "
                f"phi=[{self.phi_index_min},{self.phi_index_max}], time={self.time:.3f})")

    def to_record(self) -> ClusterRecord:
        return ClusterRecord(
            nhits=self.n_hits,
            ntheta=self.n_theta,
            nphi=self.n_phi,
            mintheta=self.theta_index_min,
            maxtheta=self.theta_index_max,
            minphi=self.phi_index_min,
            maxphi=self.phi_index_max,
            nphe=self.nphe_total,
            time=self.time,
            theta=self.theta,
            phi=self.phi,
            dtheta=self.dtheta,
            dphi=self.dphi,
        )
