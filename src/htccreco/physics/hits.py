from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping

import numpy as np

from htccreco.geometry.parameters import N_PHI

_COLUMNS = ("ring", "sector", "half", "nphe", "time")


def theta_index_from_ring(ring):
    """Ring 1..4 -> theta index 0..3 (works on scalars and arrays)."""
    return np.asarray(ring, dtype=np.int64) - 1


def phi_index_from_sector_half(sector, half):
    """
    Sector 1..6 and half 1..2 -> cyclic phi index 0..11.

    raw = 2*sector + half - 3, with raw 0 wrapped to 12, so sector 1 half 1
    lands on index 11 rather than -1.
    """
    raw = 2 * np.asarray(sector, dtype=np.int64) + np.asarray(half, dtype=np.int64) - 3
    raw = np.where(raw == 0, N_PHI, raw)
    return raw - 1


@dataclass(frozen=True, slots=True)
class Hit:
    """
    One raw HTCC hit plus its derived detector indices.

    ring, sector, half: raw detector identifiers
    nphe: photoelectron count
    time: raw hit time [ns], before the per-ring t0 correction
    theta_index: ring - 1, in [0, 4)
    phi_index: cyclic azimuthal bin, in [0, 12)
    """
    ring: int
    sector: int
    half: int
    nphe: int
    time: float
    theta_index: int
    phi_index: int


class HitTable:
    """
    Ordered per-event collection of raw hits stored column-wise.

    Row order is the order the hits were read from the store and is kept
    throughout clustering (it decides seed ties).
    """

    def __init__(self, ring, sector, half, nphe, time, hitn=None):
        self.ring = np.asarray(ring, dtype=np.int64).reshape(-1)
        self.sector = np.asarray(sector, dtype=np.int64).reshape(-1)
        self.half = np.asarray(half, dtype=np.int64).reshape(-1)
        self.nphe = np.asarray(nphe, dtype=np.int64).reshape(-1)
        self.time = np.asarray(time, dtype=np.float64).reshape(-1)
        n = self.ring.size
        for name in _COLUMNS[1:]:
            if getattr(self, name).size != n:
                raise ValueError(
                    f"HitTable column '{name}' has {getattr(self, name).size} rows, expected {n}"
                )
        if hitn is None:
            self.hitn = np.arange(1, n + 1, dtype=np.int64)
        else:
            self.hitn = np.asarray(hitn, dtype=np.int64).reshape(-1)
            if self.hitn.size != n:
                raise ValueError(f"HitTable column 'hitn' has {self.hitn.size} rows, expected {n}")

        # derived once per event
        self.theta_index = theta_index_from_ring(self.ring)
        self.phi_index = phi_index_from_sector_half(self.sector, self.half)

    @classmethod
    def empty(cls) -> "HitTable":
        return cls([], [], [], [], [])

    @classmethod
    def from_records(cls, records: Iterable[Any]) -> "HitTable":
        """
        Build from raw hit records: mappings or objects exposing ring, sector,
        half, nphe and time (and optionally hitn).
        """
        cols = {k: [] for k in _COLUMNS}
        hitn = []
        for rec in records:
            if isinstance(rec, Mapping):
                get = rec.get
            else:
                get = lambda k, d=None, _r=rec: getattr(_r, k, d)
            for k in _COLUMNS:
                v = get(k)
                if v is None:
                    raise KeyError(f"hit record is missing '{k}'")
                cols[k].append(v)
            hitn.append(get("hitn", len(hitn) + 1))
        return cls(**cols, hitn=hitn)

    def __len__(self) -> int:
        return int(self.ring.size)

    def __getitem__(self, i: int) -> Hit:
        return Hit(
            ring=int(self.ring[i]),
            sector=int(self.sector[i]),
            half=int(self.half[i]),
            nphe=int(self.nphe[i]),
            time=float(self.time[i]),
            theta_index=int(self.theta_index[i]),
            phi_index=int(self.phi_index[i]),
        )

    def __iter__(self) -> Iterator[Hit]:
        for i in range(len(self)):
            yield self[i]

    def __repr__(self) -> str:
        return f"HitTable(n_hits={len(self)}, nphe_total={int(self.nphe.sum())})"

    def above(self, npheminhit: int) -> np.ndarray:
        """Indices of hits with nphe strictly above `npheminhit`, in table order."""
        return np.flatnonzero(self.nphe > npheminhit)

