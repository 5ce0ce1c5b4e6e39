from __future__ import annotations
import numpy as np
from typing import List, Tuple

from ..geometry.parameters import GeometryParameters, N_PHI, N_THETA
from ..physics.hits import HitTable


def sector_half_from_phi_index(iphi: int) -> tuple[int, int]:
    """Inverse of phi_index_from_sector_half for one index (sector 1..6, half 1..2)."""
    raw = (int(iphi) % N_PHI) + 1
    if raw == N_PHI:
        raw = 0
    s2h = raw + 3          # 2*sector + half
    half = 1 if s2h % 2 else 2
    return (s2h - half) // 2, half


def synth_events(
    n_events: int,
    params: GeometryParameters | None = None,
    *,
    mean_tracks: float = 1.5,
    mean_noise: float = 1.0,
    nphe_seed_mean: float = 8.0,
    time_sigma_ns: float = 0.5,
    rng: np.random.Generator | None = None,
) -> List[Tuple[int, HitTable]]:
    """
    Generate toy HTCC events as (event_id, HitTable) pairs.

    Each event holds a Poisson number of particle crossings and of noise hits:
      - a crossing lights a seed bin (random itheta, iphi) with ~nphe_seed_mean
        photoelectrons, plus 0-3 edge-adjacent neighbour bins with fewer;
      - all hits of a crossing share a common time (after t0 correction)
        smeared by time_sigma_ns;
      - noise hits land anywhere with 0-2 photoelectrons at a random time.
    Raw times include the per-ring t0, so clustering sees the corrected times.
    """
    params = params or GeometryParameters.default()
    rng = rng or np.random.default_rng()
    events: List[Tuple[int, HitTable]] = []

    for ev in range(n_events):
        ring: list[int] = []
        sector: list[int] = []
        half: list[int] = []
        nphe: list[int] = []
        time: list[float] = []

        def add(itheta: int, iphi: int, n: int, t_corr: float) -> None:
            s, h = sector_half_from_phi_index(iphi)
            ring.append(itheta + 1)
            sector.append(s)
            half.append(h)
            nphe.append(int(n))
            time.append(float(t_corr + params.t0[itheta]))

        for _ in range(rng.poisson(mean_tracks)):
            it0 = int(rng.integers(0, N_THETA))
            ip0 = int(rng.integers(0, N_PHI))
            t_track = float(rng.uniform(0.0, 50.0))
            add(it0, ip0, max(1, rng.poisson(nphe_seed_mean)), t_track + rng.normal(0.0, time_sigma_ns))

            steps = [(1, 0), (-1, 0), (0, 1), (0, -1)]
            for k in rng.permutation(len(steps))[: int(rng.integers(0, 4))]:
                dth, dph = steps[k]
                it = it0 + dth
                if not (0 <= it < N_THETA):
                    continue
                ip = (ip0 + dph) % N_PHI
                add(it, ip, max(1, rng.poisson(0.4 * nphe_seed_mean)),
                    t_track + rng.normal(0.0, time_sigma_ns))

        for _ in range(rng.poisson(mean_noise)):
            add(int(rng.integers(0, N_THETA)), int(rng.integers(0, N_PHI)),
                int(rng.integers(0, 3)), float(rng.uniform(0.0, 50.0)))

        events.append((ev, HitTable(ring, sector, half, nphe, time)))

    return events
