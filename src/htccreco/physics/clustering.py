"""
htccreco.physics.clustering

Seed-and-grow clustering of HTCC hits for one event.

Per event:
  1. the remaining pool holds every hit with nphe > npheminhit, in table order;
  2. the seed is the pool hit with the largest nphe among those with
     nphe >= npheminmax (first one wins on ties); no seed ends the event;
  3. the seed starts a new Cluster and is removed from the pool;
  4. the cluster grows: each cluster hit, including hits merged during this
     pass, scans the pool and pulls in neighbours that are adjacent in
     (theta, phi) and within maxtimediff of the current cluster time;
  5. the grown cluster is kept if it passes the size/charge cuts; either way
     its hits never return to the pool.
"""
from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from htccreco.geometry.parameters import GeometryParameters, N_PHI
from htccreco.physics.cluster import Cluster
from htccreco.physics.hits import HitTable
from htccreco.utils.logger import logger


def phi_distance(a: int, b: int) -> int:
    """Cyclic distance between two phi indices on the 12-bin ring."""
    return min((N_PHI + a - b) % N_PHI, (N_PHI + b - a) % N_PHI)


class RemainingPool:
    """
    Ordered set of hit-table rows not yet assigned to any cluster.

    Removal is O(1) and keeps the relative order of the other rows, so a scan
    over a snapshot visits the survivors exactly in table order.
    """

    def __init__(self, rows=()):
        self._rows: Dict[int, None] = dict.fromkeys(int(r) for r in rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, row: int) -> bool:
        return row in self._rows

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._rows))

    def remove(self, row: int) -> None:
        del self._rows[row]


@dataclass
class ClusteringDiagnostics:
    n_hits: int = 0
    n_pool: int = 0
    n_seeds: int = 0
    n_accepted: int = 0
    n_rejected: int = 0
    n_unclustered: int = 0
    n_merged: int = 0


class ClusteringEngine:
    """
    Runs the seed/grow/accept loop over one HitTable at a time.

    The engine keeps no state between events apart from the immutable
    parameters and the diagnostics of the last processed event.
    """

    def __init__(self, params: Optional[GeometryParameters] = None):
        self.params = params or GeometryParameters.default()
        self.diagnostics = ClusteringDiagnostics()

    # ---- steps ----

    def initial_pool(self, hits: HitTable) -> RemainingPool:
        return RemainingPool(hits.above(self.params.npheminhit))

    def select_seed(self, hits: HitTable, pool: RemainingPool) -> Optional[int]:
        """Row of the strongest qualifying hit in pool order, or None."""
        best_row = None
        best_nphe = -1
        for row in pool:
            nphe = int(hits.nphe[row])
            if nphe >= self.params.npheminmax and nphe > best_nphe:
                best_nphe = nphe
                best_row = row
        return best_row

    def _add(self, cluster: Cluster, hits: HitTable, row: int) -> None:
        p = self.params
        itheta = int(hits.theta_index[row])
        iphi = int(hits.phi_index[row])
        cluster.add_hit(
            itheta,
            iphi,
            int(hits.nphe[row]),
            p.corrected_time(itheta, hits.time[row]),
            p.nominal_theta(itheta),
            p.nominal_phi(iphi),
            p.dtheta(itheta),
            p.dphi(itheta),
        )

    def is_neighbour(self, cluster: Cluster, pos: int, hits: HitTable, row: int) -> bool:
        itheta = int(hits.theta_index[row])
        iphi = int(hits.phi_index[row])
        dtheta = abs(itheta - cluster.hit_theta_index(pos))
        dphi = phi_distance(iphi, cluster.hit_phi_index(pos))
        dt = abs(self.params.corrected_time(itheta, hits.time[row]) - cluster.time)
        return (
            (dtheta == 1 or dphi == 1)
            and dtheta + dphi <= 2
            and dt <= self.params.maxtimediff
        )

    def grow(self, cluster: Cluster, hits: HitTable, pool: RemainingPool) -> int:
        """
        Merge neighbouring pool hits into `cluster` until nothing else fits.

        Cluster positions are processed first-in first-out; every merged hit
        is queued for its own scan. Returns the number of merged hits.
        """
        merged = 0
        pending = deque(range(cluster.n_hits))
        while pending:
            pos = pending.popleft()
            for row in pool:
                if not self.is_neighbour(cluster, pos, hits, row):
                    continue
                pool.remove(row)
                self._add(cluster, hits, row)
                pending.append(cluster.n_hits - 1)
                merged += 1
                logger.debug(
                    f"[cluster] merged hit {row} (itheta={hits.theta_index[row]}, "
                    f"iphi={hits.phi_index[row]}) via position {pos}; time now {cluster.time:.3f}"
                )
        return merged

    def accepts(self, cluster: Cluster) -> bool:
        p = self.params
        return (
            cluster.nphe_total >= p.npeminclst
            and cluster.n_theta <= p.nthetamaxclst
            and cluster.n_phi <= p.nphimaxclst
            and cluster.n_hits <= p.nhitmaxclst
        )

    # ---- driver ----

    def process(self, hits: HitTable) -> List[Cluster]:
        """
        Cluster one event. Returns the accepted clusters in the order they
        were seeded.

        Raises InvalidHitError if a hit maps outside the detector index
        ranges; the event should then be treated as failed.
        """
        diag = ClusteringDiagnostics(n_hits=len(hits))
        self.diagnostics = diag
        clusters: List[Cluster] = []
        if len(hits) == 0:
            return clusters

        pool = self.initial_pool(hits)
        diag.n_pool = len(pool)

        while len(pool) > 0:
            seed = self.select_seed(hits, pool)
            if seed is None:
                break
            diag.n_seeds += 1
            pool.remove(seed)

            cluster = Cluster()
            self._add(cluster, hits, seed)
            logger.debug(f"[cluster] seed hit {seed} nphe={hits.nphe[seed]}, {len(pool)} hits left")

            diag.n_merged += self.grow(cluster, hits, pool)

            if self.accepts(cluster):
                clusters.append(cluster)
                diag.n_accepted += 1
            else:
                diag.n_rejected += 1
                logger.debug(f"[cluster] rejected {cluster!r}")

        diag.n_unclustered = len(pool)
        return clusters


def cluster_event(
    hits: HitTable,
    params: Optional[GeometryParameters] = None,
) -> Tuple[List[Cluster], ClusteringDiagnostics]:
    """Convenience wrapper: cluster one event with a throwaway engine."""
    engine = ClusteringEngine(params)
    clusters = engine.process(hits)
    return clusters, engine.diagnostics
