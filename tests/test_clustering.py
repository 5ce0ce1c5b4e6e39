import pytest

from htccreco.config.schemas import GeometryCfg, ThresholdsCfg
from htccreco.geometry.parameters import GeometryParameters, InvalidHitError
from htccreco.physics.clustering import (
    ClusteringEngine,
    RemainingPool,
    cluster_event,
    phi_distance,
)
from htccreco.physics.hits import HitTable
from htccreco.sim.synth import sector_half_from_phi_index


def _params(**thresholds) -> GeometryParameters:
    return GeometryParameters.from_cfg(
        GeometryCfg(t0_ns=[0.0, 0.0, 0.0, 0.0]),
        ThresholdsCfg(**thresholds),
    )


def _table(hits) -> HitTable:
    """hits: iterable of (itheta, iphi, nphe, time)."""
    ring, sector, half, nphe, time = [], [], [], [], []
    for itheta, iphi, n, t in hits:
        s, h = sector_half_from_phi_index(iphi)
        ring.append(itheta + 1)
        sector.append(s)
        half.append(h)
        nphe.append(n)
        time.append(t)
    return HitTable(ring, sector, half, nphe, time)


def _cells(cluster):
    return sorted((h.theta_index, h.phi_index) for h in cluster.hits)


def test_phi_distance_is_symmetric_and_cyclic():
    for a in range(12):
        for b in range(12):
            assert phi_distance(a, b) == phi_distance(b, a)
            assert 0 <= phi_distance(a, b) <= 6
    assert phi_distance(0, 11) == 1
    assert phi_distance(0, 6) == 6
    assert phi_distance(3, 3) == 0


def test_remaining_pool_keeps_order_on_removal():
    pool = RemainingPool([4, 1, 7, 2])
    pool.remove(1)
    assert list(pool) == [4, 7, 2]
    assert 7 in pool and 1 not in pool
    assert len(pool) == 3


def test_empty_event_gives_no_clusters():
    clusters, diag = cluster_event(HitTable.empty(), _params())
    assert clusters == []
    assert diag.n_hits == 0 and diag.n_seeds == 0


def test_hit_at_filter_threshold_is_excluded():
    engine = ClusteringEngine(_params(npheminhit=1, npheminmax=1))
    clusters = engine.process(_table([(0, 0, 1, 0.0)]))
    assert clusters == []
    assert engine.diagnostics.n_pool == 0


def test_hit_at_seed_threshold_is_a_seed():
    engine = ClusteringEngine(_params(npheminhit=0, npheminmax=3))
    clusters = engine.process(_table([(2, 4, 3, 0.0)]))
    assert len(clusters) == 1
    assert clusters[0].nphe_total == 3

    # one below the seed threshold: in the pool but never seeded
    clusters = engine.process(_table([(2, 4, 2, 0.0)]))
    assert clusters == []
    assert engine.diagnostics.n_pool == 1
    assert engine.diagnostics.n_unclustered == 1


def test_seed_ties_go_to_earliest_hit():
    params = _params(npheminhit=0)
    engine = ClusteringEngine(params)
    hits = _table([(0, 0, 2, 0.0), (3, 6, 5, 0.0), (1, 9, 5, 0.0)])
    pool = engine.initial_pool(hits)
    assert engine.select_seed(hits, pool) == 1
    pool.remove(1)
    assert engine.select_seed(hits, pool) == 2

    clusters = engine.process(hits)
    assert [c.hits[0].theta_index for c in clusters] == [3, 1, 0]


def test_growth_chain_and_separate_cluster():
    hits = _table([
        (0, 0, 2, 0.0),
        (1, 0, 2, 0.5),
        (0, 1, 2, 1.0),
        (0, 6, 2, 0.2),
    ])
    clusters, diag = cluster_event(hits, _params())
    assert len(clusters) == 2
    first, second = clusters
    assert first.n_hits == 3
    assert _cells(first) == [(0, 0), (0, 1), (1, 0)]
    assert first.n_theta == 2 and first.n_phi == 2
    assert first.nphe_total == 6
    assert second.n_hits == 1
    assert _cells(second) == [(0, 6)]
    assert diag.n_seeds == 2 and diag.n_accepted == 2 and diag.n_unclustered == 0


def test_growth_cascades_to_neighbours_of_neighbours():
    # (0,0) -> (0,1) -> (0,2): the last one only touches the merged hit
    hits = _table([(0, 0, 9, 0.0), (0, 2, 2, 0.0), (0, 1, 2, 0.0)])
    clusters, _ = cluster_event(hits, _params(nphimaxclst=3))
    assert len(clusters) == 1
    assert _cells(clusters[0]) == [(0, 0), (0, 1), (0, 2)]


def test_growth_merges_across_phi_wrap_and_diagonal():
    hits = _table([(1, 0, 9, 0.0), (1, 11, 2, 0.0), (2, 1, 2, 0.0)])
    clusters, _ = cluster_event(hits, _params(nphimaxclst=3, nthetamaxclst=2))
    assert len(clusters) == 1
    assert _cells(clusters[0]) == [(1, 0), (1, 11), (2, 1)]


def test_no_merge_when_two_bins_apart():
    hits = _table([(0, 0, 9, 0.0), (2, 0, 2, 0.0), (0, 2, 2, 0.0), (1, 2, 2, 0.0)])
    clusters, _ = cluster_event(hits, _params())
    sizes = sorted(c.n_hits for c in clusters)
    # (2,0) and (0,2) are 2 bins away, (1,2) is diagonal+1 away from the seed
    assert clusters[0].n_hits == 1
    assert sum(sizes) == 4


def test_time_window_is_inclusive():
    params = _params()
    hits = _table([(0, 0, 4, 0.0), (1, 0, 2, 2.0)])
    clusters, _ = cluster_event(hits, params)
    assert len(clusters) == 1 and clusters[0].n_hits == 2

    hits = _table([(0, 0, 4, 0.0), (1, 0, 2, 2.5)])
    clusters, _ = cluster_event(hits, params)
    assert [c.n_hits for c in clusters] == [1, 1]


def test_time_window_uses_running_cluster_time():
    # seed at t=0 (nphe 2); first neighbour at t=2 moves the mean to 1.0,
    # which brings the t=3 hit inside the window
    hits = _table([(0, 0, 2, 0.0), (1, 0, 2, 2.0), (0, 1, 2, 3.0)])
    clusters, _ = cluster_event(hits, _params())
    assert len(clusters) == 1
    assert clusters[0].n_hits == 3


def test_time_correction_uses_ring_offset():
    params = GeometryParameters.from_cfg(
        GeometryCfg(t0_ns=[0.0, 10.0, 0.0, 0.0]), ThresholdsCfg()
    )
    # raw 10 ns in ring 2 is corrected to 0 ns
    hits = _table([(0, 0, 4, 0.0), (1, 0, 2, 10.0)])
    clusters, _ = cluster_event(hits, params)
    assert len(clusters) == 1 and clusters[0].n_hits == 2
    assert clusters[0].time == pytest.approx(0.0)


def test_rejected_cluster_hits_are_consumed():
    hits = _table([
        (0, 0, 5, 0.0),
        (1, 0, 2, 0.0),
        (0, 1, 2, 0.0),
        (3, 6, 3, 0.0),
    ])
    engine = ClusteringEngine(_params(nhitmaxclst=2))
    clusters = engine.process(hits)
    # the 3-hit cluster is dropped, its hits do not seed anything later
    assert len(clusters) == 1
    assert _cells(clusters[0]) == [(3, 6)]
    assert clusters[0].nphe_total == 3
    d = engine.diagnostics
    assert d.n_seeds == 2 and d.n_rejected == 1 and d.n_accepted == 1
    assert d.n_unclustered == 0


def test_acceptance_on_total_nphe():
    engine = ClusteringEngine(_params(npeminclst=5))
    clusters = engine.process(_table([(0, 0, 3, 0.0), (1, 0, 2, 0.0)]))
    assert len(clusters) == 1 and clusters[0].nphe_total == 5
    clusters = engine.process(_table([(0, 0, 3, 0.0), (1, 0, 1, 0.0)]))
    assert clusters == []


def test_invalid_ring_is_fatal_for_event():
    # ring 5 -> theta index 4
    hits = HitTable(ring=[5], sector=[1], half=[2], nphe=[4], time=[0.0])
    with pytest.raises(InvalidHitError):
        cluster_event(hits, _params())


def test_invalid_sector_is_fatal_for_event():
    # sector 7 half 2 -> phi index 12
    hits = HitTable(ring=[1, 1], sector=[1, 7], half=[2, 2], nphe=[4, 2], time=[0.0, 0.0])
    with pytest.raises(InvalidHitError):
        cluster_event(hits, _params())


def test_default_parameters_cluster_synthetic_like_event():
    params = GeometryParameters.default()
    # raw times include the default per-ring t0
    hits = _table([
        (1, 3, 8, params.t0[1] + 5.0),
        (2, 3, 3, params.t0[2] + 5.4),
        (1, 4, 2, params.t0[1] + 4.8),
    ])
    clusters, _ = cluster_event(hits, params)
    assert len(clusters) == 1
    c = clusters[0]
    assert c.n_hits == 3 and c.nphe_total == 13
    assert c.time == pytest.approx((8 * 5.0 + 3 * 5.4 + 2 * 4.8) / 13)
