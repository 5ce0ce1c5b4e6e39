import numpy as np
import pytest

from htccreco.physics.hits import HitTable, Hit, phi_index_from_sector_half
from htccreco.sim.synth import sector_half_from_phi_index


def test_phi_index_covers_every_sector_half():
    seen = set()
    for sector in range(1, 7):
        for half in (1, 2):
            iphi = int(phi_index_from_sector_half(sector, half))
            assert 0 <= iphi < 12
            seen.add(iphi)
    assert seen == set(range(12))


def test_phi_index_raw_zero_wraps_to_eleven():
    # 2*1 + 1 - 3 == 0
    assert int(phi_index_from_sector_half(1, 1)) == 11
    assert int(phi_index_from_sector_half(1, 2)) == 0
    assert int(phi_index_from_sector_half(6, 2)) == 10


def test_sector_half_inverse():
    for iphi in range(12):
        s, h = sector_half_from_phi_index(iphi)
        assert 1 <= s <= 6 and h in (1, 2)
        assert int(phi_index_from_sector_half(s, h)) == iphi


def test_hit_table_derived_indices():
    ht = HitTable(ring=[1, 4], sector=[1, 3], half=[1, 2], nphe=[5, 0], time=[12.0, 13.5])
    assert len(ht) == 2
    np.testing.assert_array_equal(ht.theta_index, [0, 3])
    np.testing.assert_array_equal(ht.phi_index, [11, 4])
    np.testing.assert_array_equal(ht.hitn, [1, 2])
    h = ht[1]
    assert isinstance(h, Hit)
    assert (h.theta_index, h.phi_index, h.nphe, h.time) == (3, 4, 0, 13.5)


def test_hit_table_from_records_mappings_and_objects():
    class Rec:
        def __init__(self, **kw):
            self.__dict__.update(kw)

    recs = [
        {"ring": 2, "sector": 2, "half": 1, "nphe": 3, "time": 1.0, "hitn": 7},
        Rec(ring=3, sector=4, half=2, nphe=1, time=2.5),
    ]
    ht = HitTable.from_records(recs)
    assert len(ht) == 2
    np.testing.assert_array_equal(ht.hitn, [7, 2])
    assert [h.theta_index for h in ht] == [1, 2]
    assert [h.phi_index for h in ht] == [1, 6]


def test_hit_table_rejects_ragged_columns():
    with pytest.raises(ValueError):
        HitTable(ring=[1, 2], sector=[1], half=[1, 1], nphe=[1, 1], time=[0.0, 0.0])


def test_hit_table_from_records_missing_field():
    with pytest.raises(KeyError):
        HitTable.from_records([{"ring": 1, "sector": 1, "half": 1, "nphe": 2}])


def test_empty_table():
    ht = HitTable.empty()
    assert len(ht) == 0
    assert ht.above(0).size == 0
