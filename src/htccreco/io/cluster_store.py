from __future__ import annotations
from typing import Iterable, Sequence, Tuple
import h5py
import numpy as np
import pandas as pd
from datetime import datetime, timezone
from htccreco.config.load import snapshot_config_toml, json_dumps
from htccreco.geometry.parameters import GeometryParameters
from htccreco.physics.cluster import Cluster, ClusterRecord, RECORD_FIELDS
from htccreco.physics.hits import HitTable

FORMAT_VERSION = "1.0"
SOFTWARE = "htcc-reco 0.1.0"

STATUS_OK = 0
STATUS_INVALID_HIT = 1

_INT_FIELDS = ("nhits", "ntheta", "nphi", "mintheta", "maxtheta", "minphi", "maxphi", "nphe")


def write_init(path: str, cfg_path: str | None, params: GeometryParameters) -> h5py.File:
    f = h5py.File(path, "w")
    # Root attrs
    f.attrs["format_version"] = FORMAT_VERSION
    f.attrs["created_utc"] = datetime.now(timezone.utc).isoformat()
    f.attrs["software"] = SOFTWARE
    f.attrs["config_text"] = snapshot_config_toml(cfg_path) if cfg_path else ""

    # /meta
    meta = f.create_group("meta")
    meta.attrs["geometry_json"] = json_dumps(params.to_dict())
    meta.attrs["theta0_rad"] = np.asarray(params.theta0)
    meta.attrs["t0_ns"] = np.asarray(params.t0)
    meta.attrs["phi0_rad"] = params.phi0
    meta.attrs["dphi0_rad"] = params.dphi0
    return f


def _replace_or_create(grp: h5py.Group, name: str, data: np.ndarray) -> None:
    if name in grp:
        del grp[name]
    # zero-length datasets cannot be chunked
    grp.create_dataset(name, data=data, compression="gzip" if data.size else None)


def _records_to_columns(records: Sequence[ClusterRecord]) -> dict:
    cols = {}
    for k in RECORD_FIELDS:
        dtype = np.int32 if k in _INT_FIELDS else np.float64
        cols[k] = np.array([getattr(r, k) for r in records], dtype=dtype)
    return cols


def write_clusters(
    f: h5py.File,
    event_ids: Sequence[int],
    clusters_per_event: Sequence[Sequence[Cluster | ClusterRecord]],
    n_hits: Sequence[int] | None = None,
    status: Sequence[int] | None = None,
) -> None:
    """
    Store the clusters bank as ragged (CSR) columns.

    Layout:

    /clusters/event_ptr   (N_events+1,) int64   rows of event i are [ptr[i], ptr[i+1])
    /clusters/<field>     (M,)  one dataset per ClusterRecord field
                          (int32 for counts/indices, float64 for time/angles)
    /events/event_id      (N_events,) int64
    /events/n_hits        (N_events,) int32   raw hits read for the event (-1 if unknown)
    /events/n_clusters    (N_events,) int32
    /events/status        (N_events,) uint8   0=ok, 1=invalid hit index
    """
    n_events = len(event_ids)
    if len(clusters_per_event) != n_events:
        raise ValueError(
            f"{len(clusters_per_event)} cluster lists for {n_events} events"
        )

    ptr = np.zeros(n_events + 1, dtype=np.int64)
    records: list[ClusterRecord] = []
    for i, clusters in enumerate(clusters_per_event):
        for c in clusters:
            records.append(c.to_record() if isinstance(c, Cluster) else c)
        ptr[i + 1] = len(records)

    grp = f.require_group("clusters")
    _replace_or_create(grp, "event_ptr", ptr)
    for k, arr in _records_to_columns(records).items():
        _replace_or_create(grp, k, arr)

    ev = f.require_group("events")
    _replace_or_create(ev, "event_id", np.asarray(event_ids, dtype=np.int64))
    _replace_or_create(
        ev, "n_hits",
        np.asarray(n_hits if n_hits is not None else [-1] * n_events, dtype=np.int32),
    )
    _replace_or_create(ev, "n_clusters", np.diff(ptr).astype(np.int32))
    _replace_or_create(
        ev, "status",
        np.asarray(status if status is not None else [STATUS_OK] * n_events, dtype=np.uint8),
    )


def read_clusters(path: str) -> pd.DataFrame:
    """
    Read the clusters bank back as a flat DataFrame, one row per cluster,
    with an 'event_id' column and one column per ClusterRecord field.
    """
    path = str(path)
    with h5py.File(path, "r") as f:
        if "clusters" not in f:
            raise KeyError(f"/clusters not found in {path}")
        grp = f["clusters"]
        ptr = np.asarray(grp["event_ptr"][...], dtype=np.int64)
        event_ids = np.asarray(f["events"]["event_id"][...], dtype=np.int64)
        data = {"event_id": np.repeat(event_ids, np.diff(ptr))}
        for k in RECORD_FIELDS:
            data[k] = grp[k][...]
    return pd.DataFrame(data, columns=["event_id", *RECORD_FIELDS])


def read_event_status(path: str) -> pd.DataFrame:
    with h5py.File(str(path), "r") as f:
        ev = f["events"]
        return pd.DataFrame({k: ev[k][...] for k in ("event_id", "n_hits", "n_clusters", "status")})


def write_dgtz(
    f: h5py.File,
    events: Iterable[Tuple[int, HitTable]],
    *,
    group: str = "/htcc",
) -> None:
    """
    Write raw hits in the ragged layout read by HDF5DgtzAdapter:

      {group}/dgtz/event_ptr, hitn, sector, ring, half, nphe, time
      {group}/events/event_id
    """
    if group.endswith("/"):
        group = group[:-1]
    events = list(events)
    ptr = np.zeros(len(events) + 1, dtype=np.int64)
    for i, (_, hits) in enumerate(events):
        ptr[i + 1] = ptr[i] + len(hits)

    def _cat(name: str, dtype) -> np.ndarray:
        parts = [getattr(h, name) for _, h in events]
        if not parts:
            return np.zeros(0, dtype=dtype)
        return np.concatenate(parts).astype(dtype)

    g_hits = f.require_group(f"{group}/dgtz")
    g_ev = f.require_group(f"{group}/events")
    _replace_or_create(g_hits, "event_ptr", ptr)
    for name in ("hitn", "sector", "ring", "half", "nphe"):
        _replace_or_create(g_hits, name, _cat(name, np.int32))
    _replace_or_create(g_hits, "time", _cat("time", np.float64))
    _replace_or_create(g_ev, "event_id", np.asarray([e for e, _ in events], dtype=np.int64))
