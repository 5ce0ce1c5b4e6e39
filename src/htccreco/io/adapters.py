"""
htccreco.io.adapters

Readers that turn an external HTCC hit store into per-event HitTables for
the clustering engine.

Design goals
------------
- Keep I/O concerns isolated from clustering.
- Stream events one at a time; HitTables are built per event.
- A missing or malformed store is reported as "no data" (empty HitTables,
  with a warning), never as a crash of the whole run.

Entry points
------------
- class HDF5DgtzAdapter: ragged "dgtz bank" layout written by
  htccreco.io.cluster_store.write_dgtz().
- class CSVAdapter: long table, one row per hit, grouped by event.
- function make_adapter(io_cfg): factory from the [io] TOML section.

Config (example)
----------------
[io]
input_path = "data/run42.h5"
input_format = "hdf5_dgtz"     # "hdf5_dgtz" | "csv"

[io.adapter]
group = "/htcc"                # HDF5 only
event_column = "event"         # CSV only
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Iterator, Tuple

import h5py
import numpy as np
import pandas as pd

from htccreco.config.schemas import IOCfg
from htccreco.physics.hits import HitTable
from htccreco.utils.logger import logger

HIT_COLUMNS = ("hitn", "sector", "ring", "half", "nphe", "time")

EventHits = Tuple[int, HitTable]


# ---------------------------------------------------------------------------
# Base adapter API
# ---------------------------------------------------------------------------

class BaseAdapter:
    """
    Abstract adapter interface.

    iter_events(path) yields (event_id, HitTable) in store order.
    """

    def iter_events(self, path: str) -> Iterator[EventHits]:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# HDF5 adapter
# ---------------------------------------------------------------------------

class HDF5DgtzAdapter(BaseAdapter):
    """
    Read the ragged HDF5 hit layout:

      {group}/dgtz/event_ptr   (N_events+1,) int64, CSR pointers into the hit columns
      {group}/dgtz/hitn, sector, ring, half, nphe   (M,) int
      {group}/dgtz/time        (M,) float
      {group}/events/event_id  (N_events,) int64   optional, defaults to 0..N-1
    """

    def __init__(self, group: str = "/htcc") -> None:
        self.group = group.rstrip("/") or "/"

    def iter_events(self, path: str) -> Iterator[EventHits]:
        try:
            f = h5py.File(path, "r")
        except OSError as exc:
            logger.warning(f"[io] cannot open hit store {path}: {exc}")
            return

        with f:
            dgtz_key = f"{self.group}/dgtz"
            if dgtz_key not in f or "event_ptr" not in f[dgtz_key]:
                logger.warning(f"[io] {path}: no {dgtz_key}/event_ptr, nothing to read")
                return
            g = f[dgtz_key]
            ptr = np.asarray(g["event_ptr"][...], dtype=np.int64)
            n_events = max(len(ptr) - 1, 0)

            ev_key = f"{self.group}/events/event_id"
            if ev_key in f:
                event_ids = np.asarray(f[ev_key][...], dtype=np.int64)
                if len(event_ids) != n_events:
                    logger.warning(
                        f"[io] {path}: {len(event_ids)} event ids for {n_events} events, nothing to read"
                    )
                    return
            else:
                event_ids = np.arange(n_events, dtype=np.int64)

            missing = [c for c in HIT_COLUMNS if c not in g and c != "hitn"]
            if missing:
                logger.warning(f"[io] {path}: dgtz columns {missing} missing; events read as empty")
                for i in range(n_events):
                    yield int(event_ids[i]), HitTable.empty()
                return

            cols = {c: g[c][...] for c in HIT_COLUMNS if c in g}
            for i in range(n_events):
                a, b = int(ptr[i]), int(ptr[i + 1])
                yield int(event_ids[i]), HitTable(
                    ring=cols["ring"][a:b],
                    sector=cols["sector"][a:b],
                    half=cols["half"][a:b],
                    nphe=cols["nphe"][a:b],
                    time=cols["time"][a:b],
                    hitn=cols["hitn"][a:b] if "hitn" in cols else None,
                )


# ---------------------------------------------------------------------------
# CSV adapter
# ---------------------------------------------------------------------------

class CSVAdapter(BaseAdapter):
    """
    Read a long hit table (CSV), one row per hit:

        event,hitn,sector,ring,half,nphe,time

    Events keep the order of their first appearance; hits keep file order
    inside each event. 'hitn' is optional.
    """

    def __init__(self, event_column: str = "event") -> None:
        self.event_column = event_column

    def iter_events(self, path: str) -> Iterator[EventHits]:
        try:
            df = pd.read_csv(Path(path))
        except (OSError, pd.errors.EmptyDataError, pd.errors.ParserError) as exc:
            logger.warning(f"[io] cannot read hit table {path}: {exc}")
            return
        required = [self.event_column, "sector", "ring", "half", "nphe", "time"]
        missing = [c for c in required if c not in df.columns]
        if missing:
            logger.warning(f"[io] {path}: columns {missing} missing, nothing to read")
            return

        checked = required + (["hitn"] if "hitn" in df.columns else [])
        incomplete = df[checked].isna().any(axis=1)
        if incomplete.any():
            logger.warning(f"[io] {path}: dropping {int(incomplete.sum())} rows with empty hit fields")
            df = df[~incomplete]

        for event_id, grp in df.groupby(self.event_column, sort=False):
            yield int(event_id), HitTable(
                ring=grp["ring"].to_numpy(),
                sector=grp["sector"].to_numpy(),
                half=grp["half"].to_numpy(),
                nphe=grp["nphe"].to_numpy(),
                time=grp["time"].to_numpy(dtype=float),
                hitn=grp["hitn"].to_numpy() if "hitn" in grp.columns else None,
            )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def make_adapter(io_cfg: IOCfg | Dict[str, Any]) -> BaseAdapter:
    """
    Create an adapter from the [io] section (IOCfg or plain dict).

    input_format: "hdf5_dgtz" | "csv"
    adapter: optional keyword options passed to the adapter
    """
    if isinstance(io_cfg, IOCfg):
        fmt = io_cfg.input_format
        opts: Dict[str, Any] = dict(io_cfg.adapter)
    else:
        fmt = (io_cfg.get("input_format") or "hdf5_dgtz").lower()
        opts = dict(io_cfg.get("adapter") or {})

    if fmt == "hdf5_dgtz":
        return HDF5DgtzAdapter(group=opts.get("group", "/htcc"))
    if fmt == "csv":
        return CSVAdapter(event_column=opts.get("event_column", "event"))

    raise ValueError(f"Unknown input format: {fmt}")
