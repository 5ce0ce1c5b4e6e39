from __future__ import annotations

from itertools import islice
from pathlib import Path
from typing import Iterable, List, Optional
import typer

import h5py
import numpy as np

try:
    from tqdm import tqdm  # optional, for progress bars
except Exception:
    tqdm = None  # noqa

from htccreco.config.load import load_config
from htccreco.config.schemas import Config
from htccreco.geometry.parameters import GeometryParameters, InvalidHitError
from htccreco.io.adapters import make_adapter, EventHits
from htccreco.io.cluster_store import (
    STATUS_INVALID_HIT,
    STATUS_OK,
    write_clusters,
    write_dgtz,
    write_init,
)
from htccreco.physics.cluster import ClusterRecord
from htccreco.physics.clustering import ClusteringDiagnostics, ClusteringEngine
from htccreco.sim.synth import synth_events
from htccreco.utils.logger import logger, set_diagnostics_level
from htccreco.vis.hdf import save_occupancy_png


def _iter_source_events(cfg: Config) -> Iterable[EventHits]:
    """
    Event source for the run: the configured adapter over cfg.io.input_path,
    windowed by [run].first_event / [run].max_events.
    """
    adapter = make_adapter(cfg.io)
    events = adapter.iter_events(str(cfg.io.input_path))
    stop = None
    if cfg.run.max_events is not None:
        stop = cfg.run.first_event + cfg.run.max_events
    return islice(events, cfg.run.first_event, stop)


def run_pipeline(
    cfg_path: str,
    *,
    max_events: Optional[int] = None,
    diagnostics_level: Optional[int] = None,
) -> Path:
    """
    Cluster every event of the configured hit store and write the cluster store.

    CLI flags (--max-events/--diagnostics) override the corresponding [run]
    fields when not None.

    Parameters
    ----------
    cfg_path : str
        Path to TOML configuration file.

    Returns
    -------
    Path to written HDF5 file.
    """
    overrides = {}
    if max_events is not None:
        overrides["max_events"] = max_events
    if diagnostics_level is not None:
        overrides["diagnostics_level"] = diagnostics_level
    cfg = load_config(cfg_path, {"run": overrides} if overrides else None)

    set_diagnostics_level(cfg.run.diagnostics_level)
    logger.info(f"[run] config = {cfg_path}")
    logger.info(f"[run] input={cfg.io.input_path} ({cfg.io.input_format}) -> output={cfg.io.output_path}")

    params = GeometryParameters.from_config(cfg)
    engine = ClusteringEngine(params)

    event_ids: List[int] = []
    records: List[List[ClusterRecord]] = []
    n_hits: List[int] = []
    status: List[int] = []
    totals = ClusteringDiagnostics()

    events = _iter_source_events(cfg)
    if cfg.run.progress and tqdm:
        events = tqdm(events, desc="HTCC", unit="event")

    for event_id, hits in events:
        event_ids.append(event_id)
        n_hits.append(len(hits))
        try:
            clusters = engine.process(hits)
        except InvalidHitError as exc:
            # geometry mapping defect: the event yields nothing, the run goes on
            logger.error(f"[cluster] event {event_id}: {exc}")
            records.append([])
            status.append(STATUS_INVALID_HIT)
            continue

        records.append([c.to_record() for c in clusters])
        status.append(STATUS_OK)
        d = engine.diagnostics
        totals.n_hits += d.n_hits
        totals.n_pool += d.n_pool
        totals.n_seeds += d.n_seeds
        totals.n_accepted += d.n_accepted
        totals.n_rejected += d.n_rejected
        totals.n_unclustered += d.n_unclustered
        totals.n_merged += d.n_merged
        logger.debug(f"[cluster] event {event_id}: {d}")

    n_failed = int(np.count_nonzero(np.asarray(status) == STATUS_INVALID_HIT))
    logger.info(
        f"[pipeline] {len(event_ids)} events, {totals.n_hits} hits -> "
        f"{totals.n_accepted} clusters ({totals.n_rejected} rejected, "
        f"{totals.n_unclustered} hits unclustered, {n_failed} failed events)"
    )

    # HDF5 output
    out_path = Path(cfg.io.output_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    f = write_init(str(out_path), cfg_path, params)
    try:
        write_clusters(f, event_ids, records, n_hits=n_hits, status=status)
    finally:
        f.close()

    # Optional PNG export
    if cfg.vis.export_png_on_write:
        try:
            out_png = save_occupancy_png(str(out_path), out_png=cfg.vis.out_png)
            logger.info(f"[pipeline] Wrote PNG {out_png}")
        except Exception as e:
            logger.warning(f"[pipeline] PNG export failed: {e!r}")

    return out_path


def simulate(out_path: str, n_events: int, seed: Optional[int] = None) -> Path:
    """Write a synthetic hit store in the dgtz HDF5 layout."""
    events = synth_events(n_events, rng=np.random.default_rng(seed))
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with h5py.File(out, "w") as f:
        write_dgtz(f, events)
    logger.info(f"[sim] Wrote {len(events)} events to {out}")
    return out


# ---------------------------------------------------------------------------
# Unified CLI entry point
# ---------------------------------------------------------------------------

app = typer.Typer(help="HTCC hit clustering (htccreco.pipelines.core)")


@app.command("run")
def main(
    cfg_path: str = typer.Argument(
        ...,
        help="Path to TOML config file",
    ),
    max_events: Optional[int] = typer.Option(
        None,
        "--max-events",
        "-n",
        help="Override [run].max_events",
    ),
    diagnostics: Optional[int] = typer.Option(
        None,
        "--diagnostics",
        "-d",
        help="Override [run].diagnostics_level (0, 1 or 2)",
    ),
):
    """
    Cluster all events of the configured hit store.
    """
    out_path = run_pipeline(
        cfg_path,
        max_events=max_events,
        diagnostics_level=diagnostics,
    )
    typer.echo(str(out_path))


@app.command("simulate")
def simulate_cmd(
    out_path: str = typer.Argument(..., help="Output HDF5 hit store"),
    n_events: int = typer.Option(100, "--events", "-n", help="Number of events"),
    seed: Optional[int] = typer.Option(None, "--seed", help="RNG seed"),
):
    """
    Write a synthetic HTCC hit store for smoke runs.
    """
    typer.echo(str(simulate(out_path, n_events, seed)))


if __name__ == "__main__":
    app()
