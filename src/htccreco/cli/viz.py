from __future__ import annotations

import typer
from typing import Optional

from htccreco.vis.hdf import save_occupancy_png

app = typer.Typer(help="HTCC cluster visualization tools")

@app.command("h5-to-png")
def h5_to_png(
    h5_path: str = typer.Argument(..., help="Path to a cluster HDF5 file written by htcc-reco"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output PNG path (defaults to file.png)"),
):
    """Render the nphe-weighted theta/phi cluster occupancy to a PNG."""
    out_png = save_occupancy_png(h5_path, out_png=out)
    typer.echo(f"Wrote {out_png}")

if __name__ == "__main__":
    app()
