from __future__ import annotations

import typer
from typing import Optional

from dchdigi.vis.debug import save_debug_png

app = typer.Typer(help="DCH digitizer visualization tools")

@app.command("debug-to-png")
def debug_to_png(
    h5_path: str = typer.Argument(..., help="Path to HDF5 file containing /debug histograms"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output PNG path (defaults to file.png)"),
):
    """Render the digitizer debug histograms (hDpw, hDww, hSz, hSxy) to a PNG."""
    try:
        out_png = save_debug_png(h5_path, out_png=out)
    except (OSError, KeyError) as exc:
        typer.echo(f"[dchdigi-viz] ERROR: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Wrote {out_png}")

if __name__ == "__main__":
    app()
