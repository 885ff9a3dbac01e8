"""CLI entry point for seg2vol."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from seg2vol import __version__
from seg2vol.core.types import Segment, SegLoadConfig

app = typer.Typer(
    name="seg2vol",
    help="Decode DICOM Segmentation objects into 3D label volumes.",
    add_completion=False,
)

# Reconfigure stdout/stderr to UTF-8 to avoid Windows charmap encoding errors
# with Rich's box-drawing characters.
try:
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")
except (AttributeError, OSError):
    pass

console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger("seg2vol")


def version_callback(value: bool):
    if value:
        console.print(f"seg2vol {__version__}")
        raise typer.Exit()


def _format_vector(values) -> str:
    return "(" + ", ".join(f"{v:.2f}" for v in values) + ")"


def print_segment_table(segments: dict[int, Segment], input_path: Path) -> None:
    """Display a Rich table of decoded segments."""
    table = Table(title=f"Segments in {input_path.name}")
    table.add_column("#", style="bold", justify="right")
    table.add_column("Label", max_width=30)
    table.add_column("Color")
    table.add_column("Frames", justify="right")
    table.add_column("Offset", justify="right")
    table.add_column("Bytes", justify="right")
    table.add_column("Origin", style="cyan")
    table.add_column("Spacing", style="green")

    for number, segment in segments.items():
        r, g, b, _ = segment.color
        swatch = f"[rgb({r},{g},{b})]■[/] {r},{g},{b}"
        geometry = segment.geometry
        table.add_row(
            str(number),
            segment.label or "(no label)",
            swatch,
            str(segment.number_of_frames),
            str(segment.offset),
            str(segment.size),
            _format_vector(geometry.origin) if geometry else "-",
            _format_vector(geometry.spacing) if geometry else "-",
        )

    console.print(table)

    flagged = [
        n for n, s in segments.items()
        if s.geometry and (s.geometry.spacing_from_thickness or s.geometry.slice_step_fallback)
    ]
    if flagged:
        console.print(
            f"[yellow]Approximated geometry for segment(s) {', '.join(map(str, flagged))}[/yellow]"
        )


@app.command()
def main(
    input_path: Path = typer.Argument(
        ...,
        help="Path to a DICOM SEG file.",
        exists=True,
    ),
    output: Path = typer.Option(
        None,
        "-o",
        "--output",
        help="Write labelmaps and geometry to this .npz file.",
    ),
    no_sort: bool = typer.Option(
        False,
        "--no-sort",
        help="Keep frames in stored order instead of sorting them by position.",
    ),
    verbose: bool = typer.Option(
        False,
        "-v",
        "--verbose",
        help="Show detailed processing information.",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
):
    """Decode a DICOM SEG and show its segments."""
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(levelname)s: %(message)s")

    config = SegLoadConfig(sort_frames=not no_sort)

    try:
        from seg2vol.io.seg_reader import load_seg_file

        _, segments = load_seg_file(input_path, config)
        print_segment_table(segments, input_path)

        if output is not None:
            from seg2vol.io.exporters import export_npz

            written = export_npz(segments, output)
            console.print(f"Wrote {len(segments)} segment(s) to [bold]{written}[/bold]")
    except ValueError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)
    except FileNotFoundError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=4)
    except Exception as e:
        err_console.print(f"[red]Error: {e}[/red]")
        if verbose:
            import traceback
            err_console.print(traceback.format_exc())
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
