"""Export decoded segments to NumPy archives."""

from __future__ import annotations

from pathlib import Path

import numpy as np

from seg2vol.core.types import Segment


def export_npz(segments: dict[int, Segment], output_path: Path) -> Path:
    """Write each segment's labelmap, color and geometry to a compressed .npz.

    Arrays are named ``segment_<number>_<field>``; segments without frames
    only get their color.
    """
    output_path = Path(output_path)
    if output_path.suffix != ".npz":
        output_path = output_path.with_suffix(".npz")
    output_path.parent.mkdir(parents=True, exist_ok=True)

    arrays: dict[str, np.ndarray] = {}
    for number, segment in segments.items():
        prefix = f"segment_{number}"
        arrays[f"{prefix}_color"] = np.asarray(segment.color, dtype=np.uint8)
        if segment.geometry is None:
            continue
        geometry = segment.geometry
        arrays[f"{prefix}_labelmap"] = segment.labelmap
        arrays[f"{prefix}_origin"] = np.asarray(geometry.origin)
        arrays[f"{prefix}_spacing"] = np.asarray(geometry.spacing)
        arrays[f"{prefix}_direction"] = geometry.direction_matrix
        arrays[f"{prefix}_dimensions"] = np.asarray(geometry.dimensions, dtype=np.int32)

    np.savez_compressed(output_path, **arrays)
    return output_path
