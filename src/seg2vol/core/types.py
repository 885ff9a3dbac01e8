"""Core data types for the seg2vol pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import numpy as np


@dataclass(frozen=True)
class Geometry:
    """Sampling grid of one segment in the DICOM patient coordinate system."""

    spacing: tuple[float, float, float]  # column, row, inter-slice (mm)
    dimensions: tuple[int, int, int]  # columns, rows, frames
    origin: tuple[float, float, float]  # first frame ImagePositionPatient
    direction: tuple[float, ...]  # 9 values: column step, row step, slice step
    plane_normal: tuple[float, float, float]
    slice_step: tuple[float, float, float]
    spacing_from_thickness: bool = False  # SliceThickness stood in for SpacingBetweenSlices
    slice_step_fallback: bool = False  # slice_step copied from plane_normal

    @property
    def direction_matrix(self) -> np.ndarray:
        """Return the direction cosines as a 3x3 array, one axis per row."""
        return np.asarray(self.direction, dtype=np.float64).reshape(3, 3)


@dataclass
class Segment:
    """One labeled region of a SEG, filled in during decode."""

    segment_number: int
    color: tuple[int, int, int, int]  # RGBA, 0-255
    label: str = ""
    description: str = ""
    algorithm_type: str = ""
    functional_groups: list = field(default_factory=list)  # per-frame datasets, frame order
    rows: int = 0
    columns: int = 0
    offset: int | None = None  # byte offset into the packed PixelData
    size: int | None = None  # packed byte length
    pixel_data: np.ndarray | None = None  # uint8 [frames * rows * columns], values 0/1
    geometry: Geometry | None = None

    @property
    def number_of_frames(self) -> int:
        return len(self.functional_groups)

    @property
    def first_image_position(self) -> tuple[float, ...] | None:
        if not self.functional_groups:
            return None
        position = self.functional_groups[0].PlanePositionSequence[0].ImagePositionPatient
        return tuple(float(x) for x in position)

    @property
    def labelmap(self) -> np.ndarray:
        """Return the voxels as uint8 [frames, rows, columns]."""
        n_frames = self.number_of_frames
        if self.pixel_data is None or n_frames == 0:
            return np.zeros((0, self.rows, self.columns), dtype=np.uint8)
        return self.pixel_data.reshape(n_frames, self.rows, self.columns)


class LoadState(Enum):
    UNLOADED = "unloaded"
    DECODING = "decoding"
    WAITING_FOR_VOLUME = "waiting_for_volume"
    READY = "ready"


@dataclass
class SegLoadConfig:
    """Configuration for decoding and binding (from callers or CLI flags)."""

    sort_frames: bool = True
    wait_warning_seconds: float | None = 30.0
