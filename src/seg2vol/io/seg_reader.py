"""SEG reader: parse raw DICOM bytes and decode them into segments."""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path

import pydicom
from pydicom.errors import InvalidDicomError

from seg2vol.core.errors import DecodeError
from seg2vol.core.types import Segment, SegLoadConfig
from seg2vol.seg.color import ColorConverter, dicomlab_to_rgb
from seg2vol.seg.functional_groups import collect_segments, correlate_functional_groups
from seg2vol.seg.geometry import geometry_from_functional_groups, sort_frames_by_position
from seg2vol.seg.pixel_data import check_buffer_order, reorder_frames, slice_pixel_data

logger = logging.getLogger(__name__)

SEG_SOP_CLASS_UID = "1.2.840.10008.5.1.4.1.1.66.4"


def parse_seg_bytes(data: bytes) -> pydicom.Dataset:
    """Parse a DICOM file byte stream.

    The returned dataset exposes every element by keyword, nested
    sequences as lists of datasets, and the file meta information as
    ``dataset.file_meta``.
    """
    try:
        return pydicom.dcmread(BytesIO(data))
    except (InvalidDicomError, EOFError, ValueError) as e:
        raise DecodeError(f"Cannot parse SEG instance: {e}") from e


def read_seg_file(path: Path) -> pydicom.Dataset:
    """Read a SEG from disk."""
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Path not found: {path}")
    return parse_seg_bytes(path.read_bytes())


def decode_segments(
    dataset: pydicom.Dataset,
    config: SegLoadConfig | None = None,
    color_converter: ColorConverter = dicomlab_to_rgb,
) -> dict[int, Segment]:
    """Decode every segment of a parsed SEG: frames, voxels and geometry.

    Returns segments keyed by segment number in ascending order. Any
    inconsistency raises DecodeError and nothing is returned.
    """
    config = config or SegLoadConfig()

    segmentation_type = getattr(dataset, "SegmentationType", "BINARY")
    if segmentation_type != "BINARY":
        raise DecodeError(f"Unsupported SegmentationType {segmentation_type}, only BINARY")

    rows = int(getattr(dataset, "Rows", 0))
    columns = int(getattr(dataset, "Columns", 0))
    if rows <= 0 or columns <= 0:
        raise DecodeError(f"Invalid frame size {rows}x{columns}")

    per_frame = getattr(dataset, "PerFrameFunctionalGroupsSequence", None)
    if per_frame is None:
        raise DecodeError("SEG has no PerFrameFunctionalGroupsSequence")
    n_frames = getattr(dataset, "NumberOfFrames", None)
    if n_frames is not None and int(n_frames) != len(per_frame):
        raise DecodeError(
            f"NumberOfFrames is {n_frames} but {len(per_frame)} per-frame groups are present"
        )

    pixel_data = getattr(dataset, "PixelData", None)
    if pixel_data is None:
        raise DecodeError("SEG has no PixelData")

    segments = collect_segments(dataset, color_converter)
    frame_indices = correlate_functional_groups(per_frame, segments)
    check_buffer_order(segments, frame_indices)
    slice_pixel_data(pixel_data, segments, rows, columns)

    for number, segment in segments.items():
        if not segment.functional_groups:
            logger.warning(f"Segment {number} has no frames, leaving it empty")
            continue
        if config.sort_frames:
            order = sort_frames_by_position(dataset, segment.functional_groups)
            if order != sorted(order):
                logger.debug(f"Re-sorted {len(order)} frames of segment {number} by position")
            reorder_frames(segment, order)
        segment.geometry = geometry_from_functional_groups(dataset, segment.functional_groups)

    logger.info(
        f"Decoded {len(segments)} segment(s) from {len(per_frame)} frames of {rows}x{columns}"
    )
    return segments


def load_seg_file(
    path: Path,
    config: SegLoadConfig | None = None,
) -> tuple[pydicom.Dataset, dict[int, Segment]]:
    """Read and decode a SEG file in one step."""
    dataset = read_seg_file(path)
    return dataset, decode_segments(dataset, config)
