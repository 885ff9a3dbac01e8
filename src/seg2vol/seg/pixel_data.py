"""Slice the concatenated SEG PixelData into per-segment voxel arrays."""

from __future__ import annotations

import logging

import numpy as np

from seg2vol.core.errors import DecodeError
from seg2vol.core.types import Segment
from seg2vol.seg.bitpack import frame_size, unpack_frames

logger = logging.getLogger(__name__)


def check_buffer_order(segments: dict[int, Segment], frame_indices: dict[int, list[int]]) -> None:
    """Verify that every segment's frames form one contiguous run.

    Runs must follow each other in ascending segment number, which is the
    order the packed buffer is sliced in.
    """
    cursor = 0
    for number in sorted(segments):
        indices = frame_indices.get(number, [])
        expected = list(range(cursor, cursor + len(indices)))
        if indices != expected:
            raise DecodeError(
                f"Frames of segment {number} are not stored contiguously "
                f"after the preceding segment (frames {[i + 1 for i in indices]})"
            )
        cursor += len(indices)


def slice_pixel_data(
    pixel_data: bytes,
    segments: dict[int, Segment],
    rows: int,
    columns: int,
) -> dict[int, Segment]:
    """Assign offset, size and unpacked voxels to each segment.

    Offsets are running totals in ascending segment number order, so
    segment k+1 starts where segment k ends.
    """
    size_per_frame = frame_size(rows, columns)
    needed = sum(s.number_of_frames for s in segments.values()) * size_per_frame
    if len(pixel_data) < needed:
        raise DecodeError(
            f"PixelData holds {len(pixel_data)} bytes, {needed} needed for "
            f"{needed // max(size_per_frame, 1)} frames of {rows}x{columns}"
        )
    if len(pixel_data) > needed:
        logger.debug(f"Ignoring {len(pixel_data) - needed} trailing PixelData bytes")

    buffer = memoryview(pixel_data)
    next_offset = 0
    for number in sorted(segments):
        segment = segments[number]
        segment.size = segment.number_of_frames * size_per_frame
        segment.offset = next_offset
        next_offset = segment.offset + segment.size
        if segment.size:
            frames = unpack_frames(
                buffer[segment.offset:next_offset], segment.number_of_frames, rows, columns
            )
            segment.pixel_data = frames.reshape(-1)
        else:
            segment.pixel_data = np.zeros(0, dtype=np.uint8)

    return segments


def reorder_frames(segment: Segment, order: list[int]) -> None:
    """Permute a segment's functional groups and voxel frames together."""
    if order == list(range(len(order))):
        return
    segment.functional_groups = [segment.functional_groups[i] for i in order]
    if segment.pixel_data is not None and segment.pixel_data.size:
        frames = segment.pixel_data.reshape(len(order), -1)
        segment.pixel_data = frames[order].reshape(-1)
