"""Derive a segment's 3D sampling grid from its frame functional groups.

Spacing, orientation and per-frame positions follow the DICOM patient
coordinate system. The through-slice axis stored in ``direction`` is the
unit vector from the first to the last frame position rather than the
cross product of the in-plane axes; both are kept on the Geometry so
consumers can tell them apart on oblique or sheared stacks.
"""

from __future__ import annotations

import logging

import numpy as np

from seg2vol.core.errors import DecodeError
from seg2vol.core.types import Geometry

logger = logging.getLogger(__name__)

_EPSILON = 1e-6


def functional_group_item(dataset, frames: list, name: str):
    """Return the first item of a functional group macro.

    Shared functional groups take precedence; a SEG that stores the macro
    per frame falls back to the first of *frames*.
    """
    shared = getattr(dataset, "SharedFunctionalGroupsSequence", None)
    if shared:
        sequence = getattr(shared[0], name, None)
        if sequence:
            return sequence[0]
    if frames:
        sequence = getattr(frames[0], name, None)
        if sequence:
            return sequence[0]
    raise DecodeError(f"SEG has no {name} in its functional groups")


def frame_position(frame) -> np.ndarray:
    """ImagePositionPatient of one per-frame functional group."""
    position = getattr(frame, "PlanePositionSequence", None)
    if not position or getattr(position[0], "ImagePositionPatient", None) is None:
        raise DecodeError("Frame has no PlanePositionSequence/ImagePositionPatient")
    return np.asarray([float(x) for x in position[0].ImagePositionPatient])


def image_orientation(dataset, frames: list) -> tuple[np.ndarray, np.ndarray]:
    """Split ImageOrientationPatient into its column-step and row-step vectors."""
    orientation = functional_group_item(dataset, frames, "PlaneOrientationSequence")
    values = getattr(orientation, "ImageOrientationPatient", None)
    if values is None or len(values) != 6:
        raise DecodeError("ImageOrientationPatient must hold 6 direction cosines")
    values = np.asarray([float(x) for x in values])
    return values[:3], values[3:]


def sort_frames_by_position(dataset, frames: list) -> list[int]:
    """Return the permutation that orders *frames* along the plane normal.

    The sort is stable, so frames that already ascend keep their order.
    """
    if len(frames) < 2:
        return list(range(len(frames)))
    column_step, row_step = image_orientation(dataset, frames)
    normal = np.cross(column_step, row_step)
    distances = [float(np.dot(frame_position(f), normal)) for f in frames]
    return sorted(range(len(frames)), key=lambda i: distances[i])


def _inter_slice_spacing(pixel_measures) -> tuple[float, bool]:
    spacing = getattr(pixel_measures, "SpacingBetweenSlices", None)
    if spacing:
        return float(spacing), False

    thickness = getattr(pixel_measures, "SliceThickness", None)
    if thickness:
        logger.warning(
            f"SpacingBetweenSlices missing, using SliceThickness {thickness} "
            f"as an approximation"
        )
        return float(thickness), True

    raise DecodeError("PixelMeasuresSequence has neither SpacingBetweenSlices nor SliceThickness")


def geometry_from_functional_groups(dataset, frames: list) -> Geometry:
    """Build the Geometry of one segment from its ordered per-frame groups.

    *frames* must hold at least one frame; the first and last are taken as
    the extremes of the stack.
    """
    if not frames:
        raise DecodeError("Cannot derive geometry for a segment without frames")

    pixel_measures = functional_group_item(dataset, frames, "PixelMeasuresSequence")
    pixel_spacing = getattr(pixel_measures, "PixelSpacing", None)
    if pixel_spacing is None or len(pixel_spacing) != 2:
        raise DecodeError("PixelMeasuresSequence has no valid PixelSpacing")

    # NB: DICOM PixelSpacing is row spacing then column spacing
    slice_spacing, from_thickness = _inter_slice_spacing(pixel_measures)
    spacing = (float(pixel_spacing[1]), float(pixel_spacing[0]), slice_spacing)

    dimensions = (int(dataset.Columns), int(dataset.Rows), len(frames))

    column_step, row_step = image_orientation(dataset, frames)
    plane_normal = np.cross(column_step, row_step)

    first = frame_position(frames[0])
    last = frame_position(frames[-1])
    step = last - first
    length = float(np.linalg.norm(step))

    fallback = False
    if len(frames) == 1 or length < _EPSILON:
        logger.warning(
            f"Slice step undefined for a {len(frames)}-frame stack, "
            f"using the plane normal"
        )
        slice_step = plane_normal
        fallback = True
    else:
        slice_step = step / length

    direction = np.concatenate([column_step, row_step, slice_step])

    return Geometry(
        spacing=spacing,
        dimensions=dimensions,
        origin=tuple(float(x) for x in first),
        direction=tuple(float(x) for x in direction),
        plane_normal=tuple(float(x) for x in plane_normal),
        slice_step=tuple(float(x) for x in slice_step),
        spacing_from_thickness=from_thickness,
        slice_step_fallback=fallback,
    )
