"""Group per-frame functional groups by the segment they belong to."""

from __future__ import annotations

import logging

from seg2vol.core.errors import DecodeError
from seg2vol.core.types import Segment
from seg2vol.seg.color import ColorConverter, dicomlab_to_rgb

logger = logging.getLogger(__name__)

_DEFAULT_RGBA = (255, 255, 255, 255)


def collect_segments(
    dataset,
    color_converter: ColorConverter = dicomlab_to_rgb,
) -> dict[int, Segment]:
    """Create an empty Segment for every item of the SegmentSequence.

    Keys are the (1-based, possibly sparse) SegmentNumber values, in
    ascending order.
    """
    sequence = getattr(dataset, "SegmentSequence", None)
    if not sequence:
        raise DecodeError("SEG has no SegmentSequence")

    rows = int(getattr(dataset, "Rows", 0))
    columns = int(getattr(dataset, "Columns", 0))

    segments: dict[int, Segment] = {}
    for index, item in enumerate(sequence):
        number = getattr(item, "SegmentNumber", None)
        if number is None:
            raise DecodeError(f"SegmentSequence item {index + 1} has no SegmentNumber")
        number = int(number)
        if number in segments:
            raise DecodeError(f"Segment number {number} is declared twice")

        lab = getattr(item, "RecommendedDisplayCIELabValue", None)
        if lab is not None:
            rgba = (*color_converter(lab), 255)
        else:
            logger.debug(f"Segment {number} has no display color, using white")
            rgba = _DEFAULT_RGBA

        segments[number] = Segment(
            segment_number=number,
            color=rgba,
            label=str(getattr(item, "SegmentLabel", "")),
            description=str(getattr(item, "SegmentDescription", "")),
            algorithm_type=str(getattr(item, "SegmentAlgorithmType", "")),
            rows=rows,
            columns=columns,
        )

    return dict(sorted(segments.items()))


def correlate_functional_groups(
    per_frame_groups,
    segments: dict[int, Segment],
) -> dict[int, list[int]]:
    """Append each per-frame functional group to its segment.

    Frame order is preserved; nothing is sorted here. Returns the original
    frame indices owned by each segment, which the pixel slicer uses to
    check the buffer layout.
    """
    frame_indices: dict[int, list[int]] = {number: [] for number in segments}

    for index, group in enumerate(per_frame_groups):
        identification = getattr(group, "SegmentIdentificationSequence", None)
        if not identification:
            raise DecodeError(f"Frame {index + 1} has no SegmentIdentificationSequence")
        number = getattr(identification[0], "ReferencedSegmentNumber", None)
        if number is None:
            raise DecodeError(f"Frame {index + 1} has no ReferencedSegmentNumber")
        number = int(number)
        if number not in segments:
            raise DecodeError(
                f"Frame {index + 1} references segment {number}, "
                f"which is not declared in the SegmentSequence"
            )
        segments[number].functional_groups.append(group)
        frame_indices[number].append(index)

    return frame_indices
