"""Shared test fixtures: synthetic DICOM SEG data."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pydicom
import pytest
from pydicom.dataset import Dataset, FileDataset
from pydicom.sequence import Sequence
from pydicom.uid import ExplicitVRLittleEndian, generate_uid

from seg2vol.io.seg_reader import SEG_SOP_CLASS_UID
from seg2vol.viewer.services import (
    EventBus,
    InMemoryDisplaySetRegistry,
    InMemoryVolumeCache,
    Services,
)

REFERENCED_SERIES_UID = "1.2.826.0.1.3680043.8.498.1"
REFERENCED_DISPLAY_SET_UID = "ref-display-set-1"

# Two segments, two axial frames each
DEFAULT_FRAMES = {
    1: [(0.0, 0.0, 0.0), (0.0, 0.0, 2.0)],
    2: [(0.0, 0.0, 0.0), (0.0, 0.0, 2.0)],
}


def default_masks(segment_frames: dict, rows: int, cols: int) -> dict[int, np.ndarray]:
    """A filled rectangle per frame, shifted by segment number and frame index."""
    masks = {}
    for number, positions in segment_frames.items():
        mask = np.zeros((len(positions), rows, cols), dtype=np.uint8)
        for i in range(len(positions)):
            top = min(number + i, rows - 1)
            mask[i, top:, : max(cols // 2, 1)] = 1
        masks[number] = mask
    return masks


def pack_frames(mask: np.ndarray) -> bytes:
    """Pack each frame to whole bytes, LSB first."""
    return b"".join(
        np.packbits(frame.reshape(-1), bitorder="little").tobytes() for frame in mask
    )


def make_seg_dataset(
    rows: int = 8,
    cols: int = 8,
    segment_frames: dict | None = None,
    masks: dict[int, np.ndarray] | None = None,
    pixel_spacing: tuple[float, float] = (0.5, 0.6),
    spacing_between_slices: float | None = 2.0,
    slice_thickness: float | None = None,
    orientation: tuple[float, ...] = (1.0, 0.0, 0.0, 0.0, 1.0, 0.0),
    referenced_series_uid: str | None = REFERENCED_SERIES_UID,
    frame_order: list[tuple[int, int]] | None = None,
) -> FileDataset:
    """Build an in-memory binary SEG.

    *frame_order* lists (segment number, frame index) pairs in stored
    order; by default frames are grouped by ascending segment number.
    """
    segment_frames = segment_frames or DEFAULT_FRAMES
    masks = masks if masks is not None else default_masks(segment_frames, rows, cols)
    if frame_order is None:
        frame_order = [
            (number, i)
            for number in sorted(segment_frames)
            for i in range(len(segment_frames[number]))
        ]

    file_meta = pydicom.Dataset()
    file_meta.MediaStorageSOPClassUID = SEG_SOP_CLASS_UID
    file_meta.MediaStorageSOPInstanceUID = generate_uid()
    file_meta.TransferSyntaxUID = ExplicitVRLittleEndian

    ds = FileDataset("seg.dcm", {}, file_meta=file_meta, preamble=b"\x00" * 128)
    ds.SOPClassUID = SEG_SOP_CLASS_UID
    ds.SOPInstanceUID = file_meta.MediaStorageSOPInstanceUID
    ds.StudyInstanceUID = generate_uid()
    ds.SeriesInstanceUID = generate_uid()
    ds.SeriesDescription = "Synthetic SEG"
    ds.SeriesNumber = 300
    ds.SeriesDate = "20240101"
    ds.Modality = "SEG"
    ds.SegmentationType = "BINARY"
    ds.Rows = rows
    ds.Columns = cols
    ds.SamplesPerPixel = 1
    ds.PhotometricInterpretation = "MONOCHROME2"
    ds.BitsAllocated = 1
    ds.BitsStored = 1
    ds.HighBit = 0
    ds.PixelRepresentation = 0
    ds.NumberOfFrames = len(frame_order)

    if referenced_series_uid is not None:
        instance = Dataset()
        instance.ReferencedSOPClassUID = "1.2.840.10008.5.1.4.1.1.2"
        instance.ReferencedSOPInstanceUID = generate_uid()
        series = Dataset()
        series.SeriesInstanceUID = referenced_series_uid
        series.ReferencedInstanceSequence = Sequence([instance])
        ds.ReferencedSeriesSequence = Sequence([series])

    segments = []
    for number in sorted(segment_frames):
        item = Dataset()
        item.SegmentNumber = number
        item.SegmentLabel = f"Segment {number}"
        item.SegmentAlgorithmType = "MANUAL"
        item.RecommendedDisplayCIELabValue = [65535, 32896, 32896]
        segments.append(item)
    ds.SegmentSequence = Sequence(segments)

    measures = Dataset()
    measures.PixelSpacing = list(pixel_spacing)
    if spacing_between_slices is not None:
        measures.SpacingBetweenSlices = spacing_between_slices
    if slice_thickness is not None:
        measures.SliceThickness = slice_thickness
    plane_orientation = Dataset()
    plane_orientation.ImageOrientationPatient = list(orientation)
    shared = Dataset()
    shared.PixelMeasuresSequence = Sequence([measures])
    shared.PlaneOrientationSequence = Sequence([plane_orientation])
    ds.SharedFunctionalGroupsSequence = Sequence([shared])

    per_frame = []
    pixel_chunks = []
    for number, index in frame_order:
        position = Dataset()
        position.ImagePositionPatient = list(segment_frames[number][index])
        identification = Dataset()
        identification.ReferencedSegmentNumber = number
        group = Dataset()
        group.PlanePositionSequence = Sequence([position])
        group.SegmentIdentificationSequence = Sequence([identification])
        per_frame.append(group)
        pixel_chunks.append(pack_frames(masks[number][index : index + 1]))
    ds.PerFrameFunctionalGroupsSequence = Sequence(per_frame)
    ds.PixelData = b"".join(pixel_chunks)

    return ds


def seg_to_bytes(ds: FileDataset) -> bytes:
    buffer = BytesIO()
    ds.save_as(buffer)
    return buffer.getvalue()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def seg_dataset() -> FileDataset:
    return make_seg_dataset()


@pytest.fixture
def seg_bytes(seg_dataset) -> bytes:
    return seg_to_bytes(seg_dataset)


@pytest.fixture
def seg_file(tmp_path, seg_bytes) -> Path:
    path = tmp_path / "seg.dcm"
    path.write_bytes(seg_bytes)
    return path


@pytest.fixture
def reference_display_set() -> SimpleNamespace:
    return SimpleNamespace(
        display_set_instance_uid=REFERENCED_DISPLAY_SET_UID,
        series_instance_uid=REFERENCED_SERIES_UID,
    )


@pytest.fixture
def services(seg_bytes) -> Services:
    """In-memory viewer services with a faked byte loader and segmentation service."""
    event_bus = EventBus()
    byte_loader = MagicMock()
    byte_loader.fetch = AsyncMock(return_value=seg_bytes)
    segmentation_service = MagicMock()
    segmentation_service.create_segmentation_from_descriptor = AsyncMock(return_value="seg-1")
    return Services(
        byte_loader=byte_loader,
        volume_cache=InMemoryVolumeCache(event_bus),
        event_bus=event_bus,
        segmentation_service=segmentation_service,
        display_set_registry=InMemoryDisplaySetRegistry(event_bus),
    )


@pytest.fixture
def make_seg():
    """Factory for synthetic SEG datasets with custom geometry or layout."""
    return make_seg_dataset


@pytest.fixture
def to_bytes():
    return seg_to_bytes
