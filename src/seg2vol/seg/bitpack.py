"""Unpack 1-bit-per-voxel SEG pixel data into one byte per voxel."""

from __future__ import annotations

import math

import numpy as np

from seg2vol.core.errors import DecodeError


def frame_size(rows: int, columns: int) -> int:
    """Return the packed byte size of one binary frame."""
    return math.ceil(rows * columns / 8)


def unpack_bits(packed: bytes | bytearray | memoryview | np.ndarray) -> np.ndarray:
    """Expand a packed bitstream to uint8 values of 0 or 1.

    DICOM packs binary pixels least significant bit first, so the first
    voxel of a byte is bit 0. The output always has 8 values per input
    byte; trailing padding bits are unpacked like any other bit.
    """
    try:
        data = np.frombuffer(packed, dtype=np.uint8)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Cannot unpack pixel data: {e}") from e
    return np.unpackbits(data, bitorder="little")


def unpack_frames(packed: bytes, n_frames: int, rows: int, columns: int) -> np.ndarray:
    """Unpack *n_frames* binary frames into a uint8 [frames, rows, columns] array."""
    size = frame_size(rows, columns)
    if len(packed) != n_frames * size:
        raise DecodeError(
            f"Packed buffer holds {len(packed)} bytes, expected "
            f"{n_frames} frames x {size} bytes"
        )
    bits = unpack_bits(packed).reshape(n_frames, size * 8)
    return bits[:, : rows * columns].reshape(n_frames, rows, columns)
