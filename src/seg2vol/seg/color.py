"""Convert DICOM-encoded CIELab display colors to RGB."""

from __future__ import annotations

from collections.abc import Callable, Sequence

import numpy as np

ColorConverter = Callable[[Sequence[int]], tuple[int, int, int]]
"""Maps a DICOM CIELab triple (0-65535 per channel) to RGB in 0-255."""

# D65 reference white
_WHITE = np.array([0.950456, 1.0, 1.088754])

_XYZ_TO_RGB = np.array([
    [3.2404542, -1.5371385, -0.4985314],
    [-0.9692660, 1.8760108, 0.0415560],
    [0.0556434, -0.2040259, 1.0572252],
])


def dicomlab_to_rgb(dicom_lab: Sequence[int]) -> tuple[int, int, int]:
    """Convert a RecommendedDisplayCIELabValue to an sRGB triple.

    DICOM scales L* from 0-100 and a*/b* from -128..127 into the
    unsigned 16-bit range.
    """
    values = np.asarray(dicom_lab, dtype=np.float64)
    if values.shape != (3,):
        raise ValueError(f"Expected 3 CIELab values, got {len(values)}")

    L = values[0] / 65535.0 * 100.0
    a = values[1] / 65535.0 * 255.0 - 128.0
    b = values[2] / 65535.0 * 255.0 - 128.0

    fy = (L + 16.0) / 116.0
    f = np.array([fy + a / 500.0, fy, fy - b / 200.0])
    delta = 6.0 / 29.0
    xyz = np.where(f > delta, f**3, 3 * delta**2 * (f - 4.0 / 29.0)) * _WHITE

    linear = _XYZ_TO_RGB @ xyz
    srgb = np.where(
        linear > 0.0031308,
        1.055 * np.power(np.clip(linear, 0.0031308, None), 1 / 2.4) - 0.055,
        12.92 * linear,
    )
    rgb = np.clip(srgb, 0.0, 1.0)
    return tuple(int(round(c * 255)) for c in rgb)
