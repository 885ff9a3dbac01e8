"""seg2vol: decode DICOM SEG objects into displayable 3D label volumes."""

__version__ = "0.1.0"
