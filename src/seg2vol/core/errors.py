"""Error taxonomy for SEG decoding and display-set loading."""

from __future__ import annotations


class SegError(Exception):
    """Base class for all seg2vol failures."""


class MissingReferenceError(SegError):
    """The SEG cannot be placed: no referenced series, or it is not registered yet."""


class DecodeError(SegError, ValueError):
    """The SEG instance could not be decoded into segments."""


class LoadInProgressError(SegError):
    """``load`` was called again while the first call is still decoding."""


class UnboundedWaitWarning(RuntimeWarning):
    """The referenced volume has not appeared; the SEG is still waiting to bind."""
