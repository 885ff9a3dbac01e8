"""SOP class handler that turns DICOM SEG series into SEG display sets."""

from __future__ import annotations

from seg2vol.core.types import SegLoadConfig
from seg2vol.io.seg_reader import SEG_SOP_CLASS_UID
from seg2vol.viewer.display_set import SegDisplaySet, get_display_sets_from_series
from seg2vol.viewer.registry import register_handler
from seg2vol.viewer.services import Services


@register_handler("dicom-seg")
class DicomSegHandler:
    sop_class_uids = (SEG_SOP_CLASS_UID,)

    def __init__(self, services: Services, config: SegLoadConfig | None = None):
        self.services = services
        self.config = config

    def get_display_sets_from_series(self, instances: list) -> list[SegDisplaySet]:
        return get_display_sets_from_series(instances, self.services, self.config)
