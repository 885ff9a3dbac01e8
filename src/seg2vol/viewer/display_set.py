"""SEG display sets: cheap metadata descriptors that decode on demand."""

from __future__ import annotations

import logging
import uuid

from seg2vol.core.errors import MissingReferenceError
from seg2vol.core.types import LoadState, Segment, SegLoadConfig
from seg2vol.viewer.loader import SegLoader
from seg2vol.viewer.services import Services

logger = logging.getLogger(__name__)

SOP_CLASS_HANDLER_ID = "seg2vol.sopClassHandlerModule.dicom-seg"

_TRANSITIONS = {
    LoadState.UNLOADED: {LoadState.DECODING},
    LoadState.DECODING: {LoadState.UNLOADED, LoadState.WAITING_FOR_VOLUME},
    LoadState.WAITING_FOR_VOLUME: {LoadState.READY},
    LoadState.READY: set(),
}


class SegDisplaySet:
    """Lazy descriptor of one SEG instance.

    Built from instance metadata alone; ``load`` fetches and decodes the
    pixel data and binds the segments to the referenced volume.
    """

    modality = "SEG"
    is_derived_display_set = True

    def __init__(
        self,
        instance,
        services: Services,
        config: SegLoadConfig | None = None,
    ) -> None:
        referenced_series = getattr(instance, "ReferencedSeriesSequence", None)
        if not referenced_series:
            raise MissingReferenceError("ReferencedSeriesSequence is missing for the SEG")

        self.instance = instance
        self.display_set_instance_uid = str(uuid.uuid4())
        self.sop_class_handler_id = SOP_CLASS_HANDLER_ID
        self.sop_instance_uid = str(getattr(instance, "SOPInstanceUID", ""))
        self.sop_class_uid = str(getattr(instance, "SOPClassUID", ""))
        self.series_instance_uid = str(getattr(instance, "SeriesInstanceUID", ""))
        self.study_instance_uid = str(getattr(instance, "StudyInstanceUID", ""))
        self.series_description = str(getattr(instance, "SeriesDescription", ""))
        self.series_number = getattr(instance, "SeriesNumber", None)
        self.series_date = str(getattr(instance, "SeriesDate", ""))

        referenced = referenced_series[0]
        self.referenced_series_instance_uid = str(referenced.SeriesInstanceUID)
        self.referenced_images = list(getattr(referenced, "ReferencedInstanceSequence", []))
        self.referenced_display_set_instance_uid: str | None = None
        self.referenced_volume_id: str | None = None

        self.segments: dict[int, Segment] = {}
        self.segmentation_id: str | None = None
        self._state = LoadState.UNLOADED
        self._services = services
        self._loader = SegLoader(self, services, config)

    def __repr__(self) -> str:
        return (
            f"SegDisplaySet(uid={self.display_set_instance_uid!r}, "
            f"series={self.series_instance_uid!r}, state={self._state.value})"
        )

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        """True once the segments have been decoded."""
        return self._state in (LoadState.WAITING_FOR_VOLUME, LoadState.READY)

    def transition(self, new_state: LoadState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise RuntimeError(
                f"Invalid SEG display set transition {self._state.value} -> {new_state.value}"
            )
        logger.debug(f"{self.display_set_instance_uid}: {self._state.value} -> {new_state.value}")
        self._state = new_state

    def get_reference_display_set(self):
        """Resolve the display set of the referenced series in the registry.

        Records the referenced display set UID and volume id as a side
        effect. Raises MissingReferenceError while that series has not
        been registered.
        """
        registry = self._services.display_set_registry
        display_sets = registry.get_display_sets_for_series(self.referenced_series_instance_uid)
        if not display_sets:
            raise MissingReferenceError(
                f"Referenced display set is missing for the SEG "
                f"(series {self.referenced_series_instance_uid})"
            )

        referenced = display_sets[0]
        self.referenced_display_set_instance_uid = referenced.display_set_instance_uid
        self.referenced_volume_id = referenced.display_set_instance_uid
        return referenced

    async def load(self, group_id: str) -> LoadState:
        return await self._loader.load(group_id)

    async def wait_until_ready(self) -> str:
        """Wait for a deferred binding, return the segmentation id."""
        return await self._loader.wait_until_ready()


def get_display_sets_from_series(
    instances: list,
    services: Services,
    config: SegLoadConfig | None = None,
) -> list[SegDisplaySet]:
    """Build the display set of a SEG series.

    A SEG series normally holds one instance; only the first is used.
    """
    if not instances:
        raise ValueError("No instances given for the SEG series")
    return [SegDisplaySet(instances[0], services, config)]
