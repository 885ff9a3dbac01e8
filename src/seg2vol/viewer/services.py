"""Viewer collaborators used by the SEG loader.

Abstract base classes describe what the loader needs from the host
viewer; the in-memory implementations back the CLI and the tests.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

VOLUME_MODIFIED = "volume_modified"
DISPLAY_SET_ADDED = "display_set_added"

EventCallback = Callable[[dict], None]
EventPredicate = Callable[[dict], bool]


@dataclass
class Subscription:
    """Handle returned by EventBus.subscribe."""

    event: str
    callback: EventCallback
    predicate: EventPredicate | None = None
    active: bool = True
    _bus: EventBus | None = field(default=None, repr=False)

    def unsubscribe(self) -> None:
        if self.active and self._bus is not None:
            self._bus._remove(self)
        self.active = False


class EventBus:
    """Synchronous publish/subscribe with per-subscription filtering.

    Events are broadcast to every subscriber of the event name; a
    subscription only sees payloads its predicate accepts.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = {}

    def subscribe(
        self,
        event: str,
        callback: EventCallback,
        predicate: EventPredicate | None = None,
    ) -> Subscription:
        subscription = Subscription(event, callback, predicate, _bus=self)
        self._subscriptions.setdefault(event, []).append(subscription)
        return subscription

    def publish(self, event: str, payload: dict | None = None) -> None:
        payload = payload or {}
        # Callbacks may unsubscribe while we iterate
        for subscription in list(self._subscriptions.get(event, [])):
            if not subscription.active:
                continue
            if subscription.predicate is not None and not subscription.predicate(payload):
                continue
            subscription.callback(payload)

    def subscriber_count(self, event: str) -> int:
        return len(self._subscriptions.get(event, []))

    def _remove(self, subscription: Subscription) -> None:
        subscribers = self._subscriptions.get(subscription.event, [])
        if subscription in subscribers:
            subscribers.remove(subscription)


class ByteLoader(ABC):
    """Fetches the raw DICOM bytes of a display set's instance."""

    @abstractmethod
    async def fetch(self, display_set) -> bytes:
        ...


class FileByteLoader(ByteLoader):
    """Reads the instance from the file it was discovered in."""

    async def fetch(self, display_set) -> bytes:
        filename = getattr(display_set.instance, "filename", None)
        if not filename:
            raise FileNotFoundError(
                f"Instance {display_set.sop_instance_uid} has no backing file"
            )
        path = Path(filename)
        logger.debug(f"Reading SEG bytes from {path}")
        return await asyncio.to_thread(path.read_bytes)


class VolumeCache(ABC):
    @abstractmethod
    def get_volume(self, volume_id: str) -> Any | None:
        """Return the cached volume, or None when it is not loaded yet."""


class InMemoryVolumeCache(VolumeCache):
    """Dictionary-backed volume cache that announces new volumes on a bus."""

    def __init__(self, event_bus: EventBus | None = None) -> None:
        self._volumes: dict[str, Any] = {}
        self._event_bus = event_bus

    def get_volume(self, volume_id: str) -> Any | None:
        return self._volumes.get(volume_id)

    def put_volume(self, volume_id: str, volume: Any) -> None:
        self._volumes[volume_id] = volume
        if self._event_bus is not None:
            self._event_bus.publish(VOLUME_MODIFIED, {"volume_id": volume_id})


class SegmentationService(ABC):
    """Rendering-side segmentation state owned by the host viewer."""

    @abstractmethod
    async def create_segmentation_from_descriptor(self, display_set) -> str:
        """Create a segmentation from a loaded SEG display set, return its id."""

    @abstractmethod
    def attach_representation(self, group_id: str, segmentation_id: str) -> None:
        """Show a segmentation in every viewport of a render group."""


class DisplaySetRegistry(ABC):
    @abstractmethod
    def get_display_sets_for_series(self, series_instance_uid: str) -> list:
        """Return the display sets of a series, empty when none is registered."""


class InMemoryDisplaySetRegistry(DisplaySetRegistry):
    """Registry keyed by SeriesInstanceUID that announces additions on a bus."""

    def __init__(self, event_bus: EventBus | None = None) -> None:
        self._by_series: dict[str, list] = {}
        self._event_bus = event_bus

    def add(self, display_set) -> None:
        series_uid = display_set.series_instance_uid
        self._by_series.setdefault(series_uid, []).append(display_set)
        if self._event_bus is not None:
            self._event_bus.publish(
                DISPLAY_SET_ADDED,
                {"series_instance_uid": series_uid, "display_set": display_set},
            )

    def get_display_sets_for_series(self, series_instance_uid: str) -> list:
        return list(self._by_series.get(series_instance_uid, []))


@dataclass
class Services:
    """The collaborators a SEG display set needs to load and bind."""

    byte_loader: ByteLoader
    volume_cache: VolumeCache
    event_bus: EventBus
    segmentation_service: SegmentationService
    display_set_registry: DisplaySetRegistry
