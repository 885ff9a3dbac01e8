"""Load a SEG display set and bind it to its reference volume.

``load`` fetches and decodes the SEG once, then either binds the segments
to the rendering side straight away or, when the reference volume is not
in the cache yet, subscribes to the volume-modified event for that volume
id and binds on the first delivery. The wait has no timeout: if the
volume never appears the SEG never reaches READY, and a diagnostic is
emitted after ``SegLoadConfig.wait_warning_seconds``.
"""

from __future__ import annotations

import asyncio
import logging
import warnings

from seg2vol.core.errors import LoadInProgressError, MissingReferenceError, UnboundedWaitWarning
from seg2vol.core.types import LoadState, SegLoadConfig
from seg2vol.io.seg_reader import decode_segments, parse_seg_bytes
from seg2vol.viewer.services import DISPLAY_SET_ADDED, VOLUME_MODIFIED, Services, Subscription

logger = logging.getLogger(__name__)


class SegLoader:
    """Drives one SEG display set through its load states."""

    def __init__(self, display_set, services: Services, config: SegLoadConfig | None = None):
        self.display_set = display_set
        self.services = services
        self.config = config or SegLoadConfig()
        self._pending_groups: list[str] = []
        self._subscription: Subscription | None = None
        self._ready: asyncio.Future | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._warning_handle: asyncio.TimerHandle | None = None
        self._bind_task: asyncio.Task | None = None
        self._binding = False

    @property
    def waiting(self) -> bool:
        """True while a bind is subscribed for, scheduled or running."""
        if self._binding:
            return True
        return self._subscription is not None and self._subscription.active

    async def load(self, group_id: str) -> LoadState:
        display_set = self.display_set
        state = display_set.state

        if state is LoadState.DECODING:
            raise LoadInProgressError(
                f"SEG {display_set.display_set_instance_uid} is already decoding"
            )

        if state is LoadState.READY:
            self.services.segmentation_service.attach_representation(
                group_id, display_set.segmentation_id
            )
            return state

        if state is LoadState.WAITING_FOR_VOLUME and self.waiting:
            if group_id not in self._pending_groups:
                self._pending_groups.append(group_id)
            return state

        self._loop = asyncio.get_running_loop()
        if state is LoadState.UNLOADED:
            await self._decode()

        if group_id not in self._pending_groups:
            self._pending_groups.append(group_id)
        return await self._bind_or_wait()

    async def wait_until_ready(self) -> str:
        if self._ready is None:
            raise RuntimeError("load() has not been called on this SEG display set")
        return await self._ready

    async def _decode(self) -> None:
        display_set = self.display_set
        display_set.transition(LoadState.DECODING)
        try:
            data = await self.services.byte_loader.fetch(display_set)
            dataset = parse_seg_bytes(data)
            segments = decode_segments(dataset, self.config)
        except Exception:
            display_set.transition(LoadState.UNLOADED)
            raise
        display_set.segments = segments
        display_set.transition(LoadState.WAITING_FOR_VOLUME)

    async def _bind_or_wait(self) -> LoadState:
        display_set = self.display_set
        if self._ready is None or self._ready.done():
            self._ready = self._loop.create_future()

        if display_set.referenced_volume_id is None:
            try:
                display_set.get_reference_display_set()
            except MissingReferenceError:
                logger.warning(
                    f"Series {display_set.referenced_series_instance_uid} is not registered yet, "
                    f"waiting for it before binding the SEG"
                )
                self._wait_for_event(
                    DISPLAY_SET_ADDED,
                    lambda payload: payload.get("series_instance_uid")
                    == display_set.referenced_series_instance_uid,
                    self._on_reference_added,
                )
                return display_set.state

        volume_id = display_set.referenced_volume_id
        if self.services.volume_cache.get_volume(volume_id) is not None:
            await self._bind()
            return display_set.state

        self._wait_for_volume(volume_id)
        return display_set.state

    def _wait_for_event(self, event, predicate, handler) -> None:
        fired = False

        def on_event(payload: dict) -> None:
            nonlocal fired
            if fired:
                return
            fired = True
            subscription.unsubscribe()
            self._binding = True
            self._loop.call_soon_threadsafe(handler)

        subscription = self.services.event_bus.subscribe(event, on_event, predicate)
        self._subscription = subscription

    def _wait_for_volume(self, volume_id: str) -> None:
        logger.warning(f"Reference volume {volume_id} is not cached yet, waiting for it")
        self._wait_for_event(
            VOLUME_MODIFIED,
            lambda payload: payload.get("volume_id") == volume_id,
            self._on_volume_available,
        )
        seconds = self.config.wait_warning_seconds
        if seconds is not None and self._warning_handle is None:
            self._warning_handle = self._loop.call_later(
                seconds, self._warn_unbounded_wait, volume_id
            )

    def _on_reference_added(self) -> None:
        try:
            self.display_set.get_reference_display_set()
            volume_id = self.display_set.referenced_volume_id
            if self.services.volume_cache.get_volume(volume_id) is not None:
                self._on_volume_available()
                return
            self._wait_for_volume(volume_id)
        except Exception as e:
            logger.exception(
                f"Resolving the reference of SEG {self.display_set.display_set_instance_uid} failed"
            )
            self._fail(e)
        # the volume subscription now marks the wait
        self._binding = False

    def _on_volume_available(self) -> None:
        self._binding = True
        self._bind_task = self._loop.create_task(self._deferred_bind())
        self._bind_task.add_done_callback(self._on_bind_task_done)

    def _on_bind_task_done(self, task: asyncio.Task) -> None:
        self._bind_task = None
        self._binding = False

    async def _deferred_bind(self) -> None:
        try:
            await self._bind()
        except Exception as e:
            logger.exception(f"Binding SEG {self.display_set.display_set_instance_uid} failed")
            self._fail(e)

    def _fail(self, error: Exception) -> None:
        self._binding = False
        if self._ready is not None and not self._ready.done():
            self._ready.set_exception(error)

    async def _bind(self) -> None:
        display_set = self.display_set
        service = self.services.segmentation_service

        if display_set.state is LoadState.READY:
            for group_id in self._pending_groups:
                service.attach_representation(group_id, display_set.segmentation_id)
            self._pending_groups.clear()
            return

        self._binding = True
        try:
            segmentation_id = await service.create_segmentation_from_descriptor(display_set)
            display_set.segmentation_id = segmentation_id
            # groups queued while creation was in flight are attached too
            for group_id in self._pending_groups:
                service.attach_representation(group_id, segmentation_id)
            self._pending_groups.clear()
            display_set.transition(LoadState.READY)
        finally:
            self._binding = False

        if self._warning_handle is not None:
            self._warning_handle.cancel()
            self._warning_handle = None
        logger.info(
            f"SEG {display_set.display_set_instance_uid} bound as segmentation {segmentation_id}"
        )
        if not self._ready.done():
            self._ready.set_result(segmentation_id)

    def _warn_unbounded_wait(self, volume_id: str) -> None:
        self._warning_handle = None
        if self.display_set.state is LoadState.READY:
            return
        message = (
            f"SEG {self.display_set.display_set_instance_uid} still waiting for reference "
            f"volume {volume_id} after {self.config.wait_warning_seconds}s"
        )
        logger.warning(message)
        warnings.warn(message, UnboundedWaitWarning, stacklevel=2)
