# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, List, Optional, Sequence, Tuple

import shortuuid

from pollflow.core.diff import SameFn, Snapshot, SnapshotDiff, diff_snapshots
from pollflow.core.events import EventDeliveryError, EventDescriptor, EventFilter, EventHandler, EventRegistry
from pollflow.core.persistence import NamespacedStore
from pollflow.core.platform.definitions.common import ConnectorParams, ConnectorParamsDict
from pollflow.core.scheduler import PollScheduler

if TYPE_CHECKING:
    from pollflow.core.platform.platform import Platform

logger = logging.getLogger(__name__)


class BaseConnector(ABC):
    """Base of every connector. Owns the subscriptions (EventRegistry) of the connector and, once attached to a
    Platform, a view of the platform store scoped to the connector type and its configuration."""

    @abstractmethod
    def __init__(self, params: Optional[ConnectorParamsDict] = None) -> None:
        self._params: ConnectorParamsDict = dict(params) if params else dict()
        self._id: str = self._params.get(ConnectorParams.CONNECTOR_ID, None) or shortuuid.uuid()
        self._registry = EventRegistry(self.__class__.__name__, self._id)
        self._platform: Optional["Platform"] = None
        self._store: Optional[NamespacedStore] = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self._id!r})"

    @property
    def id(self) -> str:
        return self._id

    @property
    def params(self) -> ConnectorParamsDict:
        return self._params

    @property
    def registry(self) -> EventRegistry:
        return self._registry

    @property
    def platform(self) -> Optional["Platform"]:
        return self._platform

    @property
    def store(self) -> NamespacedStore:
        if self._store is None:
            raise RuntimeError(f"{self!r} is not attached to a platform yet!")
        return self._store

    def store_descriptor(self) -> Optional[Any]:
        """Configuration that scopes the persisted records of this connector (e.g bucket name). Secrets should never
        be part of it."""
        return None

    def event_identity(self) -> Optional[Any]:
        """Mixed into the default event ids, so that the same descriptor on two different accounts yields two ids."""
        return None

    def attach(self, platform: "Platform") -> None:
        self._platform = platform
        self._store = NamespacedStore(platform.store, self.__class__.__name__, self.store_descriptor())
        logger.info(f"Attached {self!r} to the platform with store prefix {self._store.prefix!r}")

    # Events
    def validate_event(self, descriptor: EventDescriptor) -> EventDescriptor:
        """Returns the normalized descriptor, raises ValueError if this connector cannot serve it."""
        raise ValueError(f"{self.__class__.__name__} does not support events! Got: {descriptor!r}")

    def default_event_id(self, descriptor: EventDescriptor) -> Optional[str]:
        return None

    def on(self, descriptor: EventDescriptor, handler: EventHandler, event_id: Optional[str] = None) -> str:
        if not isinstance(descriptor, dict):
            raise ValueError(f"Event descriptor should be a dict! Got: {descriptor!r}")
        descriptor = self.validate_event(descriptor)
        return self._registry.add_event(
            descriptor, handler, event_id if event_id else self.default_event_id(descriptor), identity=self.event_identity()
        )

    def remove(self, event_id: str) -> None:
        self._registry.remove_event(event_id)

    # Lifecycle
    async def start(self, scheduler: PollScheduler, default_poll_interval_in_secs: float) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def terminate(self) -> None:
        await self.stop()
        self._registry.clear()

    async def _fire_all(self, batches: Sequence[Tuple[EventFilter, Any]]) -> None:
        """Fire every batch in order. Delivery errors of a batch do not prevent the following batches, they are
        raised together at the end."""
        failures = []
        for filter, events in batches:
            try:
                await self._registry.fire(filter, events)
            except EventDeliveryError as error:
                failures.extend(error.failures)
        if failures:
            raise EventDeliveryError(failures)


def event_type_filter(event_type: str) -> EventFilter:
    return lambda subscription: subscription.descriptor.get("type", None) == event_type


class PollingConnector(BaseConnector, ABC):
    """Connector driven by a PollScheduler timer."""

    @abstractmethod
    def __init__(self, params: Optional[ConnectorParamsDict] = None) -> None:
        super().__init__(params)
        self._scheduler: Optional[PollScheduler] = None

    def poll_interval_in_secs(self, default_poll_interval_in_secs: float) -> float:
        return self._params.get(ConnectorParams.POLL_INTERVAL_IN_SECS, None) or default_poll_interval_in_secs

    @property
    def poller_name(self) -> str:
        return f"{self.__class__.__name__}:{self._id}"

    async def start(self, scheduler: PollScheduler, default_poll_interval_in_secs: float) -> None:
        self._scheduler = scheduler
        scheduler.schedule(self.poller_name, self.on_poll, self.poll_interval_in_secs(default_poll_interval_in_secs))

    async def stop(self) -> None:
        if self._scheduler:
            await self._scheduler.stop(self.poller_name)
            self._scheduler = None

    @abstractmethod
    async def on_poll(self) -> None:
        ...


class SnapshotWatcher(PollingConnector, ABC):
    """Poll-and-snapshot protocol.

    Every tick fetches the remote state inside a single atomic update of the snapshot record, then:
        - if there was no snapshot before, calls 'on_initialized' (no diff events),
        - otherwise calls 'on_changed' with the diff against the previous snapshot.

    A failing fetch (or write) aborts the tick before anything is fired; the error propagates to the scheduler.

    The default hooks implement the generic event set configured with the class level event type names: one
    "initialized" event with the full snapshot, and for a non-empty diff one aggregate "changed" event followed by
    the per category events (additions, modifications, removals).
    """

    SNAPSHOT_KEY: str = "snapshot"
    SNAPSHOT_EVENT_FIELD: str = "snapshot"

    INITIALIZED_EVENT: Optional[str] = None
    CHANGED_EVENT: Optional[str] = None
    ADDED_EVENT: Optional[str] = None
    MODIFIED_EVENT: Optional[str] = None
    REMOVED_EVENT: Optional[str] = None

    @abstractmethod
    def __init__(self, params: Optional[ConnectorParamsDict] = None, same_fn: Optional[SameFn] = None) -> None:
        super().__init__(params)
        self._same_fn = same_fn if same_fn else self.default_same_fn()

    @property
    def same_fn(self) -> SameFn:
        return self._same_fn

    @abstractmethod
    def default_same_fn(self) -> SameFn:
        ...

    def snapshot_key(self) -> str:
        return self.SNAPSHOT_KEY

    @abstractmethod
    async def list_remote_state(self) -> Snapshot:
        ...

    async def on_poll(self) -> None:
        async def _fetch(current: Optional[Snapshot]) -> Snapshot:
            return await self.list_remote_state()

        old, new = await self.store.update(self.snapshot_key(), _fetch)

        if old is None:
            logger.info(f"{self!r} initialized with {len(new)} record(s).")
            await self.on_initialized(new)
            return

        diff = diff_snapshots(old, new, self._same_fn)
        if diff:
            logger.info(
                f"{self!r} detected {diff.change_count} change(s): "
                f"{len(diff.additions)} added, {len(diff.modifications)} modified, {len(diff.removals)} removed."
            )
        else:
            logger.debug(f"{self!r} no changes.")
        await self.on_changed(old, new, diff)

    async def on_initialized(self, snapshot: Snapshot) -> None:
        if self.INITIALIZED_EVENT:
            await self._registry.fire(event_type_filter(self.INITIALIZED_EVENT), {self.SNAPSHOT_EVENT_FIELD: snapshot})

    async def on_changed(self, old: Snapshot, new: Snapshot, diff: SnapshotDiff) -> None:
        if not diff:
            return
        batches: List[Tuple[EventFilter, Any]] = []
        if self.CHANGED_EVENT:
            batches.append((event_type_filter(self.CHANGED_EVENT), {self.SNAPSHOT_EVENT_FIELD: new}))
        for event_type, records in [
            (self.ADDED_EVENT, diff.additions),
            (self.MODIFIED_EVENT, diff.modifications),
            (self.REMOVED_EVENT, diff.removals),
        ]:
            if event_type:
                batches.append((event_type_filter(event_type), records))
        await self._fire_all(batches)

    def supported_event_types(self) -> List[str]:
        return [
            event_type
            for event_type in [self.INITIALIZED_EVENT, self.CHANGED_EVENT, self.ADDED_EVENT, self.MODIFIED_EVENT, self.REMOVED_EVENT]
            if event_type
        ]
