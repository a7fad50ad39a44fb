# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from pollflow.core.entity import CoreData
from pollflow.utils.concurrency import resolve
from pollflow.utils.digest import calculate_object_digest

logger = logging.getLogger(__name__)

EventDescriptor = Dict[str, Any]
EventHandler = Callable[[Any], Any]
EventFilter = Callable[["EventSubscription"], bool]
EventMapper = Callable[[EventDescriptor], Any]


class EventSubscription(CoreData):
    """Immutable (id, descriptor, handler) triple registered in an EventRegistry."""

    def __init__(self, id: str, descriptor: EventDescriptor, handler: EventHandler) -> None:
        self._id = id
        self._descriptor = dict(descriptor)
        self._handler = handler

    @property
    def id(self) -> str:
        return self._id

    @property
    def descriptor(self) -> EventDescriptor:
        return dict(self._descriptor)

    @property
    def handler(self) -> EventHandler:
        return self._handler

    def __hash__(self) -> int:
        return hash(self._id)


class EventDeliveryError(Exception):
    """Raised by EventRegistry::fire once all of the matching subscriptions have been served, if any handler failed.

    'failures' keeps (subscription_id, exception) pairs in the order subscriptions were served.
    """

    def __init__(self, failures: List[Tuple[str, BaseException]]) -> None:
        self.failures = failures
        super().__init__(f"{len(failures)} event handler(s) failed: {[subscription_id for subscription_id, _ in failures]!r}")


def create_event_id(owner: str, identity: Any, descriptor: EventDescriptor, owner_id: Optional[str] = None) -> str:
    """Deterministic subscription id for a descriptor, so that re-subscribing with the same descriptor is idempotent."""
    digest = calculate_object_digest({"identity": identity, "descriptor": descriptor})
    return f"{owner}:{digest}:{owner_id}" if owner_id else f"{owner}:{digest}"


class EventRegistry:
    """Active subscriptions of a single connector.

    Lifetime is bound to the owning connector (it gets cleared when the connector is torn down). It is passed
    explicitly to whatever needs to fire or inspect events (e.g QueueDispatcher).
    """

    def __init__(self, owner: str, owner_id: Optional[str] = None) -> None:
        self._owner = owner
        self._owner_id = owner_id
        self._subscriptions: Dict[str, EventSubscription] = dict()

    @property
    def owner(self) -> str:
        return self._owner

    def add_event(self, descriptor: EventDescriptor, handler: EventHandler, event_id: Optional[str] = None, identity: Any = None) -> str:
        """Registers 'handler' for 'descriptor'.

        If 'event_id' is not provided, it is derived from the descriptor (and the optional 'identity' of the owner,
        such as account and region) so that the same descriptor always maps to the same id. An id that is already
        active is not replaced (callers need to remove it first); in either case the id is returned.
        """
        if not callable(handler):
            raise TypeError(f"Event handler should be callable! Got: {handler!r}")
        if descriptor is None:
            raise ValueError("Event descriptor cannot be None!")
        if event_id is not None and (not isinstance(event_id, str) or not event_id):
            raise ValueError(f"Invalid event id: {event_id!r}")

        id = event_id if event_id else create_event_id(self._owner, identity, descriptor, self._owner_id)

        if id in self._subscriptions:
            logger.warning(f"Event {id!r} is already registered for {self._owner!r}. Keeping the existing handler.")
            return id

        self._subscriptions[id] = EventSubscription(id, descriptor, handler)
        logger.info(f"Registered event {id!r} with descriptor {descriptor!r}")
        return id

    def remove_event(self, event_id: str) -> None:
        if self._subscriptions.pop(event_id, None) is not None:
            logger.info(f"Removed event {event_id!r} from {self._owner!r}")

    def map_events(self, mapper: EventMapper) -> List[Any]:
        """Distinct (and sorted) values of mapper(descriptor) across the active subscriptions."""
        return sorted({mapper(subscription.descriptor) for subscription in self._subscriptions.values()})

    def subscriptions(self, filter: Optional[EventFilter] = None) -> List[EventSubscription]:
        subscriptions = list(self._subscriptions.values())
        return [s for s in subscriptions if filter(s)] if filter else subscriptions

    async def fire(self, filter: EventFilter, events: Union[Any, Sequence[Any]]) -> None:
        """Deliver 'events' to every subscription matching 'filter'.

        Each matching handler gets the events one by one in order, the next event is delivered only after the
        handler is done with the previous one. A failing handler stops receiving the rest of this batch but the
        other subscriptions are still served. Failures are raised together at the end (as EventDeliveryError).
        """
        events = list(events) if isinstance(events, (list, tuple)) else [events]
        if not events:
            return

        failures: List[Tuple[str, BaseException]] = []
        for subscription in self.subscriptions(filter):
            for event in events:
                try:
                    await resolve(subscription.handler(event))
                except Exception as error:
                    logger.exception(f"Handler of event {subscription.id!r} failed! Skipping the rest of the batch for it.")
                    failures.append((subscription.id, error))
                    break

        if failures:
            raise EventDeliveryError(failures)

    def clear(self) -> None:
        self._subscriptions.clear()

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __contains__(self, event_id: str) -> bool:
        return event_id in self._subscriptions

    def __iter__(self) -> Iterator[EventSubscription]:
        return iter(list(self._subscriptions.values()))
