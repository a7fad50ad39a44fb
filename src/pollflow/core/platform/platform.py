# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""Module Doc:

    Platform hosts a set of connectors in a single asyncio process. It provides them with the backing store (every
    connector gets its own namespaced view of it) and with the PollScheduler that drives the watchers.

    platform = Platform(store=DynamoDBPersistentStore(table))
    s3 = platform.connect(AWSS3Connector({AWSCommonParams.BUCKET: "my-bucket", ...}))
    s3.on({"type": "ObjectAdded"}, handler)
    await platform.start()
"""
import logging
from typing import Dict, List, Optional, TypeVar

from pollflow.core.persistence import InMemoryStore, PersistentStore
from pollflow.core.platform.constructs import BaseConnector
from pollflow.core.platform.definitions.common import get_default_poll_interval_in_secs
from pollflow.core.scheduler import PollScheduler

logger = logging.getLogger(__name__)

ConnectorType = TypeVar("ConnectorType", bound=BaseConnector)


class Platform:
    def __init__(self, store: Optional[PersistentStore] = None, poll_interval_in_secs: Optional[float] = None) -> None:
        if poll_interval_in_secs is not None and poll_interval_in_secs <= 0:
            raise ValueError(f"Poll interval should be a positive number! Got: {poll_interval_in_secs!r}")
        self._store: PersistentStore = store if store is not None else InMemoryStore()
        self._poll_interval_in_secs = poll_interval_in_secs
        self._scheduler = PollScheduler()
        self._connectors: Dict[str, BaseConnector] = dict()
        self._started = False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(store={self._store.__class__.__name__}, connectors={list(self._connectors.values())!r})"

    @property
    def store(self) -> PersistentStore:
        return self._store

    @property
    def scheduler(self) -> PollScheduler:
        return self._scheduler

    @property
    def poll_interval_in_secs(self) -> float:
        return self._poll_interval_in_secs if self._poll_interval_in_secs else get_default_poll_interval_in_secs()

    @property
    def connectors(self) -> List[BaseConnector]:
        return list(self._connectors.values())

    @property
    def is_started(self) -> bool:
        return self._started

    def get_connector(self, connector_id: str) -> Optional[BaseConnector]:
        return self._connectors.get(connector_id, None)

    def connect(self, connector: ConnectorType) -> ConnectorType:
        if connector.id in self._connectors:
            raise ValueError(f"A connector with id {connector.id!r} is already connected!")
        if self._started:
            raise RuntimeError(f"Cannot connect {connector!r} to a running platform!")
        connector.attach(self)
        self._connectors[connector.id] = connector
        return connector

    async def start(self) -> None:
        if self._started:
            logger.warning("Platform is already started.")
            return
        interval = self.poll_interval_in_secs
        for connector in self._connectors.values():
            await connector.start(self._scheduler, interval)
            logger.info(f"Started {connector!r}")
        self._started = True

    async def stop(self) -> None:
        """Stops every connector. Ticks that are already running are allowed to complete."""
        for connector in self._connectors.values():
            await connector.stop()
            logger.info(f"Stopped {connector!r}")
        await self._scheduler.wait_for_inflight_ticks()
        self._started = False
