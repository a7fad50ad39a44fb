# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""Key-value persistence used by the watchers (snapshots) and the dispatcher (queue tables).

The only mutual exclusion mechanism the core relies on is PersistentStore::update, which has to be atomic per key:
read the current value (or the default), apply the transform and write the result without any other writer on the
same key getting in between. The transform may be re-run by a store (e.g optimistic backends on write conflicts), so
it should only compute its return value from its input.
"""

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from pollflow.utils.concurrency import resolve
from pollflow.utils.digest import calculate_object_digest

logger = logging.getLogger(__name__)

Updater = Callable[[Any], Union[Any, Awaitable[Any]]]


class StoreUpdateConflictError(Exception):
    """Raised when a store cannot commit an atomic update (e.g too many concurrent writers on the same key)."""


class PersistentStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Returns the value or None if the key is absent"""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> Any:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def list(self) -> List[str]:
        ...

    @abstractmethod
    async def update(self, key: str, updater: Updater, default: Any = None) -> Tuple[Any, Any]:
        """Atomically replace the value of 'key' with updater(current or default).

        The updater can be a plain function or a coroutine function. It receives a private copy of the current value
        so in-place mutations are safe. Nothing is written if the updater raises.

        :return: (old_value, new_value) where old_value is None if the key was absent.
        """
        ...


class InMemoryStore(PersistentStore):
    """Process local store, values are kept as deep copies. Updates on the same key are serialized with a per-key
    asyncio lock held across the (possibly asynchronous) transform."""

    def __init__(self) -> None:
        self._data: Dict[str, Any] = dict()
        self._locks: Dict[str, asyncio.Lock] = dict()

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key, None)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key, None))

    async def set(self, key: str, value: Any) -> Any:
        async with self._lock_for(key):
            self._data[key] = copy.deepcopy(value)
        return value

    async def delete(self, key: str) -> None:
        async with self._lock_for(key):
            self._data.pop(key, None)

    async def list(self) -> List[str]:
        return list(self._data.keys())

    async def update(self, key: str, updater: Updater, default: Any = None) -> Tuple[Any, Any]:
        async with self._lock_for(key):
            old_value = self._data.get(key, None)
            current = copy.deepcopy(old_value) if old_value is not None else copy.deepcopy(default)
            new_value = await resolve(updater(current))
            self._data[key] = copy.deepcopy(new_value)
            return copy.deepcopy(old_value), new_value


class NamespacedStore(PersistentStore):
    """View of a backing store that scopes every key under an owner prefix.

    Prefix format is '<owner>:' or '<owner>:<digest of descriptor>:' so that two connectors of the same type but with
    different configuration (e.g different buckets) never share records.
    """

    def __init__(self, backing_store: PersistentStore, owner: str, descriptor: Optional[Any] = None) -> None:
        if not owner:
            raise ValueError("Store namespace owner cannot be empty!")
        self._backing_store = backing_store
        self._prefix = f"{owner}:"
        if descriptor:
            self._prefix += f"{calculate_object_digest(descriptor)}:"

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def backing_store(self) -> PersistentStore:
        return self._backing_store

    async def get(self, key: str) -> Optional[Any]:
        self.validate_key(key)
        return await self._backing_store.get(self._prefix + key)

    async def set(self, key: str, value: Any) -> Any:
        self.validate_key(key)
        self.validate_value(value)
        return await self._backing_store.set(self._prefix + key, value)

    async def delete(self, key: str) -> None:
        self.validate_key(key)
        await self._backing_store.delete(self._prefix + key)

    async def list(self) -> List[str]:
        keys = await self._backing_store.list()
        return [key for key in keys if key.startswith(self._prefix)]

    async def update(self, key: str, updater: Updater, default: Any = None) -> Tuple[Any, Any]:
        self.validate_key(key)
        return await self._backing_store.update(self._prefix + key, updater, default)

    @staticmethod
    def validate_key(key: str) -> None:
        if not isinstance(key, str) or len(key) == 0:
            raise ValueError(f"PersistentStore: Invalid key: {key!r}")

    @staticmethod
    def validate_value(value: Any) -> None:
        if value is None:
            raise ValueError(f"PersistentStore: Invalid value: {value!r}")
