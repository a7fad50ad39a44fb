# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""Bounded-concurrency fan-out of payloads against a remote target.

Queue state lives in the persistent store as a single table (queue id -> queue record) under QUEUES_KEY. Every state
transition happens inside PersistentStore::update on that key, which is what keeps concurrent drains and job
completions from double-claiming a payload or losing a counter update:

    enqueue      -> table[qid] = new queue (all payloads 'pending'), schedule drain
    drain        -> pop complete queues (stash them for the completion event),
                    claim 'pending' payloads ('running', active += 1) while active < ceiling
    job finished -> 'running' -> 'complete', store resolution, active -= 1, complete += 1, schedule drain

A queue is fired as complete only by the drain that removed it from the table, so its completion event is fired once.
"""

import asyncio
import logging
from enum import Enum, unique
from numbers import Number
from typing import Any, Awaitable, Callable, Coroutine, Dict, List, Optional, Set

import shortuuid

from pollflow.core.entity import CoreData
from pollflow.core.events import EventRegistry
from pollflow.core.persistence import PersistentStore

logger = logging.getLogger(__name__)

QUEUE_CONCURRENCY_LIMIT = 100
QUEUES_KEY = "queues"
QUEUE_COMPLETE_EVENT = "QueueComplete"

Invoker = Callable[[str, Any], Awaitable[Any]]


@unique
class PayloadStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"


@unique
class ResolutionStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class Resolution(CoreData):
    """Result of a single payload invocation: either success(data) or failure(detail)."""

    def __init__(self, status: ResolutionStatus, data: Any = None, detail: Optional[str] = None) -> None:
        self.status = ResolutionStatus(status)
        self.data = data
        self.detail = detail

    @classmethod
    def success(cls, data: Any) -> "Resolution":
        return cls(ResolutionStatus.SUCCESS, data=data)

    @classmethod
    def failure(cls, detail: str) -> "Resolution":
        return cls(ResolutionStatus.FAILURE, detail=detail)

    @property
    def is_success(self) -> bool:
        return self.status == ResolutionStatus.SUCCESS

    def as_record(self) -> Dict[str, Any]:
        if self.is_success:
            return {"status": self.status.value, "data": self.data}
        return {"status": self.status.value, "detail": self.detail}

    @classmethod
    def from_record(cls, record: Optional[Dict[str, Any]]) -> Optional["Resolution"]:
        if record is None:
            return None
        return cls(record["status"], data=record.get("data", None), detail=record.get("detail", None))


class Job(CoreData):
    """A claimed payload (index into its queue's payload list)."""

    def __init__(self, queue_id: str, target: str, index: int, payload: Any) -> None:
        self.queue_id = queue_id
        self.target = target
        self.index = index
        self.payload = payload


class Queue(CoreData):
    def __init__(
        self,
        id: str,
        target: str,
        payloads: List[Any],
        max_concurrent: int,
        active: int = 0,
        complete: int = 0,
        statuses: Optional[List[PayloadStatus]] = None,
        resolutions: Optional[List[Optional[Resolution]]] = None,
    ) -> None:
        self.id = id
        self.target = target
        self.payloads = payloads
        self.max_concurrent = max_concurrent
        self.active = active
        self.complete = complete
        self.statuses = statuses if statuses is not None else [PayloadStatus.PENDING for _ in payloads]
        self.resolutions = resolutions if resolutions is not None else [None for _ in payloads]

    @classmethod
    def create(cls, target: str, payloads: List[Any], max_concurrent: Number) -> "Queue":
        ceiling = min(len(payloads), round(max_concurrent), QUEUE_CONCURRENCY_LIMIT)
        return cls(shortuuid.uuid(), target, list(payloads), ceiling)

    def is_complete(self) -> bool:
        return self.complete == len(self.payloads)

    def has_capacity(self) -> bool:
        return self.active < self.max_concurrent

    def claim_next(self) -> Optional[Job]:
        if self.is_complete() or not self.has_capacity():
            return None
        for index, status in enumerate(self.statuses):
            if status == PayloadStatus.PENDING:
                self.statuses[index] = PayloadStatus.RUNNING
                self.active += 1
                return Job(self.id, self.target, index, self.payloads[index])
        return None

    def complete_job(self, index: int, resolution: Resolution) -> bool:
        """Moves a 'running' payload to 'complete'. Returns False (no-op) for any other state."""
        if not (0 <= index < len(self.statuses)) or self.statuses[index] != PayloadStatus.RUNNING:
            return False
        self.statuses[index] = PayloadStatus.COMPLETE
        self.resolutions[index] = resolution
        self.complete += 1
        self.active -= 1
        return True

    def completion_event(self) -> Dict[str, Any]:
        return {
            "queue_id": self.id,
            "target": self.target,
            "payloads": list(self.payloads),
            "resolutions": list(self.resolutions),
        }

    def as_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "target": self.target,
            "payloads": self.payloads,
            "max_concurrent": self.max_concurrent,
            "active": self.active,
            "complete": self.complete,
            "statuses": [status.value for status in self.statuses],
            "resolutions": [resolution.as_record() if resolution else None for resolution in self.resolutions],
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Queue":
        return cls(
            record["id"],
            record["target"],
            record["payloads"],
            record["max_concurrent"],
            record["active"],
            record["complete"],
            [PayloadStatus(status) for status in record["statuses"]],
            [Resolution.from_record(resolution) for resolution in record["resolutions"]],
        )


def validate_max_concurrent(max_concurrent: Any) -> Number:
    if isinstance(max_concurrent, bool) or not isinstance(max_concurrent, Number):
        raise ValueError(f"Invalid max concurrent: {max_concurrent!r}")
    if not (1 <= max_concurrent <= QUEUE_CONCURRENCY_LIMIT):
        raise ValueError(f"Invalid max concurrent: {max_concurrent!r} (should be between 1 and {QUEUE_CONCURRENCY_LIMIT})")
    return max_concurrent


class QueueDispatcher:
    """Dispatches queued payloads to 'invoker' under each queue's concurrency ceiling.

    'invoker' is an async callable (target, payload) -> result. Any exception it raises is captured as the failure
    resolution of that payload, so a failing payload never blocks the rest of the batch.
    """

    def __init__(
        self,
        store: PersistentStore,
        registry: EventRegistry,
        invoker: Invoker,
        completion_event_type: str = QUEUE_COMPLETE_EVENT,
        queues_key: str = QUEUES_KEY,
    ) -> None:
        self._store = store
        self._registry = registry
        self._invoker = invoker
        self._completion_event_type = completion_event_type
        self._queues_key = queues_key
        self._tasks: Set[asyncio.Task] = set()
        self._stopped = False

    @property
    def completion_event_type(self) -> str:
        return self._completion_event_type

    async def enqueue(self, target: str, payload: Any, max_concurrent: Number = QUEUE_CONCURRENCY_LIMIT) -> str:
        if self._stopped:
            raise RuntimeError(f"Cannot enqueue to {target!r}, the dispatcher is stopped!")
        if not isinstance(target, str) or not target:
            raise ValueError(f"Invalid queue target: {target!r}")
        validate_max_concurrent(max_concurrent)
        payloads = list(payload) if isinstance(payload, (list, tuple)) else [payload]

        queue = Queue.create(target, payloads, max_concurrent)
        logger.info(f"Create queue: {queue.id!r} target: {target!r} size: {len(payloads)} max concurrent: {queue.max_concurrent}")

        def _add_queue(queues: Dict[str, Any]) -> Dict[str, Any]:
            queues[queue.id] = queue.as_record()
            return queues

        await self._store.update(self._queues_key, _add_queue, {})
        self._schedule_drain()
        return queue.id

    async def get_queue(self, queue_id: str) -> Optional[Queue]:
        queues = await self._store.get(self._queues_key)
        record = (queues or {}).get(queue_id, None)
        return Queue.from_record(record) if record else None

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._run_logged(coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _run_logged(coro: Coroutine) -> None:
        try:
            await coro
        except Exception:
            logger.exception("Queue dispatcher background task failed!")

    def _schedule_drain(self) -> None:
        self._spawn(self.drain())

    async def drain(self) -> List[Queue]:
        """Single drain cycle. Safe to run redundantly and concurrently, a cycle with nothing to claim is a no-op.

        :return: the queues found complete (and removed) by this cycle
        """
        jobs: List[Job] = []
        completed: List[Queue] = []
        stopped = self._stopped

        def _claim(queues: Dict[str, Any]) -> Dict[str, Any]:
            # might be re-run by the store, start from scratch each time
            jobs.clear()
            completed.clear()
            for queue_id in list(queues.keys()):
                queue = Queue.from_record(queues[queue_id])
                if queue.is_complete():
                    completed.append(queue)
                    del queues[queue_id]
                    continue
                if stopped:
                    continue
                while True:
                    job = queue.claim_next()
                    if job is None:
                        break
                    jobs.append(job)
                queues[queue_id] = queue.as_record()
            return queues

        await self._store.update(self._queues_key, _claim, {})

        for job in jobs:
            self._spawn(self._run_job(job))

        for queue in completed:
            logger.info(f"Queue complete: {queue.id!r}")

        if completed:
            await self._registry.fire(
                lambda subscription: subscription.descriptor.get("type", None) == self._completion_event_type,
                [queue.completion_event() for queue in completed],
            )
        return completed

    async def _run_job(self, job: Job) -> None:
        logger.info(f"Starting job: {job.target!r} queue: {job.queue_id!r} index: {job.index}")
        try:
            resolution = Resolution.success(await self._invoker(job.target, job.payload))
        except Exception as error:
            logger.error(f"Job failed: {job.target!r} queue: {job.queue_id!r} index: {job.index} error: {error!r}")
            resolution = Resolution.failure(str(error) or error.__class__.__name__)

        def _complete(queues: Dict[str, Any]) -> Dict[str, Any]:
            record = queues.get(job.queue_id, None)
            if record is None:
                # queue is gone already (e.g removed by a concurrent drain), result is dropped
                return queues
            queue = Queue.from_record(record)
            if queue.complete_job(job.index, resolution):
                queues[job.queue_id] = queue.as_record()
            return queues

        await self._store.update(self._queues_key, _complete, {})
        logger.info(f"Job done: {job.target!r} queue: {job.queue_id!r} index: {job.index}")
        self._schedule_drain()

    def start(self) -> None:
        """Resume claiming. Queues left pending by a previous stop are picked up by the drain scheduled here."""
        self._stopped = False
        self._schedule_drain()

    def stop(self) -> None:
        """Stop claiming new payloads. Invocations already issued still complete and record their results."""
        self._stopped = True

    @property
    def stopped(self) -> bool:
        return self._stopped

    async def wait_idle(self) -> None:
        """Wait until no drain or invocation task is left (including the ones they schedule)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
