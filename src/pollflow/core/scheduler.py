# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)

PollCallback = Callable[[], Awaitable[None]]


class _PollTimer:
    def __init__(self, name: str, callback: PollCallback, interval_in_secs: float) -> None:
        self.name = name
        self.callback = callback
        self.interval_in_secs = interval_in_secs
        self.stop_event = asyncio.Event()
        self.task: Optional[asyncio.Task] = None


class PollScheduler:
    """Drives one poll callback per watcher on a fixed interval.

    Every watcher gets its own timer task, and each tick runs in its own task, so a slow remote call in one watcher
    never delays the ticks of the others (nor its own next tick). Failures of a tick are logged and never leave the
    scheduler; the next tick simply runs again.

    Stopping a timer prevents future ticks only, a tick that is already running is left to complete.
    """

    def __init__(self) -> None:
        self._timers: Dict[str, _PollTimer] = dict()
        self._inflight_ticks: Set[asyncio.Task] = set()

    def schedule(self, name: str, callback: PollCallback, interval_in_secs: float) -> None:
        if interval_in_secs is None or interval_in_secs <= 0:
            raise ValueError(f"Poll interval should be a positive number! Got: {interval_in_secs!r}")
        if name in self._timers:
            raise ValueError(f"A poll timer named {name!r} is already scheduled!")

        timer = _PollTimer(name, callback, interval_in_secs)
        timer.task = asyncio.get_running_loop().create_task(self._run_timer(timer), name=f"poll-timer-{name}")
        self._timers[name] = timer
        logger.info(f"Scheduled poller {name!r} with an interval of {interval_in_secs} secs.")

    def is_scheduled(self, name: str) -> bool:
        return name in self._timers

    async def _run_timer(self, timer: _PollTimer) -> None:
        while True:
            try:
                await asyncio.wait_for(timer.stop_event.wait(), timeout=timer.interval_in_secs)
                # stop requested
                return
            except asyncio.TimeoutError:
                pass
            tick = asyncio.get_running_loop().create_task(self.tick(timer.name, timer.callback), name=f"poll-tick-{timer.name}")
            self._inflight_ticks.add(tick)
            tick.add_done_callback(self._inflight_ticks.discard)

    async def tick(self, name: str, callback: PollCallback) -> bool:
        """Runs a single tick, returns False if it failed (failure is logged, not raised)."""
        try:
            await callback()
            return True
        except Exception:
            logger.exception(f"Poll tick of {name!r} failed! Will retry on the next tick.")
            return False

    async def stop(self, name: str) -> None:
        timer = self._timers.pop(name, None)
        if timer:
            timer.stop_event.set()
            await timer.task
            logger.info(f"Stopped poller {name!r}.")

    async def stop_all(self) -> None:
        for name in list(self._timers.keys()):
            await self.stop(name)

    async def wait_for_inflight_ticks(self) -> None:
        while self._inflight_ticks:
            await asyncio.gather(*list(self._inflight_ticks), return_exceptions=True)
