# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import asyncio
import threading

from pollflow.utils.concurrency import resolve, run_blocking


class TestConcurrency:
    def test_run_blocking_off_loop_thread(self):
        def _blocking(a, b=0):
            return a + b, threading.current_thread().name

        async def _run():
            return await run_blocking(_blocking, 1, b=2), threading.current_thread().name

        (result, worker_thread), loop_thread = asyncio.run(_run())
        assert result == 3
        assert worker_thread != loop_thread

    def test_resolve(self):
        async def _value():
            return 5

        async def _run():
            return await resolve(4), await resolve(_value())

        assert asyncio.run(_run()) == (4, 5)
