# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import asyncio
import functools
import inspect
from typing import Awaitable, Callable, TypeVar, Union

T = TypeVar("T")


async def run_blocking(func: Callable[..., T], *args, **kwargs) -> T:
    """Run a blocking callable (e.g a boto3 client call) on the running loop's default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


async def resolve(value: Union[T, Awaitable[T]]) -> T:
    """Await 'value' if it is awaitable, return it as is otherwise.

    Lets callers accept both plain and coroutine callbacks (event handlers, store transforms).
    """
    if inspect.isawaitable(value):
        return await value
    return value
