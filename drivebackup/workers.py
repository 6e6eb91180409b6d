# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
drivebackup Workers - Run blocking calls in a thread pool.

A thread cannot be interrupted, so a call that is cancelled or times
out sets a cancel flag for the worker and then waits for the worker to
return. Callers only clean up files once no thread still writes them.
"""

import asyncio
import functools
import threading
from concurrent.futures import Executor
from typing import Any, Callable

import structlog

logger = structlog.get_logger()


async def run_in_thread(
    executor: Executor,
    func: Callable,
    *args,
    cancellable: bool = False,
    **kwargs,
) -> Any:
    """
    Run func in the executor and wait for it.

    Args:
        executor: Pool the call runs on
        func: Blocking callable
        cancellable: Pass a threading.Event as ``cancel=``; it is set when
            the awaiting task is cancelled and func should stop at its
            next checkpoint

    Returns:
        Whatever func returns
    """
    cancel = threading.Event()
    if cancellable:
        kwargs["cancel"] = cancel

    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(executor, functools.partial(func, *args, **kwargs))

    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        cancel.set()
        results = await asyncio.gather(future, return_exceptions=True)
        if isinstance(results[0], BaseException):
            logger.debug(
                "worker_stopped",
                func=getattr(func, "__name__", repr(func)),
                error=str(results[0]),
            )
        raise
