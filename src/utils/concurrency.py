"""Async concurrency helpers for the ingestion pipeline.

Two patterns are exposed:

1. **throttled_gather** -- ``asyncio.gather`` with every awaitable wrapped
   in a semaphore acquire/release, so a job fans out to at most N
   concurrent embedding calls.

2. **call_with_retry** -- run a coroutine factory under a per-attempt
   timeout, retrying only the exception types the caller marks as
   transient, with linear backoff between attempts.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

from src.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``semaphore``-many at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many awaitables run at once.  Callers create
        one per job so that separate jobs do not starve each other.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  If ``False``, the first exception cancels every
        awaitable still pending and is then re-raised.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input awaitables.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [asyncio.ensure_future(_wrapped(c)) for c in coros]
    if return_exceptions:
        return await asyncio.gather(*tasks, return_exceptions=True)
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def call_with_retry(
    func: Callable[[], Awaitable[_T]],
    *,
    retry_on: tuple[type[BaseException], ...],
    max_retries: int = 3,
    backoff_seconds: float = 1.0,
    timeout_seconds: float | None = None,
    timeout_error: Callable[[], BaseException] | None = None,
    logger: structlog.BoundLogger | None = None,
    event: str = "call_retry",
) -> _T:
    """Await ``func()`` with a timeout and bounded retries.

    Parameters
    ----------
    func:
        Zero-argument factory returning a fresh awaitable per attempt.
    retry_on:
        Exception types that are retried.  Anything else propagates on the
        first attempt.
    max_retries:
        Number of retries after the first attempt.
    backoff_seconds:
        Base delay; attempt ``n`` sleeps ``backoff_seconds * n``.
    timeout_seconds:
        Per-attempt timeout.  ``None`` disables it.
    timeout_error:
        Factory for the exception raised in place of ``asyncio.TimeoutError``.
        It should be one of ``retry_on`` for timeouts to be retried.
    logger:
        Structured logger for retry warnings.
    event:
        Event name logged on every retry.

    Raises
    ------
    BaseException
        The last error once retries are exhausted, or the first
        non-retryable error.
    """
    if logger is None:
        logger = _logger

    attempt = 0
    while True:
        attempt += 1
        try:
            if timeout_seconds is None:
                return await func()
            try:
                return await asyncio.wait_for(func(), timeout=timeout_seconds)
            except asyncio.TimeoutError as exc:
                if timeout_error is None:
                    raise
                raise timeout_error() from exc
        except retry_on as exc:
            if attempt > max_retries:
                raise
            delay = backoff_seconds * attempt
            logger.warning(
                event,
                attempt=attempt,
                max_retries=max_retries,
                backoff_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)
