"""Timeout utilities for fetch operations."""

import asyncio
from typing import Awaitable, TypeVar

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], timeout_seconds: float, url: str) -> T:
    """Await ``awaitable`` with timeout protection.

    Args:
        awaitable: Operation to wait for.
        timeout_seconds: Maximum wait in seconds.
            If 0 or negative, no timeout is applied.
        url: Resource being fetched, used in the error message.

    Returns:
        Result of the awaitable.

    Raises:
        TimeoutError: If the operation exceeds timeout_seconds.
    """
    if timeout_seconds <= 0:
        return await awaitable

    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        raise TimeoutError(
            f"Fetching {url} timed out after {timeout_seconds:g} seconds. "
            f"To allow more time: set FONTSPIDER_TIMEOUT={timeout_seconds * 2:g} "
            f"environment variable, or use CrawlOptions(timeout={timeout_seconds * 2:g})."
        ) from e
