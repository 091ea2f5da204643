"""
Timeouts
--------
Race an awaitable against a timer.

The core imposes no timeout policy of its own; callers wrap the
object-store and network calls they want bounded.
"""

from typing import Awaitable, TypeVar
import asyncio

from infra.logging import get_logger
from .errors import OperationTimeout

T = TypeVar("T")

_logger = get_logger("core.timeouts")


async def with_timeout(awaitable: Awaitable[T], timeout_seconds: float, operation: str) -> T:
    """
    Await with a deadline.

    The inner operation is cancelled on expiry and OperationTimeout
    names the operation.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        _logger.warning(f"{operation} timed out after {timeout_seconds}s")
        raise OperationTimeout(
            operation, f"{operation} operation timed out after {timeout_seconds}s"
        ) from None
