"""Explicit success/failure results for fallible employment-service calls.

Callers that want the "degrade to empty/Unknown" behaviour wrap a call in
``capture()`` and decide what a failure means with ``unwrap_or()``, instead of
scattering try/except blocks around every request.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Generic, Optional, TypeVar

import aiohttp

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that mean "no data from this source"; anything else is a bug.
RECOVERABLE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ValueError)


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        if self.error is not None or self.value is None:
            return default
        return self.value


async def capture(awaitable: Awaitable[T], operation: str) -> Result[T]:
    """Await ``awaitable`` and convert recoverable failures into a failed Result.

    Args:
        awaitable: The pending client call.
        operation: Short label used in the warning log (e.g. "inbox").
    """
    try:
        return Result(value=await awaitable)
    except RECOVERABLE_ERRORS as e:
        logger.warning("%s failed: %s: %s", operation, type(e).__name__, e)
        return Result(error=e)
