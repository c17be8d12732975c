"""Helpers that fold collaborator failures into tagged outcomes."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from nutrition_resolver.domain.results import Outcome

T = TypeVar("T")

_logger = logging.getLogger(__name__)


async def attempt(
    stage: str,
    func: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | None = None,
) -> Outcome[T]:
    """Await ``func`` and capture any failure instead of raising.

    With a timeout the pending call is abandoned once it expires; its result,
    if it ever arrives, is discarded.
    """
    try:
        if timeout_seconds is None:
            value = await func()
        else:
            value = await asyncio.wait_for(func(), timeout=timeout_seconds)
    except TimeoutError:
        _logger.warning("%s timed out after %ss", stage, timeout_seconds)
        return Outcome.failure("timeout")
    except Exception as exc:
        _logger.warning("%s failed: %s", stage, exc)
        return Outcome.failure(f"{type(exc).__name__}: {exc}")
    return Outcome.success(value)


def attempt_sync(stage: str, func: Callable[[], T]) -> Outcome[T]:
    """Call ``func`` and capture any failure instead of raising."""
    try:
        return Outcome.success(func())
    except Exception as exc:
        _logger.warning("%s failed: %s", stage, exc)
        return Outcome.failure(f"{type(exc).__name__}: {exc}")
