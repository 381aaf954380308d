"""Two-level retry policy: ordered fail-over across configurations, and bounded
exponential backoff within a single configuration.

The two compose as ``retry_with_configs(configs, lambda cfg, i:
with_retry_delay(op, cfg.retry_count))``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

from loguru import logger

from ..schema import AttemptError, RetryResult
from ..shard import constants as C
from .error_helpers import get_error_message, get_status_code

T = TypeVar("T")
ConfigT = TypeVar("ConfigT")

NO_CONFIGURATION_MESSAGE = "No configuration available"


def should_retry(error: BaseException) -> bool:
    """Return False for permanent client errors (400/401/403/404/422), True otherwise."""
    status = get_status_code(error)
    if status is None:
        return True
    return status not in C.NO_RETRY_STATUSES


async def with_retry_delay(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = C.RETRY_BASE_DELAY_SECONDS,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    retry_if: Callable[[BaseException], bool] = should_retry,
) -> T:
    """Run ``operation`` up to ``max_retries + 1`` times.

    Waits ``base_delay * 2**attempt`` between attempts. Re-raises the last error
    once retries are exhausted or ``retry_if`` rejects it.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_retries or not retry_if(e):
                raise
            delay = base_delay * (2**attempt)
            logger.debug(f"Attempt {attempt + 1}/{max_retries + 1} failed ({e}); retrying in {delay}s")
        await sleep(delay)
        attempt += 1


async def retry_with_configs(
    configs: Sequence[ConfigT],
    operation: Callable[[ConfigT, int], Awaitable[T]],
) -> RetryResult[T]:
    """Try ``operation`` against each configuration in order until one succeeds."""
    result: RetryResult[T] = RetryResult()

    if not configs:
        result.errors.append(AttemptError(config_index=C.NO_CONFIG_INDEX, error=NO_CONFIGURATION_MESSAGE))
        return result

    for i, config in enumerate(configs):
        try:
            value = await operation(config, i)
        except Exception as e:
            message = get_error_message(e)
            result.errors.append(AttemptError(config_index=i, error=message))
            logger.warning(f"Config attempt {i} failed: {message}")
            continue

        result.success = True
        result.result = value
        result.used_config_index = i
        if i > 0:
            logger.info(f"Fail-over succeeded using config attempt {i}")
        return result

    return result


def format_retry_errors(result: RetryResult[Any]) -> str:
    """Render the attempt log as a single caller-facing string."""
    if result.success:
        return ""
    if not result.errors:
        return "Unknown error"
    if len(result.errors) == 1:
        return result.errors[0].error
    lines = [f"config {e.config_index}: {e.error}" for e in result.errors]
    return "All configurations failed:\n" + "\n".join(lines)


__all__ = [
    "NO_CONFIGURATION_MESSAGE",
    "should_retry",
    "with_retry_delay",
    "retry_with_configs",
    "format_retry_errors",
]
