"""Bounded polling helpers."""

import logging
from collections.abc import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from newsletter_manager.exceptions import ReadinessTimeout

logger = logging.getLogger(__name__)


def _not_ready(result: bool) -> bool:
    return not result


async def wait_until(
    check: Callable[[], Awaitable[bool]],
    attempts: int = 50,
    interval: float = 0.2,
    description: str = "condition",
) -> None:
    """Poll ``check`` until it returns True.

    Tries up to ``attempts`` times, sleeping ``interval`` seconds between
    tries. Exceptions raised by ``check`` count as a failed attempt.

    Raises:
        ReadinessTimeout: if the check never succeeds.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(interval),
        retry=retry_if_result(_not_ready) | retry_if_exception_type(Exception),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
    )
    try:
        await retrying(check)
    except RetryError as e:
        raise ReadinessTimeout(
            f"{description} not met after {attempts} attempts"
        ) from e
    logger.debug(f"{description} met")
