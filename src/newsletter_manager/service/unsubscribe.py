"""Unsubscribe handling.

Only a placeholder for now: requests are logged and acknowledged, no
unsubscribe link is ever followed.
"""

import asyncio
import logging

from ..models import SenderAggregate, UnsubscribeResult

logger = logging.getLogger(__name__)

PLACEHOLDER_MESSAGE = "Unsubscribe processed (placeholder)"


class UnsubscribeHandler:
    """Accepts bulk unsubscribe requests for detected newsletters."""

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay

    async def perform(self, newsletters: list[SenderAggregate]) -> UnsubscribeResult:
        """Acknowledge an unsubscribe request for the selected newsletters."""
        if not newsletters:
            return UnsubscribeResult(
                success=False,
                message="No newsletters selected",
            )

        senders = [n.sender for n in newsletters]
        logger.info(f"Unsubscribe requested for {len(senders)} senders: {', '.join(senders)}")

        if self.delay > 0:
            await asyncio.sleep(self.delay)

        return UnsubscribeResult(success=True, message=PLACEHOLDER_MESSAGE, senders=senders)
