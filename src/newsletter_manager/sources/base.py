"""Base class for candidate sources."""

from abc import ABC, abstractmethod
from typing import Any

from newsletter_manager.models import EmailRecord
from newsletter_manager.utils.retry import wait_until


class CandidateSource(ABC):
    """Abstract base class for sources of email candidates.

    A source hands out opaque elements (DOM nodes, dicts, rows...) and knows
    how to turn one into an EmailRecord.
    """

    name: str

    @abstractmethod
    async def is_ready(self) -> bool:
        """Return True once the source can enumerate candidates."""
        ...

    @abstractmethod
    async def list_candidates(self) -> list[Any]:
        """Return the ordered candidate elements.

        Raises:
            SourceError: if the candidates cannot be enumerated.
        """
        ...

    @abstractmethod
    def extract_record(self, element: Any) -> EmailRecord | None:
        """Build a record from an element, or None if it is unusable."""
        ...

    @abstractmethod
    def find_unsubscribe_link(self, element: Any) -> str | None:
        """Return the element's unsubscribe link, if any."""
        ...

    async def wait_until_ready(self, attempts: int = 50, interval: float = 0.2) -> None:
        """Poll ``is_ready`` until it succeeds.

        Raises:
            ReadinessTimeout: if the source is not ready after ``attempts`` polls.
        """
        await wait_until(
            self.is_ready,
            attempts=attempts,
            interval=interval,
            description=f"source {self.name!r} ready",
        )

    async def collect_records(self) -> list[EmailRecord]:
        """Enumerate candidates and extract records, skipping unusable elements."""
        records = []
        for element in await self.list_candidates():
            record = self.extract_record(element)
            if record is not None:
                records.append(record)
        return records
