"""Core data models for newsletter detection."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ClassificationMethod(str, Enum):
    """How a classification was reached."""

    RULES = "rules"
    MODEL = "model"
    MODEL_UNCLEAR = "model_unclear"


class EmailRecord(BaseModel):
    """A normalized email candidate extracted from a source element."""

    model_config = ConfigDict(frozen=True)

    sender: str
    subject: str = ""
    snippet: str = ""
    unsubscribe_link: str | None = None
    thread_id: str | None = None

    @property
    def dedup_key(self) -> str:
        """Identity used to merge duplicates: thread id, else sender+subject."""
        if self.thread_id:
            return self.thread_id
        return f"{self.sender}{self.subject}"


class SignalSet(BaseModel):
    """Boolean signal vectors in policy order."""

    model_config = ConfigDict(frozen=True)

    exclusions: tuple[bool, ...] = ()
    strong: tuple[bool, ...] = ()
    medium: tuple[bool, ...] = ()

    @property
    def any_exclusion(self) -> bool:
        return any(self.exclusions)

    @property
    def any_strong(self) -> bool:
        return any(self.strong)

    @property
    def medium_count(self) -> int:
        return sum(1 for signal in self.medium if signal)


class ClassificationResult(BaseModel):
    """Outcome of classifying a single email."""

    model_config = ConfigDict(frozen=True)

    is_newsletter: bool
    confidence: float = Field(ge=0.0, le=1.0)
    method: ClassificationMethod


class SenderAggregate(BaseModel):
    """A detected newsletter with its occurrence count."""

    sender: str
    subject: str = ""  # First seen
    count: int = Field(default=1, ge=1)
    unsubscribe_link: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    method: ClassificationMethod | None = None


class ScanProgress(BaseModel):
    """Progress snapshot emitted while a scan runs."""

    processed: int
    total: int
    found_count: int
    status: str = ""


class ScanResult(BaseModel):
    """Final outcome of a scan."""

    success: bool = True
    newsletters: list[SenderAggregate] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.now)
    error: str | None = None
    processed: int = 0
    total: int = 0
    cancelled: bool = False


class ScanStats(BaseModel):
    """Persisted cumulative counters."""

    newsletters_detected: int = 0
    unsubscribed: int = 0
    last_scan: datetime | None = None


class UnsubscribeResult(BaseModel):
    """Result of an unsubscribe request."""

    success: bool
    message: str = ""
    senders: list[str] = Field(default_factory=list)
