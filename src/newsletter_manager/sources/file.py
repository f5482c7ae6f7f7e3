"""Candidate source backed by an exported JSON or YAML file.

The file holds a list of DOM-like element dicts, as captured from a webmail
list view::

    [
      {
        "email": "news@example.com",
        "sender": "Example News",
        "subject": "Weekly Digest",
        "snippet": "This week's top stories...",
        "thread_id": "18c2f0a",
        "links": [{"href": "https://example.com/unsubscribe", "text": "Unsubscribe"}]
      }
    ]

A top-level mapping with an ``emails`` key is accepted as well. Every entry
is a separate email; an optional ``id`` marks entries that are the same
element captured twice.
"""

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from newsletter_manager.exceptions import SourceError
from newsletter_manager.models import EmailRecord

from .base import CandidateSource

logger = logging.getLogger(__name__)

UNKNOWN_SENDER = "Unknown Sender"
NO_SUBJECT = "No Subject"

# Sender lookups in order of preference: address attribute, tooltip, display text
SENDER_KEYS = ("email", "title", "sender")
THREAD_KEYS = ("thread_id", "data-thread-id")
ID_KEY = "id"


class JsonFileSource(CandidateSource):
    """Reads candidate elements from a JSON or YAML export."""

    def __init__(self, path: Path, name: str | None = None, max_candidates: int = 50) -> None:
        self.path = Path(path)
        self.name = name or self.path.stem
        self.max_candidates = max_candidates

    async def is_ready(self) -> bool:
        return self.path.is_file()

    async def list_candidates(self) -> list[Any]:
        data = self._load()

        if isinstance(data, dict):
            data = data.get("emails")
        if not isinstance(data, list):
            raise SourceError(f"{self.path}: expected a list of email elements")

        # Each entry is its own email; only an element listed twice under the
        # same id is dropped.
        candidates: list[Any] = []
        seen: set[str] = set()
        for element in data:
            element_id = element.get(ID_KEY) if isinstance(element, dict) else None
            if element_id is not None:
                if str(element_id) in seen:
                    continue
                seen.add(str(element_id))
            candidates.append(element)

        logger.debug(f"Found {len(candidates)} candidate elements in {self.path}")
        return candidates[: self.max_candidates]

    def _load(self) -> Any:
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise SourceError(f"Could not read {self.path}: {e}") from e

        try:
            if self.path.suffix.lower() in (".yaml", ".yml"):
                return yaml.safe_load(text)
            return json.loads(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise SourceError(f"Could not parse {self.path}: {e}") from e

    def extract_record(self, element: Any) -> EmailRecord | None:
        if not isinstance(element, dict):
            return None

        sender = _first_text(element, SENDER_KEYS) or UNKNOWN_SENDER
        if sender == UNKNOWN_SENDER:
            return None

        try:
            return EmailRecord(
                sender=sender,
                subject=_first_text(element, ("subject",)) or NO_SUBJECT,
                snippet=_first_text(element, ("snippet",)) or "",
                unsubscribe_link=self.find_unsubscribe_link(element),
                thread_id=_first_text(element, THREAD_KEYS),
            )
        except (TypeError, ValueError) as e:
            logger.debug(f"Skipping unusable element: {e}")
            return None

    def find_unsubscribe_link(self, element: Any) -> str | None:
        if not isinstance(element, dict):
            return None

        for link in element.get("links") or []:
            if not isinstance(link, dict):
                continue
            href = str(link.get("href") or "")
            text = str(link.get("text") or "").lower()
            if href and ("unsubscribe" in text or "unsubscribe" in href):
                return href

        return None


def _first_text(element: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = element.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None
