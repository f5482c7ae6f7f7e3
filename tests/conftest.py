"""Shared fixtures."""

import json
from pathlib import Path

import pytest

INBOX_ELEMENTS = [
    {
        "email": "news@example.com",
        "sender": "Example News",
        "subject": "Weekly Digest",
        "snippet": "This week's top stories",
        "thread_id": "t1",
        "links": [{"href": "https://example.com/unsubscribe?u=1", "text": "Unsubscribe"}],
    },
    {
        "email": "billing@service.com",
        "subject": "Your payment failed",
        "snippet": "invoice attached",
        "thread_id": "t2",
    },
    {
        "email": "news@example.com",
        "subject": "Weekly Digest",
        "snippet": "More stories",
        "thread_id": "t1",
    },
    {
        "email": "deals@shop.com",
        "subject": "Price drop on your wishlist",
        "snippet": "",
        "thread_id": "t3",
    },
    {
        "sender": "Unknown Sender",
        "subject": "Broken row",
    },
]


@pytest.fixture
def inbox_file(tmp_path: Path) -> Path:
    path = tmp_path / "inbox.json"
    path.write_text(json.dumps(INBOX_ELEMENTS))
    return path
