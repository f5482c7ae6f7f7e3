"""Tests for batched scanning and aggregation."""

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from newsletter_manager.config import LLMConfig
from newsletter_manager.models import (
    ClassificationMethod,
    ClassificationResult,
    EmailRecord,
    ScanProgress,
)
from newsletter_manager.processors.llm import HybridClassifier
from newsletter_manager.processors.rules import RuleClassifier
from newsletter_manager.service.scanner import NewsletterScanner, ScanAggregator
from newsletter_manager.service.stats import StatsStore
from newsletter_manager.sources.file import JsonFileSource

# Bound before any test patches asyncio.sleep
_yield = asyncio.sleep


class FakeClassifier:
    """Marks records as newsletters when their sender starts with "news"."""

    def __init__(self) -> None:
        self.calls: list[EmailRecord] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def classify(self, record: EmailRecord) -> ClassificationResult:
        self.calls.append(record)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await _yield(0)
        self.in_flight -= 1
        return ClassificationResult(
            is_newsletter=record.sender.startswith("news"),
            confidence=0.9,
            method=ClassificationMethod.MODEL,
        )


def make_records(count: int) -> list[EmailRecord]:
    return [
        EmailRecord(sender=f"news{i}@example.com", subject=f"Issue {i}", thread_id=f"t{i}")
        for i in range(count)
    ]


@pytest.fixture
def no_sleep():
    with patch("newsletter_manager.service.scanner.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


class TestScanAggregator:
    @pytest.mark.asyncio
    async def test_progress_per_record(self, no_sleep: AsyncMock) -> None:
        snapshots: list[ScanProgress] = []
        aggregator = ScanAggregator(batch_size=5, batch_delay=0.2)

        result = await aggregator.scan(make_records(12), FakeClassifier(), snapshots.append)

        assert len(result) == 12
        assert len(snapshots) == 12
        processed = [s.processed for s in snapshots]
        assert processed == sorted(processed)
        assert snapshots[-1].processed == snapshots[-1].total == 12
        assert snapshots[-1].found_count == 12

    @pytest.mark.asyncio
    async def test_pause_between_batches_only(self, no_sleep: AsyncMock) -> None:
        aggregator = ScanAggregator(batch_size=5, batch_delay=0.2)
        await aggregator.scan(make_records(12), FakeClassifier())

        # batches of 5, 5, 2
        assert no_sleep.await_count == 2
        no_sleep.assert_awaited_with(0.2)

    @pytest.mark.asyncio
    async def test_sequential_classification(self, no_sleep: AsyncMock) -> None:
        classifier = FakeClassifier()
        records = make_records(7)

        await ScanAggregator(batch_size=5).scan(records, classifier)

        assert classifier.max_in_flight == 1
        assert classifier.calls == records

    @pytest.mark.asyncio
    async def test_duplicate_threads_are_counted(self, no_sleep: AsyncMock) -> None:
        records = [
            EmailRecord(sender="news@a.com", subject="First", thread_id="t1"),
            EmailRecord(sender="news@b.com", subject="Other", thread_id="t2"),
            EmailRecord(sender="news@a.com", subject="Second", thread_id="t1"),
            EmailRecord(sender="news@a.com", subject="Third", thread_id="t1"),
        ]

        result = await ScanAggregator().scan(records, FakeClassifier())

        assert [(a.sender, a.subject, a.count) for a in result] == [
            ("news@a.com", "First", 3),
            ("news@b.com", "Other", 1),
        ]

    @pytest.mark.asyncio
    async def test_sender_subject_key_without_thread(self, no_sleep: AsyncMock) -> None:
        records = [
            EmailRecord(sender="news@a.com", subject="Digest"),
            EmailRecord(sender="news@a.com", subject="Digest"),
            EmailRecord(sender="news@a.com", subject="Re: Digest"),
        ]

        result = await ScanAggregator().scan(records, FakeClassifier())

        assert [a.count for a in result] == [2, 1]

    @pytest.mark.asyncio
    async def test_non_newsletters_are_dropped(self, no_sleep: AsyncMock) -> None:
        records = [
            EmailRecord(sender="billing@shop.com", subject="Receipt"),
            EmailRecord(sender="news@shop.com", subject="Sale", unsubscribe_link="https://u"),
        ]
        snapshots: list[ScanProgress] = []

        result = await ScanAggregator().scan(records, FakeClassifier(), snapshots.append)

        assert len(result) == 1
        assert result[0].unsubscribe_link == "https://u"
        assert result[0].confidence == 0.9
        assert result[0].method == ClassificationMethod.MODEL
        assert [s.found_count for s in snapshots] == [0, 1]

    @pytest.mark.asyncio
    async def test_cancel_between_batches(self, no_sleep: AsyncMock) -> None:
        cancel = asyncio.Event()
        snapshots: list[ScanProgress] = []

        def sink(progress: ScanProgress) -> None:
            snapshots.append(progress)
            if progress.processed == 3:
                cancel.set()

        result = await ScanAggregator(batch_size=5).scan(
            make_records(12), FakeClassifier(), sink, cancel
        )

        # The running batch finishes before the cancellation is honoured
        assert len(result) == 5
        assert snapshots[-1].processed == 5

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_stop_scan(self, no_sleep: AsyncMock) -> None:
        sink = MagicMock(side_effect=RuntimeError("popup closed"))

        result = await ScanAggregator().scan(make_records(6), FakeClassifier(), sink)

        assert len(result) == 6
        assert sink.call_count == 6

    @pytest.mark.asyncio
    async def test_async_sink_is_awaited(self, no_sleep: AsyncMock) -> None:
        sink = AsyncMock()
        await ScanAggregator().scan(make_records(3), FakeClassifier(), sink)
        assert sink.await_count == 3

    @pytest.mark.asyncio
    async def test_empty_input(self) -> None:
        sink = MagicMock()
        assert await ScanAggregator().scan([], FakeClassifier(), sink) == []
        sink.assert_not_called()

    def test_invalid_batch_size(self) -> None:
        with pytest.raises(ValueError):
            ScanAggregator(batch_size=0)

    def test_visible_scan_groups_by_sender(self) -> None:
        records = [
            EmailRecord(sender="news@example.com", subject="Weekly Digest", thread_id="t1"),
            EmailRecord(sender="news@example.com", subject="Another issue", thread_id="t2"),
            EmailRecord(sender="billing@service.com", subject="Invoice 42"),
        ]

        result = ScanAggregator().scan_visible(records, RuleClassifier())

        assert len(result) == 1
        assert result[0].count == 2
        assert result[0].subject == "Weekly Digest"
        assert result[0].method == ClassificationMethod.RULES


@pytest.fixture
def stats(tmp_path: Path) -> StatsStore:
    return StatsStore(tmp_path / "stats.db")


def make_scanner(stats: StatsStore | None, client: MagicMock | None = None) -> NewsletterScanner:
    rules = RuleClassifier()
    config = LLMConfig(enabled=client is not None)
    return NewsletterScanner(
        classifier=HybridClassifier(config, rules=rules, client=client),
        rules=rules,
        aggregator=ScanAggregator(batch_size=2, batch_delay=0),
        stats=stats,
        ready_attempts=2,
        ready_interval=0,
    )


class TestNewsletterScanner:
    @pytest.mark.asyncio
    async def test_full_scan(self, inbox_file: Path, stats: StatsStore) -> None:
        snapshots: list[ScanProgress] = []
        scanner = make_scanner(stats)

        result = await scanner.run_full_scan(JsonFileSource(inbox_file), snapshots.append)

        assert result.success is True
        assert result.total == 4  # the "Unknown Sender" row is skipped
        assert result.processed == 4
        assert [(n.sender, n.count) for n in result.newsletters] == [
            ("news@example.com", 2),
            ("deals@shop.com", 1),
        ]
        assert result.newsletters[0].unsubscribe_link == "https://example.com/unsubscribe?u=1"
        assert len(snapshots) == 4
        assert stats.get().newsletters_detected == 2
        assert stats.get().last_scan is not None

    @pytest.mark.asyncio
    async def test_full_scan_model_unreachable(self, inbox_file: Path, stats: StatsStore) -> None:
        client = MagicMock()
        client.probe = AsyncMock(return_value=False)
        client.generate = AsyncMock()
        scanner = make_scanner(stats, client)

        result = await scanner.run_full_scan(JsonFileSource(inbox_file))

        assert result.success is True
        assert len(result.newsletters) == 2
        assert all(n.method == ClassificationMethod.RULES for n in result.newsletters)
        assert client.probe.await_count == 1
        client.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_identical_emails_are_counted(self, tmp_path: Path, stats: StatsStore) -> None:
        path = tmp_path / "inbox.json"
        row = {"email": "news@x.com", "subject": "Weekly Digest", "snippet": "Hi"}
        path.write_text(json.dumps([row, row]))

        result = await make_scanner(stats).run_full_scan(JsonFileSource(path))

        assert result.total == 2
        assert [(n.sender, n.count) for n in result.newsletters] == [("news@x.com", 2)]

    @pytest.mark.asyncio
    async def test_source_never_ready(self, tmp_path: Path, stats: StatsStore) -> None:
        scanner = make_scanner(stats)

        result = await scanner.run_full_scan(JsonFileSource(tmp_path / "missing.json"))

        assert result.success is False
        assert "not met after 2 attempts" in result.error
        assert result.newsletters == []
        assert stats.get().last_scan is None

    @pytest.mark.asyncio
    async def test_source_enumeration_failure(self, tmp_path: Path, stats: StatsStore) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        result = await make_scanner(stats).run_full_scan(JsonFileSource(path))

        assert result.success is False
        assert "Could not parse" in result.error

    @pytest.mark.asyncio
    async def test_cancelled_scan_keeps_partial_results(self, tmp_path: Path, stats: StatsStore) -> None:
        path = tmp_path / "inbox.json"
        path.write_text(
            json.dumps([{"email": f"news{i}@example.com", "subject": "Weekly digest"} for i in range(6)])
        )
        cancel = asyncio.Event()
        cancel.set()

        result = await make_scanner(stats).run_full_scan(JsonFileSource(path), cancel=cancel)

        assert result.success is True
        assert result.cancelled is True
        assert result.processed == 0
        assert stats.get().last_scan is None

    @pytest.mark.asyncio
    async def test_visible_scan(self, inbox_file: Path, stats: StatsStore) -> None:
        result = await make_scanner(stats).run_visible_scan(JsonFileSource(inbox_file))

        assert result.success is True
        assert [(n.sender, n.count) for n in result.newsletters] == [
            ("news@example.com", 2),
            ("deals@shop.com", 1),
        ]
        assert stats.get().newsletters_detected == 2

    @pytest.mark.asyncio
    async def test_visible_scan_requires_ready_source(self, tmp_path: Path) -> None:
        result = await make_scanner(None).run_visible_scan(JsonFileSource(tmp_path / "nope.json"))

        assert result.success is False
        assert "not ready" in result.error
