"""Batched newsletter scanning and sender aggregation."""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Protocol

from ..config import Settings
from ..exceptions import ReadinessTimeout, SourceError
from ..models import (
    ClassificationResult,
    EmailRecord,
    ScanProgress,
    ScanResult,
    SenderAggregate,
)
from ..processors.llm import HybridClassifier
from ..processors.rules import RuleClassifier
from ..processors.signals import SignalExtractor, load_policy
from ..sources.base import CandidateSource
from .stats import StatsStore

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ScanProgress], Awaitable[Any] | Any]


class Classifier(Protocol):
    async def classify(self, record: EmailRecord) -> ClassificationResult: ...


class ScanAggregator:
    """Classifies records in throttled batches and tallies newsletter senders."""

    def __init__(self, batch_size: int = 5, batch_delay: float = 0.2) -> None:
        """Initialize the aggregator.

        Args:
            batch_size: Number of records classified per batch.
            batch_delay: Pause in seconds between batches.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.batch_size = batch_size
        self.batch_delay = batch_delay

    async def scan(
        self,
        records: list[EmailRecord],
        classifier: Classifier,
        progress_sink: ProgressSink | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[SenderAggregate]:
        """Classify records one at a time and merge newsletters by dedup key.

        A progress snapshot is pushed after every record. If ``cancel`` is
        set, the scan stops before the next batch and returns what it has.

        Returns:
            Newsletter aggregates in first-seen order.
        """
        total = len(records)
        found: dict[str, SenderAggregate] = {}
        processed = 0

        for start in range(0, total, self.batch_size):
            if cancel is not None and cancel.is_set():
                logger.info(f"Scan cancelled after {processed}/{total} emails")
                break

            if start > 0 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

            for record in records[start : start + self.batch_size]:
                result = await classifier.classify(record)
                if result.is_newsletter:
                    _merge(found, record.dedup_key, record, result)

                processed += 1
                await _emit(
                    progress_sink,
                    ScanProgress(
                        processed=processed,
                        total=total,
                        found_count=len(found),
                        status=f"Analyzed {processed} of {total} emails, "
                        f"{len(found)} newsletters found",
                    ),
                )

        logger.info(f"Scan complete: {len(found)} newsletters in {processed}/{total} emails")
        return list(found.values())

    def scan_visible(
        self, records: Iterable[EmailRecord], rules: RuleClassifier
    ) -> list[SenderAggregate]:
        """Rule-only scan of a small set of records, grouped by sender."""
        found: dict[str, SenderAggregate] = {}
        for record in records:
            result = rules.evaluate(record)
            if result.is_newsletter:
                _merge(found, record.sender, record, result)
        return list(found.values())


def _merge(
    found: dict[str, SenderAggregate],
    key: str,
    record: EmailRecord,
    result: ClassificationResult,
) -> None:
    aggregate = found.get(key)
    if aggregate:
        aggregate.count += 1
        return
    found[key] = SenderAggregate(
        sender=record.sender,
        subject=record.subject,
        count=1,
        unsubscribe_link=record.unsubscribe_link,
        confidence=result.confidence,
        method=result.method,
    )


async def _emit(sink: ProgressSink | None, progress: ScanProgress) -> None:
    """Push a progress snapshot; sink failures never affect the scan."""
    if sink is None:
        return
    try:
        outcome = sink(progress)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception as e:
        logger.warning(f"Progress sink failed: {e}")


class NewsletterScanner:
    """Runs scans against a candidate source and records the outcome."""

    def __init__(
        self,
        classifier: Classifier,
        rules: RuleClassifier,
        aggregator: ScanAggregator | None = None,
        stats: StatsStore | None = None,
        ready_attempts: int = 50,
        ready_interval: float = 0.2,
    ) -> None:
        self.classifier = classifier
        self.rules = rules
        self.aggregator = aggregator or ScanAggregator()
        self.stats = stats
        self.ready_attempts = ready_attempts
        self.ready_interval = ready_interval

    @classmethod
    def from_settings(cls, settings: Settings, *, use_model: bool = True) -> "NewsletterScanner":
        """Build a scanner, its classifiers and its stats store from settings."""
        extractor = SignalExtractor(load_policy(settings.signals.policy_path))
        rules = RuleClassifier(extractor, medium_threshold=settings.signals.medium_threshold)

        llm_config = settings.llm
        if not use_model:
            llm_config = llm_config.model_copy(update={"enabled": False})

        settings.ensure_dirs()
        return cls(
            classifier=HybridClassifier(llm_config, rules=rules),
            rules=rules,
            aggregator=ScanAggregator(
                batch_size=settings.scan.batch_size,
                batch_delay=settings.scan.batch_delay,
            ),
            stats=StatsStore(settings.db_path),
            ready_attempts=settings.scan.ready_attempts,
            ready_interval=settings.scan.ready_interval,
        )

    async def run_full_scan(
        self,
        source: CandidateSource,
        progress_sink: ProgressSink | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ScanResult:
        """Scan every candidate of a source with the preferred classifier."""
        try:
            await source.wait_until_ready(self.ready_attempts, self.ready_interval)
            records = await source.collect_records()
        except (ReadinessTimeout, SourceError) as e:
            logger.error(f"Could not enumerate candidates from {source.name}: {e}")
            return ScanResult(success=False, error=str(e))

        logger.info(f"Scanning {len(records)} emails from {source.name}")
        last: list[ScanProgress] = []

        async def track(progress: ScanProgress) -> None:
            last[:] = [progress]
            await _emit(progress_sink, progress)

        newsletters = await self.aggregator.scan(records, self.classifier, track, cancel)
        processed = last[0].processed if last else 0
        cancelled = processed < len(records) and cancel is not None and cancel.is_set()

        if self.stats and not cancelled:
            self.stats.record_scan(len(newsletters))

        return ScanResult(
            success=True,
            newsletters=newsletters,
            processed=processed,
            total=len(records),
            cancelled=cancelled,
        )

    async def run_visible_scan(self, source: CandidateSource) -> ScanResult:
        """Rule-only scan of the source's currently available candidates."""
        if not await source.is_ready():
            return ScanResult(success=False, error=f"Source {source.name!r} not ready")

        try:
            records = await source.collect_records()
        except SourceError as e:
            logger.error(f"Could not enumerate candidates from {source.name}: {e}")
            return ScanResult(success=False, error=str(e))

        newsletters = self.aggregator.scan_visible(records, self.rules)
        logger.info(f"Found {len(newsletters)} newsletters in {len(records)} visible emails")

        if self.stats:
            self.stats.record_scan(len(newsletters))

        return ScanResult(
            success=True,
            newsletters=newsletters,
            processed=len(records),
            total=len(records),
        )
