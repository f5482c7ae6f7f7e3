"""Rule-based newsletter classification."""

from newsletter_manager.models import (
    ClassificationMethod,
    ClassificationResult,
    EmailRecord,
    SignalSet,
)
from newsletter_manager.processors.signals import SignalExtractor

RULES_CONFIDENCE = 0.7


class RuleClassifier:
    """Applies the exclusion > strong > medium policy to extracted signals."""

    def __init__(
        self,
        extractor: SignalExtractor | None = None,
        medium_threshold: int = 2,
    ) -> None:
        self.extractor = extractor or SignalExtractor()
        self.medium_threshold = medium_threshold

    def classify(self, signals: SignalSet) -> bool:
        """Decide whether a signal set describes a newsletter.

        Evaluated in a fixed order:
        1. Any exclusion signal vetoes, whatever else matched.
        2. Any strong signal is sufficient on its own.
        3. Otherwise at least ``medium_threshold`` medium signals are needed.
        """
        if signals.any_exclusion:
            return False

        if signals.any_strong:
            return True

        return signals.medium_count >= self.medium_threshold

    def classify_record(self, record: EmailRecord) -> bool:
        """Extract signals from a record and classify them."""
        return self.classify(self.extractor.extract(record))

    def evaluate(self, record: EmailRecord) -> ClassificationResult:
        """Classify a record and wrap the decision as a rules result."""
        return ClassificationResult(
            is_newsletter=self.classify_record(record),
            confidence=RULES_CONFIDENCE,
            method=ClassificationMethod.RULES,
        )
