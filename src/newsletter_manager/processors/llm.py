"""Model-backed newsletter classification with rule-based fallback."""

import asyncio
import logging
from abc import ABC, abstractmethod

from newsletter_manager.config import LLMConfig
from newsletter_manager.models import ClassificationMethod, ClassificationResult, EmailRecord
from newsletter_manager.processors.rules import RuleClassifier

logger = logging.getLogger(__name__)

MODEL_CONFIDENCE = 0.9
UNCLEAR_CONFIDENCE = 0.3


class ModelClient(ABC):
    """Abstract base class for model clients."""

    @abstractmethod
    async def probe(self) -> bool:
        """Return True if the model service is reachable."""
        ...

    @abstractmethod
    async def generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        """Send a single completion request and return the response text."""
        ...


class OllamaClient(ModelClient):
    """Ollama client using the native ollama library."""

    def __init__(
        self,
        base_url: str,
        model: str,
        probe_timeout: float = 2.0,
        request_timeout: float = 2.0,
    ) -> None:
        import ollama

        self.client = ollama.AsyncClient(host=base_url, timeout=request_timeout)
        self.model = model
        self.probe_timeout = probe_timeout
        self.request_timeout = request_timeout

    async def probe(self) -> bool:
        # GET /api/tags; any non-2xx raises ResponseError
        try:
            await asyncio.wait_for(self.client.list(), timeout=self.probe_timeout)
        except Exception as e:
            logger.debug(f"Ollama probe failed: {e!r}")
            return False
        return True

    async def generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        # POST /api/generate
        response = await asyncio.wait_for(
            self.client.generate(
                model=self.model,
                prompt=prompt,
                stream=False,
                options={
                    "temperature": temperature,
                    "num_predict": max_tokens,
                },
            ),
            timeout=self.request_timeout,
        )
        return response["response"] or ""


def create_model_client(config: LLMConfig) -> ModelClient:
    """Factory function to create the model client for a configuration."""
    return OllamaClient(
        base_url=config.ollama_base_url,
        model=config.model,
        probe_timeout=config.probe_timeout,
        request_timeout=config.request_timeout,
    )


class ClassifierSession:
    """Per-session classifier state.

    Once ``model_unavailable`` is set it stays set: every later call in the
    session goes straight to the rules without probing the model again.
    """

    def __init__(self) -> None:
        self.model_unavailable = False
        self.probes = 0
        self.model_calls = 0
        self.rule_calls = 0

    def mark_unavailable(self, reason: str) -> None:
        if not self.model_unavailable:
            logger.warning(f"Model unavailable, using rules for the rest of the session: {reason}")
        self.model_unavailable = True


def build_prompt(record: EmailRecord) -> str:
    """Build the compact one-word classification prompt (sender + subject only)."""
    return f"""Classify this email as either "newsletter" or "transactional".

From: {record.sender}
Subject: {record.subject}

Answer with one word: newsletter or transactional."""


def parse_response(text: str) -> ClassificationResult:
    """Map a free-text model reply onto a classification result."""
    answer = text.lower()
    if "newsletter" in answer:
        return ClassificationResult(
            is_newsletter=True,
            confidence=MODEL_CONFIDENCE,
            method=ClassificationMethod.MODEL,
        )
    if "transactional" in answer:
        return ClassificationResult(
            is_newsletter=False,
            confidence=MODEL_CONFIDENCE,
            method=ClassificationMethod.MODEL,
        )
    return ClassificationResult(
        is_newsletter=False,
        confidence=UNCLEAR_CONFIDENCE,
        method=ClassificationMethod.MODEL_UNCLEAR,
    )


class HybridClassifier:
    """Classify emails with a local model, falling back to rules on any failure."""

    def __init__(
        self,
        config: LLMConfig,
        rules: RuleClassifier | None = None,
        client: ModelClient | None = None,
        session: ClassifierSession | None = None,
    ) -> None:
        """Initialize the hybrid classifier.

        Args:
            config: Model configuration. ``config.enabled = False`` means rules only.
            rules: Rule classifier used for the fallback path.
            client: Model client; created from ``config`` when omitted.
            session: Session state holding the sticky fallback latch.
        """
        self.config = config
        self.rules = rules or RuleClassifier()
        self.session = session or ClassifierSession()
        self.client = client
        if self.client is None and config.enabled:
            self.client = create_model_client(config)

    @property
    def uses_model(self) -> bool:
        return self.config.enabled and self.client is not None

    async def classify(self, record: EmailRecord) -> ClassificationResult:
        """Classify a record. Never raises for model-side failures."""
        if not self.uses_model or self.session.model_unavailable:
            return self._classify_with_rules(record)

        self.session.probes += 1
        try:
            reachable = await self.client.probe()
        except Exception as e:
            self.session.mark_unavailable(f"connectivity probe raised: {e!r}")
            return self._classify_with_rules(record)
        if not reachable:
            self.session.mark_unavailable("connectivity probe failed")
            return self._classify_with_rules(record)

        try:
            self.session.model_calls += 1
            reply = await self.client.generate(
                build_prompt(record),
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            )
            result = parse_response(reply)
        except Exception as e:
            self.session.mark_unavailable(f"classification request failed: {e!r}")
            return self._classify_with_rules(record)

        logger.debug(
            f"Model classified {record.sender!r}: "
            f"{result.is_newsletter} ({result.method.value})"
        )
        return result

    def _classify_with_rules(self, record: EmailRecord) -> ClassificationResult:
        self.session.rule_calls += 1
        return self.rules.evaluate(record)
