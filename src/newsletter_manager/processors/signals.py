"""Heuristic signal extraction driven by a versioned policy document."""

import logging
import re
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from newsletter_manager.exceptions import PolicyError
from newsletter_manager.models import EmailRecord, SignalSet

logger = logging.getLogger(__name__)

SUPPORTED_POLICY_VERSIONS = {1}
DEFAULT_POLICY = "default.yaml"

OPERATORS = {"contains", "contains_any", "starts_with", "matches"}


class SignalCondition(BaseModel):
    """A single test against the sender or text basis of an email."""

    field: Literal["text", "sender"]
    operator: str
    value: Any

    @field_validator("operator")
    @classmethod
    def _known_operator(cls, value: str) -> str:
        operator = value.lower()
        if operator not in OPERATORS:
            raise ValueError(f"Unknown operator: {value}")
        return operator

    @model_validator(mode="after")
    def _check_value(self) -> "SignalCondition":
        if self.operator == "contains_any":
            if not isinstance(self.value, list) or not self.value:
                raise ValueError("contains_any requires a non-empty list value")
            self.value = [str(v).lower() for v in self.value]
        elif self.operator == "matches":
            self.value = str(self.value)
            try:
                re.compile(str(self.value), re.IGNORECASE)
            except re.error as e:
                raise ValueError(f"Invalid pattern {self.value!r}: {e}") from e
        else:
            self.value = str(self.value).lower()
        return self


class Signal(BaseModel):
    """A named signal; all of its conditions must hold."""

    name: str
    conditions: list[SignalCondition] = Field(min_length=1)


class SignalPolicy(BaseModel):
    """Ordered exclusion, strong and medium signal lists."""

    version: int = 1
    exclusions: list[Signal] = Field(default_factory=list)
    strong: list[Signal] = Field(default_factory=list)
    medium: list[Signal] = Field(default_factory=list)

    @field_validator("version")
    @classmethod
    def _supported_version(cls, value: int) -> int:
        if value not in SUPPORTED_POLICY_VERSIONS:
            raise ValueError(f"Unsupported policy version: {value}")
        return value

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SignalPolicy":
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise PolicyError(f"Invalid signal policy: {e}") from e

    @classmethod
    def from_file(cls, path: Path) -> "SignalPolicy":
        """Load a policy from a YAML file."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise PolicyError(f"Could not read signal policy {path}: {e}") from e
        if not isinstance(data, dict):
            raise PolicyError(f"Signal policy {path} must be a mapping")
        return cls.from_dict(data)

    @classmethod
    def default(cls) -> "SignalPolicy":
        """Load the bundled default policy."""
        text = resources.files("newsletter_manager.processors").joinpath("policies").joinpath(
            DEFAULT_POLICY
        ).read_text(encoding="utf-8")
        return cls.from_dict(yaml.safe_load(text))


def load_policy(path: Path | None = None) -> SignalPolicy:
    """Load a policy from path, or the bundled default when path is None."""
    if path is None:
        return SignalPolicy.default()
    logger.debug(f"Loading signal policy from {path}")
    return SignalPolicy.from_file(path)


class SignalExtractor:
    """Turns an email record into exclusion, strong and medium signal vectors."""

    def __init__(self, policy: SignalPolicy | None = None) -> None:
        self.policy = policy or SignalPolicy.default()
        self._patterns: dict[str, re.Pattern[str]] = {}

    def extract(self, record: EmailRecord) -> SignalSet:
        """Evaluate every policy signal against the record."""
        text = f"{record.subject} {record.snippet}".lower()
        sender = record.sender.lower()
        bases = {"text": text, "sender": sender}

        return SignalSet(
            exclusions=tuple(self._evaluate(s, bases) for s in self.policy.exclusions),
            strong=tuple(self._evaluate(s, bases) for s in self.policy.strong),
            medium=tuple(self._evaluate(s, bases) for s in self.policy.medium),
        )

    def matched_signals(self, record: EmailRecord) -> dict[str, list[str]]:
        """Names of the signals that fired, grouped by tier."""
        signals = self.extract(record)
        return {
            "exclusions": _names(self.policy.exclusions, signals.exclusions),
            "strong": _names(self.policy.strong, signals.strong),
            "medium": _names(self.policy.medium, signals.medium),
        }

    def _evaluate(self, signal: Signal, bases: dict[str, str]) -> bool:
        return all(self._test(cond, bases[cond.field]) for cond in signal.conditions)

    def _test(self, condition: SignalCondition, value: str) -> bool:
        operator = condition.operator

        if operator == "contains":
            return condition.value in value

        elif operator == "contains_any":
            return any(v in value for v in condition.value)

        elif operator == "starts_with":
            return value.startswith(condition.value)

        elif operator == "matches":
            return bool(self._pattern(condition.value).search(value))

        return False

    def _pattern(self, expression: str) -> re.Pattern[str]:
        pattern = self._patterns.get(expression)
        if pattern is None:
            pattern = re.compile(expression, re.IGNORECASE)
            self._patterns[expression] = pattern
        return pattern


def _names(signals: list[Signal], flags: tuple[bool, ...]) -> list[str]:
    return [signal.name for signal, flag in zip(signals, flags) if flag]
