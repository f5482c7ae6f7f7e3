"""Email classification components."""

from .llm import ClassifierSession, HybridClassifier
from .rules import RuleClassifier
from .signals import SignalExtractor, SignalPolicy, load_policy

__all__ = [
    "ClassifierSession",
    "HybridClassifier",
    "RuleClassifier",
    "SignalExtractor",
    "SignalPolicy",
    "load_policy",
]
