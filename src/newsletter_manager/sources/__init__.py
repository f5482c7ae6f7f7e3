"""Candidate sources."""

from .base import CandidateSource
from .file import JsonFileSource

__all__ = [
    "CandidateSource",
    "JsonFileSource",
]
