"""Scope tracking: feature extraction and the approved-scope ledger."""

from compliance_workflow.scope.extraction import (
    FeatureExtractor,
    KeywordFeatureExtractor,
    StaticFeatureExtractor,
)
from compliance_workflow.scope.ledger import ScopeLedger

__all__ = [
    "FeatureExtractor",
    "KeywordFeatureExtractor",
    "ScopeLedger",
    "StaticFeatureExtractor",
]
