"""Feature extraction: turning a raw request into candidate scope item names."""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from compliance_workflow.constants import (
    ARTICLES,
    DEFAULT_FEATURE_SEPARATORS,
    MAX_SCOPE_NAME_LENGTH,
)

_TRAILING_PUNCTUATION = ".!?:\"'`()[]{}"
_WHITESPACE = re.compile(r"\s+")


@runtime_checkable
class FeatureExtractor(Protocol):
    """Collaborator returning the features a request asks for, in request order."""

    def extract(self, raw_request: str) -> tuple[str, ...]: ...


class KeywordFeatureExtractor:
    """Deterministic splitter over a fixed set of list separators.

    ``"The name, an email and phone"`` yields ``("name", "email", "phone")``. No stemming or
    synonym handling is attempted. Fragments longer than a scope name may be
    are not features and are dropped.
    """

    __slots__ = ("_pattern", "_strip_articles", "_separators")

    def __init__(
        self,
        *,
        separators: Iterable[str] = DEFAULT_FEATURE_SEPARATORS,
        strip_articles: bool = True,
    ) -> None:
        ordered = tuple(separator for separator in separators if separator)
        if not ordered:
            raise ValueError("at least one non-empty separator is required")
        self._separators = ordered
        self._strip_articles = strip_articles
        # Longest separators first so " and " wins over a bare space.
        alternatives = sorted({separator.lower() for separator in ordered}, key=len, reverse=True)
        self._pattern = re.compile("|".join(re.escape(item) for item in alternatives))

    @property
    def separators(self) -> tuple[str, ...]:
        return self._separators

    def extract(self, raw_request: str) -> tuple[str, ...]:
        text = f" {raw_request.lower()} "
        features: dict[str, None] = {}
        for fragment in self._pattern.split(text):
            name = self._normalize(fragment)
            if name and len(name) <= MAX_SCOPE_NAME_LENGTH:
                features[name] = None
        return tuple(features)

    def _normalize(self, fragment: str) -> str:
        words = _WHITESPACE.sub(" ", fragment).strip(" " + _TRAILING_PUNCTUATION).split(" ")
        if self._strip_articles:
            while words and words[0] in ARTICLES:
                words = words[1:]
        return " ".join(word for word in words if word).strip(_TRAILING_PUNCTUATION)


class StaticFeatureExtractor:
    """Returns a fixed feature list regardless of the request text."""

    __slots__ = ("_features",)

    def __init__(self, features: Iterable[str]) -> None:
        self._features = tuple(dict.fromkeys(item.strip() for item in features if item.strip()))

    def extract(self, raw_request: str) -> tuple[str, ...]:
        return self._features


__all__ = ["FeatureExtractor", "KeywordFeatureExtractor", "StaticFeatureExtractor"]
