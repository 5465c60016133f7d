"""Typed engine settings derived from the ``[workflow]`` and ``[extraction]`` sections."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass

from compliance_workflow.constants import (
    DEFAULT_DOCUMENTATION_GAP_THRESHOLD,
    DEFAULT_FEATURE_SEPARATORS,
    DEFAULT_MIN_TEST_INTENTS_PER_ITEM,
    DEFAULT_REQUIRED_DOCUMENTATION,
)
from compliance_workflow.scope.extraction import KeywordFeatureExtractor


@dataclass(frozen=True, slots=True)
class WorkflowSettings:
    documentation_gap_threshold: float = DEFAULT_DOCUMENTATION_GAP_THRESHOLD
    required_documentation: tuple[str, ...] = DEFAULT_REQUIRED_DOCUMENTATION
    min_test_intents_per_item: int = DEFAULT_MIN_TEST_INTENTS_PER_ITEM
    strip_articles: bool = True
    feature_separators: tuple[str, ...] = DEFAULT_FEATURE_SEPARATORS

    def __post_init__(self) -> None:
        threshold = self.documentation_gap_threshold
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            raise ValueError("documentation_gap_threshold must be a number")
        if not math.isfinite(threshold) or not 0.0 <= threshold <= 1.0:
            raise ValueError("documentation_gap_threshold must be within [0, 1]")
        object.__setattr__(self, "documentation_gap_threshold", float(threshold))

        markers = tuple(item.strip() for item in self.required_documentation)
        if any(not item for item in markers) or len(set(markers)) != len(markers):
            raise ValueError("required_documentation must be unique non-empty strings")
        object.__setattr__(self, "required_documentation", markers)

        minimum = self.min_test_intents_per_item
        if isinstance(minimum, bool) or not isinstance(minimum, int) or minimum < 1:
            raise ValueError("min_test_intents_per_item must be an integer >= 1")

        if not isinstance(self.strip_articles, bool):
            raise ValueError("strip_articles must be a boolean")
        separators = tuple(self.feature_separators)
        if not separators or any(not isinstance(item, str) or not item for item in separators):
            raise ValueError("feature_separators must be non-empty strings")
        object.__setattr__(self, "feature_separators", separators)

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> WorkflowSettings:
        """Build from a validated effective config mapping."""
        workflow = _section(config, "workflow")
        extraction = _section(config, "extraction")
        defaults = cls()
        return cls(
            documentation_gap_threshold=workflow.get(
                "documentation_gap_threshold", defaults.documentation_gap_threshold
            ),  # type: ignore[arg-type]
            required_documentation=tuple(
                workflow.get("required_documentation", defaults.required_documentation)  # type: ignore[arg-type]
            ),
            min_test_intents_per_item=workflow.get(
                "min_test_intents_per_item", defaults.min_test_intents_per_item
            ),  # type: ignore[arg-type]
            strip_articles=extraction.get("strip_articles", defaults.strip_articles),  # type: ignore[arg-type]
            feature_separators=tuple(
                extraction.get("separators", defaults.feature_separators)  # type: ignore[arg-type]
            ),
        )

    def build_extractor(self) -> KeywordFeatureExtractor:
        return KeywordFeatureExtractor(
            separators=self.feature_separators,
            strip_articles=self.strip_articles,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "documentation_gap_threshold": self.documentation_gap_threshold,
            "required_documentation": list(self.required_documentation),
            "min_test_intents_per_item": self.min_test_intents_per_item,
            "strip_articles": self.strip_articles,
            "feature_separators": list(self.feature_separators),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> WorkflowSettings:
        known = {
            "documentation_gap_threshold",
            "required_documentation",
            "min_test_intents_per_item",
            "strip_articles",
            "feature_separators",
        }
        unknown = sorted(key for key in data if key not in known)
        if unknown:
            raise ValueError(f"WorkflowSettings: unexpected fields: {unknown}")
        values = dict(data)
        for key in ("required_documentation", "feature_separators"):
            if key in values:
                raw = values[key]
                if not isinstance(raw, (list, tuple)):
                    raise ValueError(f"WorkflowSettings.{key}: expected array")
                values[key] = tuple(raw)
        return cls(**values)  # type: ignore[arg-type]


def _section(config: Mapping[str, object], name: str) -> Mapping[str, object]:
    section = config.get(name, {})
    if not isinstance(section, Mapping):
        raise ValueError(f"config section [{name}] must be a table")
    return section


__all__ = ["WorkflowSettings"]
