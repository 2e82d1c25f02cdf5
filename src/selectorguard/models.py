from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

SelectorKind = Literal["css", "xpath", "text"]
Recommendation = Literal["preferred", "acceptable", "avoid"]
Tier = Literal["preferred", "fallbacks", "antiPatterns"]

SELECTOR_KINDS: tuple[str, ...] = ("css", "xpath", "text")
TIERS: tuple[str, ...] = ("preferred", "fallbacks", "antiPatterns")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class SelectorCandidate:
    value: str
    kind: SelectorKind = "css"

    def __post_init__(self) -> None:
        if self.kind not in SELECTOR_KINDS:
            raise ValueError(f"Unsupported selector kind: {self.kind!r}")


@dataclass(frozen=True, slots=True)
class PathStep:
    tag: str
    nth: int


@dataclass(frozen=True, slots=True)
class DomNode:
    tag: str
    attributes: tuple[tuple[str, str], ...]
    text: str
    path: tuple[PathStep, ...]

    def attr(self, key: str) -> str | None:
        for name, value in self.attributes:
            if name == key:
                stripped = value.strip()
                return stripped or None
        return None

    @property
    def depth(self) -> int:
        return max(0, len(self.path) - 1)

    @property
    def nth_of_type(self) -> int:
        return self.path[-1].nth if self.path else 1


@dataclass(frozen=True, slots=True)
class FeatureVector:
    has_stable_id_attribute: bool
    has_aria_label: bool
    has_visible_text: bool
    has_data_attribute: bool
    dom_depth: int
    sibling_position_variance: float
    is_unique_match: bool


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    candidate: SelectorCandidate
    features: FeatureVector
    stability_score: int
    recommendation: Recommendation
    alternatives: tuple[AnalysisResult, ...] = ()
    match_count: int = 0
    warnings: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PageCheck:
    """How one selector fares on one page."""

    label: str
    match_count: int
    is_unique_match: bool
    stability_score: int
    recommendation: Recommendation
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.match_count > 0


@dataclass(frozen=True, slots=True)
class WeightedPattern:
    pattern: str
    stability_score: float = 0.0
    observations: int = 0


@dataclass(frozen=True, slots=True)
class SelectorProfile:
    domain: str
    preferred: tuple[WeightedPattern, ...] = ()
    fallbacks: tuple[WeightedPattern, ...] = ()
    anti_patterns: tuple[WeightedPattern, ...] = ()
    updated_at: datetime | None = None

    def tier_of(self, pattern: str) -> Tier | None:
        for tier, items in (
            ("preferred", self.preferred),
            ("fallbacks", self.fallbacks),
            ("antiPatterns", self.anti_patterns),
        ):
            if any(item.pattern == pattern for item in items):
                return tier  # type: ignore[return-value]
        return None

    def find(self, pattern: str) -> WeightedPattern | None:
        for item in (*self.preferred, *self.fallbacks, *self.anti_patterns):
            if item.pattern == pattern:
                return item
        return None

    @property
    def is_empty(self) -> bool:
        return not (self.preferred or self.fallbacks or self.anti_patterns)


@dataclass(frozen=True, slots=True)
class OutcomeEvent:
    domain: str
    selector: SelectorCandidate
    found: bool
    unique_match: bool
    timestamp: datetime = field(default_factory=utcnow)
