from __future__ import annotations

from dataclasses import dataclass
import math

from .models import FeatureVector, Recommendation

ID_BONUS = 35.0
DATA_ATTR_BONUS = 25.0
ARIA_BONUS = 15.0
TEXT_BONUS = 10.0
DEPTH_PENALTY_PER_LEVEL = 1.5
MAX_PENALIZED_DEPTH = 10
MAX_VARIANCE_PENALTY = 20.0
AMBIGUITY_PENALTY = 100.0
AMBIGUOUS_SCORE_CEILING = 20

PREFERRED_THRESHOLD = 80
ACCEPTABLE_THRESHOLD = 50


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    depth_penalty: float
    variance_penalty: float
    id_bonus: float
    aria_bonus: float
    text_bonus: float
    data_attr_bonus: float
    ambiguity_penalty: float
    total: int


def score_breakdown(features: FeatureVector) -> ScoreBreakdown:
    depth_penalty = min(max(features.dom_depth, 0), MAX_PENALIZED_DEPTH) * DEPTH_PENALTY_PER_LEVEL
    variance_penalty = min(max(features.sibling_position_variance, 0.0), MAX_VARIANCE_PENALTY)
    id_bonus = ID_BONUS if features.has_stable_id_attribute else 0.0
    # A stable test hook is usually a data-* attribute; it is credited once.
    data_attr_bonus = DATA_ATTR_BONUS if features.has_data_attribute and not id_bonus else 0.0
    aria_bonus = ARIA_BONUS if features.has_aria_label else 0.0
    text_bonus = TEXT_BONUS if features.has_visible_text else 0.0
    ambiguity_penalty = 0.0 if features.is_unique_match else AMBIGUITY_PENALTY

    raw = (
        100.0
        - depth_penalty
        - variance_penalty
        + id_bonus
        + aria_bonus
        + text_bonus
        + data_attr_bonus
        - ambiguity_penalty
    )
    # Round half up.
    total = int(math.floor(max(0.0, min(100.0, raw)) + 0.5))
    if not features.is_unique_match:
        total = min(total, AMBIGUOUS_SCORE_CEILING)

    return ScoreBreakdown(
        depth_penalty=depth_penalty,
        variance_penalty=variance_penalty,
        id_bonus=id_bonus,
        aria_bonus=aria_bonus,
        text_bonus=text_bonus,
        data_attr_bonus=data_attr_bonus,
        ambiguity_penalty=ambiguity_penalty,
        total=total,
    )


def score(features: FeatureVector) -> tuple[int, Recommendation]:
    total = score_breakdown(features).total
    return total, recommend(total)


def recommend(stability_score: float) -> Recommendation:
    if stability_score >= PREFERRED_THRESHOLD:
        return "preferred"
    if stability_score >= ACCEPTABLE_THRESHOLD:
        return "acceptable"
    return "avoid"


DEEP_NESTING_PENALTY = 9.0


def suggestions(breakdown: ScoreBreakdown, match_count: int) -> list[str]:
    """Turn the weak terms of a score into improvement hints."""
    hints: list[str] = []
    if match_count == 0:
        hints.append("Check selector syntax and ensure elements exist")
    elif breakdown.ambiguity_penalty:
        hints.append("Add more specific attributes to make selector unique")
    if not breakdown.id_bonus and not breakdown.data_attr_bonus:
        hints.append("Use data attributes or IDs for better resilience")
    if breakdown.depth_penalty >= DEEP_NESTING_PENALTY:
        hints.append("Target a closer stable ancestor; the element is deeply nested")
    if breakdown.variance_penalty:
        hints.append("Element position changes between page versions; avoid position-based selectors")
    if match_count and not breakdown.aria_bonus and not breakdown.text_bonus:
        hints.append("Add an aria-label or visible text to anchor the element semantically")
    return hints
