from __future__ import annotations

import logging

from .models import OutcomeEvent, Tier, WeightedPattern
from .patterns import derive_pattern
from .profile_store import DomainProfileStore

logger = logging.getLogger("selectorguard.learning")

FOUND_UNIQUE_SCORE = 100.0
FOUND_AMBIGUOUS_SCORE = 50.0
NOT_FOUND_SCORE = 0.0

# A fresh pattern starts from one virtual neutral observation.
PRIOR_SCORE = 50.0
PRIOR_WEIGHT = 1
MAX_RATE_DIVISOR = 20

PREFERRED_MIN_SCORE = 80.0
PREFERRED_MIN_OBSERVATIONS = 5
ANTI_PATTERN_MAX_SCORE = 30.0


def observed_score(event: OutcomeEvent) -> float:
    if not event.found:
        return NOT_FOUND_SCORE
    if event.unique_match:
        return FOUND_UNIQUE_SCORE
    return FOUND_AMBIGUOUS_SCORE


def learning_rate(observations: int) -> float:
    return 1.0 / min(observations + 1 + PRIOR_WEIGHT, MAX_RATE_DIVISOR)


def apply_observation(current: WeightedPattern | None, pattern: str, observed: float) -> WeightedPattern:
    old_score = current.stability_score if current is not None else PRIOR_SCORE
    observations = current.observations if current is not None else 0
    alpha = learning_rate(observations)
    new_score = old_score + alpha * (observed - old_score)
    return WeightedPattern(
        pattern=pattern,
        stability_score=max(0.0, min(100.0, new_score)),
        observations=observations + 1,
    )


def tier_for(pattern: WeightedPattern) -> Tier:
    if pattern.stability_score >= PREFERRED_MIN_SCORE and pattern.observations >= PREFERRED_MIN_OBSERVATIONS:
        return "preferred"
    if pattern.stability_score < ANTI_PATTERN_MAX_SCORE:
        return "antiPatterns"
    return "fallbacks"


class LearningUpdater:
    def __init__(self, store: DomainProfileStore) -> None:
        self.store = store

    def record_outcome(self, event: OutcomeEvent) -> None:
        try:
            self._apply(event)
        except Exception:
            logger.exception("Failed to record outcome for %s (%s)", event.domain, event.selector.value)

    def _apply(self, event: OutcomeEvent) -> tuple[WeightedPattern, Tier]:
        pattern = derive_pattern(event.selector)
        observed = observed_score(event)

        def _update(current: WeightedPattern | None, previous_tier: Tier | None) -> tuple[WeightedPattern, Tier]:
            updated = apply_observation(current, pattern, observed)
            tier = tier_for(updated)
            if previous_tier is not None and previous_tier != tier:
                logger.info(
                    "Pattern %s on %s moved %s -> %s (score=%.1f, observations=%s)",
                    pattern,
                    event.domain,
                    previous_tier,
                    tier,
                    updated.stability_score,
                    updated.observations,
                )
            return updated, tier

        return self.store.update_pattern(event.domain, pattern, _update)
