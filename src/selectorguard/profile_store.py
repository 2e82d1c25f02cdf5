from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
import threading
from typing import Callable
from urllib.parse import urlparse

from .models import TIERS, SelectorProfile, Tier, WeightedPattern, utcnow
from .persistence import JsonProfileRepository, ProfileFlusher

logger = logging.getLogger("selectorguard.store")

SEED_SCORES: dict[str, float] = {
    "preferred": 90.0,
    "fallbacks": 50.0,
    "antiPatterns": 10.0,
}

PatternUpdate = Callable[[WeightedPattern | None, Tier | None], tuple[WeightedPattern, Tier]]


@dataclass(slots=True)
class _PatternEntry:
    tier: Tier
    stability_score: float
    observations: int

    def as_weighted(self, pattern: str) -> WeightedPattern:
        return WeightedPattern(pattern=pattern, stability_score=self.stability_score, observations=self.observations)


@dataclass(slots=True)
class _DomainState:
    lock: threading.Lock = field(default_factory=threading.Lock)
    # Keyed by pattern, so a pattern can only ever sit in one tier.
    patterns: dict[str, _PatternEntry] = field(default_factory=dict)
    updated_at: datetime | None = None
    loaded: bool = False
    cleared: bool = False


def normalize_domain(value: str) -> str:
    text = str(value or "").strip().lower()
    if "://" in text:
        text = urlparse(text).hostname or ""
    else:
        text = text.split("/", 1)[0]
        if text.count(":") == 1:
            text = text.split(":", 1)[0]
    return text.strip(".") or "unknown"


class DomainProfileStore:
    """Owns every SelectorProfile; callers only ever see frozen snapshots."""

    def __init__(
        self,
        repository: JsonProfileRepository | None = None,
        flush_interval: float = 2.0,
        max_backoff: float = 60.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self._clock = clock
        self._registry_lock = threading.Lock()
        self._domains: dict[str, _DomainState] = {}
        self._flusher: ProfileFlusher | None = None
        if repository is not None:
            self._flusher = ProfileFlusher(
                repository,
                self._persisted_view,
                interval=flush_interval,
                max_backoff=max_backoff,
            )

    def get(self, domain: str) -> SelectorProfile:
        return self.snapshot(domain)

    def snapshot(self, domain: str) -> SelectorProfile:
        key = normalize_domain(domain)
        state = self._state(key)
        with state.lock:
            self._ensure_loaded(key, state)
            return _freeze(key, state)

    def upsert_pattern(
        self,
        domain: str,
        pattern: str,
        tier: Tier,
        stability_score: float | None = None,
    ) -> WeightedPattern:
        if tier not in TIERS:
            raise ValueError(f"Unknown tier: {tier!r}")
        text = pattern.strip()
        if not text:
            raise ValueError("pattern must not be empty")

        def _move(current: WeightedPattern | None, _tier: Tier | None) -> tuple[WeightedPattern, Tier]:
            if stability_score is not None:
                value = max(0.0, min(100.0, float(stability_score)))
            elif current is not None:
                value = current.stability_score
            else:
                value = SEED_SCORES[tier]
            observations = current.observations if current is not None else 0
            return WeightedPattern(text, value, observations), tier

        weighted, _ = self.update_pattern(domain, text, _move)
        return weighted

    def update_pattern(self, domain: str, pattern: str, update: PatternUpdate) -> tuple[WeightedPattern, Tier]:
        key = normalize_domain(domain)
        state = self._state(key)
        with state.lock:
            self._ensure_loaded(key, state)
            entry = state.patterns.get(pattern)
            current = entry.as_weighted(pattern) if entry is not None else None
            weighted, tier = update(current, entry.tier if entry is not None else None)
            if tier not in TIERS:
                raise ValueError(f"Unknown tier: {tier!r}")
            state.patterns[pattern] = _PatternEntry(
                tier=tier,
                stability_score=max(0.0, min(100.0, weighted.stability_score)),
                observations=max(0, weighted.observations),
            )
            state.updated_at = self._clock()
            state.cleared = False
            result = state.patterns[pattern].as_weighted(pattern)
        self._mark_dirty(key)
        return result, tier

    def reset(self, domain: str) -> None:
        key = normalize_domain(domain)
        state = self._state(key)
        with state.lock:
            state.patterns.clear()
            state.updated_at = None
            state.loaded = True
            state.cleared = True
        logger.info("Profile reset for %s", key)
        self._mark_dirty(key)

    def replace_profile(self, profile: SelectorProfile) -> SelectorProfile:
        key = normalize_domain(profile.domain)
        state = self._state(key)
        with state.lock:
            state.patterns.clear()
            for tier, items in (
                ("preferred", profile.preferred),
                ("fallbacks", profile.fallbacks),
                ("antiPatterns", profile.anti_patterns),
            ):
                for item in items:
                    if item.pattern in state.patterns:
                        continue
                    state.patterns[item.pattern] = _PatternEntry(
                        tier=tier,  # type: ignore[arg-type]
                        stability_score=max(0.0, min(100.0, item.stability_score)),
                        observations=max(0, item.observations),
                    )
            state.updated_at = profile.updated_at or self._clock()
            state.loaded = True
            state.cleared = not state.patterns
            snapshot = _freeze(key, state)
        self._mark_dirty(key)
        return snapshot

    def domains(self) -> list[str]:
        names: set[str] = set()
        if self.repository is not None:
            names.update(profile.domain for profile in self.repository.load_all())
        with self._registry_lock:
            states = dict(self._domains)
        for name, state in states.items():
            with state.lock:
                if state.cleared:
                    names.discard(name)
                elif state.patterns:
                    names.add(name)
        return sorted(names)

    def flush(self) -> list[str]:
        if self._flusher is None:
            return []
        return self._flusher.flush_pending(force=True)

    def close(self) -> list[str]:
        if self._flusher is None:
            return []
        return self._flusher.close()

    def _state(self, key: str) -> _DomainState:
        with self._registry_lock:
            state = self._domains.get(key)
            if state is None:
                state = _DomainState()
                self._domains[key] = state
            return state

    def _ensure_loaded(self, key: str, state: _DomainState) -> None:
        # Caller holds state.lock.
        if state.loaded:
            return
        state.loaded = True
        if self.repository is None:
            return
        stored = self.repository.load(key)
        if stored is None:
            return
        for tier, items in (
            ("preferred", stored.preferred),
            ("fallbacks", stored.fallbacks),
            ("antiPatterns", stored.anti_patterns),
        ):
            for item in items:
                state.patterns.setdefault(
                    item.pattern,
                    _PatternEntry(tier=tier, stability_score=item.stability_score, observations=item.observations),  # type: ignore[arg-type]
                )
        state.updated_at = stored.updated_at
        logger.debug("Loaded %s patterns for %s", len(state.patterns), key)

    def _persisted_view(self, key: str) -> SelectorProfile | None:
        state = self._state(key)
        with state.lock:
            if state.cleared and not state.patterns:
                return None
            return _freeze(key, state)

    def _mark_dirty(self, key: str) -> None:
        if self._flusher is not None:
            self._flusher.mark_dirty(key)


def _freeze(domain: str, state: _DomainState) -> SelectorProfile:
    tiers: dict[str, list[WeightedPattern]] = {tier: [] for tier in TIERS}
    for pattern, entry in state.patterns.items():
        tiers[entry.tier].append(entry.as_weighted(pattern))
    for items in tiers.values():
        items.sort(key=lambda item: (-item.stability_score, item.pattern))
    return SelectorProfile(
        domain=domain,
        preferred=tuple(tiers["preferred"]),
        fallbacks=tuple(tiers["fallbacks"]),
        anti_patterns=tuple(tiers["antiPatterns"]),
        updated_at=state.updated_at,
    )
