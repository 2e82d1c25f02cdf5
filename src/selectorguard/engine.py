from __future__ import annotations

from collections import deque
import logging
import threading
from typing import Any, Iterable, Mapping

from .alternatives import build_result, generate_for_node, propose_drafts, resolve_draft, same_identity
from .config import EngineSettings, load_settings
from .dom_context import DomContext
from .errors import ResolutionError
from .learning import LearningUpdater
from .models import AnalysisResult, OutcomeEvent, PageCheck, SelectorCandidate, SelectorProfile
from .patterns import derive_pattern
from .persistence import JsonProfileRepository, profile_from_document, profile_to_document
from .profile_store import DomainProfileStore, normalize_domain

logger = logging.getLogger("selectorguard.engine")


class SnapshotArchive:
    """Bounded per-domain history of DOM snapshots."""

    def __init__(self, size: int) -> None:
        self.size = max(0, size)
        self._lock = threading.Lock()
        self._snapshots: dict[str, deque[DomContext]] = {}

    def add(self, domain: str, snapshot: DomContext) -> None:
        if self.size == 0:
            return
        key = normalize_domain(domain)
        with self._lock:
            self._snapshots.setdefault(key, deque(maxlen=self.size)).append(snapshot)

    def history(self, domain: str | None) -> tuple[DomContext, ...]:
        if not domain:
            return ()
        with self._lock:
            return tuple(self._snapshots.get(normalize_domain(domain), ()))


class SelectorResilienceEngine:
    def __init__(
        self,
        settings: EngineSettings | None = None,
        store: DomainProfileStore | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        if store is None:
            repository = JsonProfileRepository(self.settings.profiles_dir) if self.settings.persist else None
            store = DomainProfileStore(
                repository,
                flush_interval=self.settings.flush_interval,
                max_backoff=self.settings.max_backoff,
            )
        self.store = store
        self.learning = LearningUpdater(store)
        self.archive = SnapshotArchive(self.settings.history_size)

    def __enter__(self) -> SelectorResilienceEngine:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def analyze(
        self,
        candidate: SelectorCandidate,
        dom_context: DomContext,
        domain: str | None = None,
        limit: int | None = None,
    ) -> AnalysisResult:
        history = self.archive.history(domain)
        matches = dom_context.resolve(candidate)
        alternatives: list[AnalysisResult] = []
        if matches:
            alternatives = generate_for_node(
                candidate,
                matches[0],
                dom_context,
                limit=limit or self.settings.alternative_limit,
                history=history,
            )
        return build_result(candidate, matches, history, alternatives)

    def record_outcome(self, event: OutcomeEvent) -> None:
        self.learning.record_outcome(event)

    def get_profile(self, domain: str) -> SelectorProfile:
        return self.store.get(domain)

    def reset_profile(self, domain: str) -> None:
        self.store.reset(domain)

    def record_snapshot(self, domain: str, dom_context: Any) -> None:
        snapshot = dom_context.snapshot() if hasattr(dom_context, "snapshot") else dom_context
        self.archive.add(domain, snapshot)

    def suggest_patterns(self, domain: str, limit: int = 5) -> list[str]:
        profile = self.store.get(domain)
        return [item.pattern for item in (*profile.preferred, *profile.fallbacks)][: max(0, limit)]

    def repair(
        self,
        candidate: SelectorCandidate,
        dom_context: DomContext,
        domain: str | None = None,
    ) -> AnalysisResult | None:
        """Find a selector that uniquely locates the element ``candidate`` targets.

        A selector that still matches exactly one element is returned as is.
        When it matches several, the best unique alternative that resolves to
        the first match wins. When it matches nothing, the element is looked up
        in the domain's archived snapshots and its hooks are retried against
        the current DOM; a retried hook must land on an element with the same
        tag and a surviving hook or text. Patterns the domain has learned to
        avoid are skipped.
        """
        history = self.archive.history(domain)
        try:
            matches = dom_context.resolve(candidate)
        except ResolutionError as exc:
            logger.info("Repairing unparseable selector: %s", exc)
            matches = []

        if len(matches) == 1:
            return build_result(candidate, matches, history)

        avoided: set[str] = set()
        if domain:
            avoided = {item.pattern for item in self.store.get(domain).anti_patterns}

        if matches:
            options = generate_for_node(candidate, matches[0], dom_context, limit=16, history=history)
        else:
            options = self._options_from_history(candidate, dom_context, history)

        for option in options:
            if not option.features.is_unique_match:
                continue
            if derive_pattern(option.candidate) in avoided:
                continue
            logger.info("Repaired selector %r -> %r", candidate.value, option.candidate.value)
            return option
        return None

    def stability_report(self, domain: str) -> dict[str, Any]:
        profile = self.store.get(domain)
        patterns = [*profile.preferred, *profile.fallbacks, *profile.anti_patterns]
        mean = sum(item.stability_score for item in patterns) / len(patterns) if patterns else 0.0
        return {
            "domain": profile.domain,
            "patterns": len(patterns),
            "preferred": len(profile.preferred),
            "fallbacks": len(profile.fallbacks),
            "antiPatterns": len(profile.anti_patterns),
            "averageScore": round(mean, 2),
            "observations": sum(item.observations for item in patterns),
        }

    def test(self, candidate: SelectorCandidate, contexts: Mapping[str, DomContext]) -> list[PageCheck]:
        """Run ``candidate`` against several labelled pages."""
        checks: list[PageCheck] = []
        for label, dom_context in contexts.items():
            try:
                matches = dom_context.resolve(candidate)
            except ResolutionError as exc:
                checks.append(PageCheck(label, 0, False, 0, "avoid", error=exc.reason))
                continue
            result = build_result(candidate, matches)
            checks.append(
                PageCheck(
                    label=label,
                    match_count=result.match_count,
                    is_unique_match=result.features.is_unique_match,
                    stability_score=result.stability_score,
                    recommendation=result.recommendation,
                )
            )
        return checks

    def export_profiles(self) -> list[dict[str, Any]]:
        return [profile_to_document(self.store.get(domain)) for domain in self.store.domains()]

    def import_profiles(self, documents: Iterable[Mapping[str, Any]]) -> int:
        imported = 0
        for document in documents:
            try:
                profile = profile_from_document(document)
            except (TypeError, ValueError, OverflowError) as exc:
                logger.warning("Skipping invalid profile document: %s", exc)
                continue
            self.store.replace_profile(profile)
            imported += 1
        return imported

    def flush(self) -> list[str]:
        return self.store.flush()

    def close(self) -> None:
        failed = self.store.close()
        if failed:
            logger.warning("Profiles not persisted on shutdown: %s", ", ".join(failed))

    def _options_from_history(
        self,
        candidate: SelectorCandidate,
        dom_context: DomContext,
        history: tuple[DomContext, ...],
    ) -> list[AnalysisResult]:
        for snapshot in reversed(history):
            try:
                previous = snapshot.resolve(candidate)
            except ResolutionError:
                continue
            if not previous:
                continue

            options: list[tuple[int, AnalysisResult]] = []
            for order, draft in enumerate(propose_drafts(previous[0])):
                resolved = resolve_draft(draft, previous[0], dom_context, same_identity)
                if resolved is not None:
                    options.append((order, build_result(*resolved, history)))
            options.sort(key=lambda item: (-item[1].stability_score, item[0]))
            return [result for _, result in options]
        return []
