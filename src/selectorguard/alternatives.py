from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, Sequence

from .dom_context import DomContext
from .errors import ResolutionError
from .features import extract_from_nodes
from .models import AnalysisResult, DomNode, SelectorCandidate
from .scoring import recommend, score_breakdown, suggestions
from .selector_rules import (
    TEST_ATTR_PRIORITY,
    build_id_selector,
    escape_css_string,
    normalize_selector,
    selector_warnings,
    xpath_literal,
)

logger = logging.getLogger("selectorguard.alternatives")

DEFAULT_LIMIT = 4
MAX_TEXT_LENGTH = 80
IDENTITY_ATTRS = (*TEST_ATTR_PRIORITY, "id", "aria-label", "name")

NodeMatcher = Callable[[DomNode, DomNode], bool]


@dataclass(frozen=True, slots=True)
class CandidateDraft:
    strategy: str
    candidate: SelectorCandidate


def generate(
    candidate: SelectorCandidate,
    dom_context: DomContext,
    limit: int = DEFAULT_LIMIT,
    history: Sequence[DomContext] = (),
) -> list[AnalysisResult]:
    nodes = dom_context.resolve(candidate)
    if not nodes:
        raise ResolutionError(candidate.value, "selector does not resolve to any element")
    return generate_for_node(candidate, nodes[0], dom_context, limit=limit, history=history)


def generate_for_node(
    candidate: SelectorCandidate,
    node: DomNode,
    dom_context: DomContext,
    limit: int = DEFAULT_LIMIT,
    history: Sequence[DomContext] = (),
) -> list[AnalysisResult]:
    """Score alternatives for ``node``; each one resolves to ``node`` itself."""
    if limit < 1:
        raise ValueError("limit must be a positive integer")

    ranked: list[tuple[int, AnalysisResult]] = []
    for order, draft in enumerate(_unique_drafts(candidate, propose_drafts(node))):
        resolved = resolve_draft(draft, node, dom_context, same_position)
        if resolved is not None:
            ranked.append((order, build_result(*resolved, history)))

    if not ranked:
        fallback = SelectorCandidate(positional_xpath(node), "xpath")
        ranked.append((0, build_result(fallback, dom_context.resolve(fallback), history)))

    ranked.sort(key=lambda item: (-item[1].stability_score, item[0]))
    return [result for _, result in ranked[:limit]]


def resolve_draft(
    draft: CandidateDraft,
    node: DomNode,
    dom_context: DomContext,
    matches_node: NodeMatcher,
) -> tuple[SelectorCandidate, list[DomNode]] | None:
    """Resolve ``draft`` and keep it only when it still points at ``node``."""
    attempts = [draft.candidate]
    if draft.strategy == "text":
        # Exact text lands on the innermost element; a descendant may own it.
        attempts.append(text_xpath(node))

    for attempt in attempts:
        try:
            matches = dom_context.resolve(attempt)
        except ResolutionError as exc:
            logger.debug("Dropping %s alternative: %s", draft.strategy, exc)
            continue
        if any(matches_node(match, node) for match in matches):
            return attempt, matches
    logger.debug("Dropping %s alternative: it resolves to a different element", draft.strategy)
    return None


def same_position(match: DomNode, node: DomNode) -> bool:
    return match.path == node.path


def same_identity(match: DomNode, reference: DomNode) -> bool:
    """Loose identity across page versions: same tag plus a surviving hook or text."""
    if match.tag != reference.tag:
        return False
    for attr in IDENTITY_ATTRS:
        value = reference.attr(attr)
        if value and match.attr(attr) == value:
            return True
    return bool(reference.text) and match.text == reference.text


def build_result(
    candidate: SelectorCandidate,
    matches: Sequence[DomNode],
    history: Sequence[DomContext] = (),
    alternatives: Sequence[AnalysisResult] = (),
) -> AnalysisResult:
    features = extract_from_nodes(candidate, matches, history)
    breakdown = score_breakdown(features)
    return AnalysisResult(
        candidate=candidate,
        features=features,
        stability_score=breakdown.total,
        recommendation=recommend(breakdown.total),
        alternatives=tuple(alternatives),
        match_count=len(matches),
        warnings=tuple(selector_warnings(candidate, len(matches))),
        suggestions=tuple(suggestions(breakdown, len(matches))),
    )


def propose_drafts(node: DomNode) -> list[CandidateDraft]:
    drafts: list[CandidateDraft] = []

    for attr in TEST_ATTR_PRIORITY:
        value = node.attr(attr)
        if value:
            drafts.append(
                CandidateDraft("test_attr", SelectorCandidate(f'[{attr}="{escape_css_string(value)}"]', "css"))
            )

    id_value = node.attr("id")
    if id_value:
        drafts.append(CandidateDraft("id", SelectorCandidate(build_id_selector(id_value), "css")))

    aria_label = node.attr("aria-label")
    if aria_label:
        css = f'{node.tag}[aria-label="{escape_css_string(aria_label)}"]'
        drafts.append(CandidateDraft("aria_label", SelectorCandidate(css, "css")))

    if node.text and len(node.text) <= MAX_TEXT_LENGTH:
        drafts.append(CandidateDraft("text", SelectorCandidate(node.text, "text")))

    drafts.append(CandidateDraft("positional_css", SelectorCandidate(positional_css_path(node), "css")))
    return drafts


def text_xpath(node: DomNode) -> SelectorCandidate:
    return SelectorCandidate(f"//{node.tag}[normalize-space(.)={xpath_literal(node.text)}]", "xpath")


def positional_css_path(node: DomNode) -> str:
    parts: list[str] = []
    for step in node.path:
        if step.tag in {"html", "body"}:
            parts.append(step.tag)
        else:
            parts.append(f"{step.tag}:nth-of-type({step.nth})")
    return " > ".join(parts) or node.tag


def positional_xpath(node: DomNode) -> str:
    return "/" + "/".join(f"{step.tag}[{step.nth}]" for step in node.path)


def _unique_drafts(candidate: SelectorCandidate, drafts: Sequence[CandidateDraft]) -> list[CandidateDraft]:
    seen = {normalize_selector(candidate)}
    unique: list[CandidateDraft] = []
    for draft in drafts:
        key = normalize_selector(draft.candidate)
        if key in seen:
            continue
        seen.add(key)
        unique.append(draft)
    return unique
