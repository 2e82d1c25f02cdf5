from __future__ import annotations

import logging
from statistics import pvariance
from typing import Sequence

from .dom_context import DomContext
from .errors import ResolutionError
from .models import DomNode, FeatureVector, SelectorCandidate
from .selector_rules import TEST_ATTR_PRIORITY, is_stable_hook

logger = logging.getLogger("selectorguard.features")

STABLE_HOOK_ATTRS = (*TEST_ATTR_PRIORITY, "id")


def extract(
    candidate: SelectorCandidate,
    dom_context: DomContext,
    history: Sequence[DomContext] = (),
) -> FeatureVector:
    nodes = dom_context.resolve(candidate)
    return extract_from_nodes(candidate, nodes, history)


def extract_from_nodes(
    candidate: SelectorCandidate,
    nodes: Sequence[DomNode],
    history: Sequence[DomContext] = (),
) -> FeatureVector:
    if not nodes:
        return FeatureVector(
            has_stable_id_attribute=False,
            has_aria_label=False,
            has_visible_text=False,
            has_data_attribute=False,
            dom_depth=0,
            sibling_position_variance=0.0,
            is_unique_match=False,
        )

    node = nodes[0]
    return FeatureVector(
        has_stable_id_attribute=has_stable_id_attribute(node),
        has_aria_label=node.attr("aria-label") is not None,
        has_visible_text=bool(node.text),
        has_data_attribute=any(name.startswith("data-") for name, _ in node.attributes),
        dom_depth=node.depth,
        sibling_position_variance=sibling_position_variance(candidate, node, history),
        is_unique_match=len(nodes) == 1,
    )


def has_stable_id_attribute(node: DomNode) -> bool:
    return any(is_stable_hook(attr, node.attr(attr)) for attr in STABLE_HOOK_ATTRS)


def sibling_position_variance(
    candidate: SelectorCandidate,
    node: DomNode,
    history: Sequence[DomContext],
) -> float:
    if not history:
        return 0.0

    samples = [node.nth_of_type]
    for snapshot in history:
        try:
            matches = snapshot.resolve(candidate)
        except ResolutionError as exc:
            logger.debug("Skipping historical snapshot: %s", exc)
            continue
        if matches:
            samples.append(matches[0].nth_of_type)

    if len(samples) < 2:
        return 0.0
    return float(pvariance(samples))
