from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Mapping

from playwright.sync_api import Error as PlaywrightError

from .dom_context import HtmlDomContext
from .errors import ResolutionError
from .models import DomNode, PathStep, SelectorCandidate
from .selector_rules import normalize_space

if TYPE_CHECKING:
    from playwright.sync_api import Page

_NODE_PAYLOAD_SCRIPT = """
(el) => {
  const attributes = [];
  for (const attr of el.attributes) {
    attributes.push([attr.name.toLowerCase(), attr.value]);
  }

  const path = [];
  let current = el;
  while (current && current.nodeType === Node.ELEMENT_NODE) {
    let nth = 1;
    let sibling = current;
    while ((sibling = sibling.previousElementSibling)) {
      if (sibling.tagName === current.tagName) nth += 1;
    }
    path.unshift([current.tagName.toLowerCase(), nth]);
    current = current.parentElement;
  }

  return {
    tag: el.tagName.toLowerCase(),
    attributes,
    text: (el.textContent || '').trim().replace(/\\s+/g, ' ').slice(0, 200),
    path,
  };
}
"""


class PlaywrightDomContext:
    """DOM context over a live Playwright page."""

    def __init__(self, page: Page) -> None:
        self.page = page

    def resolve(self, candidate: SelectorCandidate) -> list[DomNode]:
        if not candidate.value.strip():
            raise ResolutionError(candidate.value, "empty selector")
        selector = engine_selector(candidate)
        try:
            handles = self.page.query_selector_all(selector)
            payloads = [handle.evaluate(_NODE_PAYLOAD_SCRIPT) for handle in handles]
        except PlaywrightError as exc:
            reason = normalize_space(str(exc).splitlines()[0] if str(exc) else type(exc).__name__)
            raise ResolutionError(candidate.value, reason) from exc
        return [node_from_payload(payload) for payload in payloads]

    def snapshot(self) -> HtmlDomContext:
        try:
            markup = self.page.content()
        except PlaywrightError as exc:
            raise ResolutionError("<document>", f"page content unavailable: {exc}") from exc
        return HtmlDomContext.from_html(markup)


def engine_selector(candidate: SelectorCandidate) -> str:
    if candidate.kind == "xpath":
        return f"xpath={candidate.value}"
    if candidate.kind == "text":
        return f"text={json.dumps(normalize_space(candidate.value))}"
    return f"css={candidate.value}"


def node_from_payload(payload: Mapping[str, Any]) -> DomNode:
    attributes = tuple(
        (str(name).lower(), str(value)) for name, value in payload.get("attributes") or []
    )
    path = tuple(PathStep(tag=str(tag).lower(), nth=int(nth)) for tag, nth in payload.get("path") or [])
    return DomNode(
        tag=str(payload.get("tag") or "").lower(),
        attributes=attributes,
        text=normalize_space(payload.get("text")),
        path=path,
    )
