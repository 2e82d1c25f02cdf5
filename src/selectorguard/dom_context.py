from __future__ import annotations

from typing import Any, Protocol

from cssselect import SelectorError
from lxml import etree, html
from lxml.cssselect import CSSSelector

from .errors import ResolutionError
from .models import DomNode, PathStep, SelectorCandidate
from .selector_rules import normalize_space

_INNERMOST_TEXT_XPATH = etree.XPath(
    "//*[normalize-space(.) = $text][not(*[normalize-space(.) = $text])]"
)


class DomContext(Protocol):
    def resolve(self, candidate: SelectorCandidate) -> list[DomNode]:
        """Return matching nodes in document order.

        Raises ResolutionError when the selector cannot be evaluated. An empty
        list is a valid answer.
        """
        ...


class HtmlDomContext:
    """DOM context over a static HTML snapshot."""

    def __init__(self, document: Any) -> None:
        self._document = document

    @classmethod
    def from_html(cls, markup: str | bytes) -> HtmlDomContext:
        text = markup.decode("utf-8", "replace") if isinstance(markup, bytes) else markup
        if not text.strip():
            raise ResolutionError("<document>", "empty HTML document")
        try:
            document = html.document_fromstring(markup)
        except (etree.ParserError, ValueError) as exc:
            raise ResolutionError("<document>", f"unparseable HTML: {exc}") from exc
        return cls(document)

    def snapshot(self) -> HtmlDomContext:
        return self

    def resolve(self, candidate: SelectorCandidate) -> list[DomNode]:
        if not candidate.value.strip():
            raise ResolutionError(candidate.value, "empty selector")
        if candidate.kind == "css":
            elements = self._select_css(candidate.value)
        elif candidate.kind == "xpath":
            elements = self._select_xpath(candidate.value)
        else:
            elements = _INNERMOST_TEXT_XPATH(self._document, text=normalize_space(candidate.value))
        return [node_from_element(element) for element in elements]

    def _select_css(self, selector: str) -> list[Any]:
        try:
            compiled = CSSSelector(selector, translator="html")
        except SelectorError as exc:
            raise ResolutionError(selector, f"invalid CSS syntax: {exc}") from exc
        return list(compiled(self._document))

    def _select_xpath(self, selector: str) -> list[Any]:
        try:
            result = self._document.xpath(selector)
        except etree.XPathError as exc:
            raise ResolutionError(selector, f"invalid XPath: {exc}") from exc
        if not isinstance(result, list):
            raise ResolutionError(selector, "XPath does not select elements")
        elements = []
        for item in result:
            if not isinstance(item, etree._Element) or not isinstance(item.tag, str):
                raise ResolutionError(selector, "XPath does not select elements")
            elements.append(item)
        return elements


def node_from_element(element: Any) -> DomNode:
    steps: list[PathStep] = []
    current = element
    while current is not None:
        steps.append(PathStep(tag=str(current.tag).lower(), nth=_nth_of_type(current)))
        current = current.getparent()

    attributes = tuple((str(name).lower(), str(value)) for name, value in element.attrib.items())
    return DomNode(
        tag=str(element.tag).lower(),
        attributes=attributes,
        text=normalize_space(element.text_content()),
        path=tuple(reversed(steps)),
    )


def _nth_of_type(element: Any) -> int:
    return 1 + sum(1 for sibling in element.itersiblings(preceding=True) if sibling.tag == element.tag)
