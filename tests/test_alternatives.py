import pytest

from selectorguard.alternatives import build_result, generate, positional_css_path, positional_xpath
from selectorguard.dom_context import HtmlDomContext
from selectorguard.errors import ResolutionError
from selectorguard.models import SelectorCandidate


def _context(body: str) -> HtmlDomContext:
    return HtmlDomContext.from_html(f"<html><head><title>t</title></head><body>{body}</body></html>")


def test_alternatives_cover_each_available_strategy() -> None:
    context = _context(
        '<form><button data-testid="submit-button" aria-label="Submit order">Submit</button></form>'
    )
    results = generate(SelectorCandidate("[data-testid='submit-button']", "css"), context)
    values = [(item.candidate.kind, item.candidate.value) for item in results]

    assert ("css", '[data-testid="submit-button"]') not in values
    assert ("css", 'button[aria-label="Submit order"]') in values
    assert ("text", "Submit") in values
    assert ("css", "html > body > form:nth-of-type(1) > button:nth-of-type(1)") in values
    assert all(item.alternatives == () for item in results)
    assert all(item.features.is_unique_match for item in results)


def test_alternatives_are_sorted_and_truncated() -> None:
    context = _context(
        '<div><button id="save" data-testid="save-btn" aria-label="Save">Save</button>'
        '<button aria-label="Save">Save</button></div>'
    )
    results = generate(SelectorCandidate("#save", "css"), context)

    assert len(results) == 4
    scores = [item.stability_score for item in results]
    assert scores == sorted(scores, reverse=True)
    assert results[0].candidate.value == '[data-testid="save-btn"]'
    assert results[-1].recommendation == "avoid"

    limited = generate(SelectorCandidate("#save", "css"), context, limit=1)
    assert [item.candidate.value for item in limited] == ['[data-testid="save-btn"]']


def test_positional_path_is_always_available() -> None:
    context = _context("<div><span></span><span></span></div>")
    results = generate(SelectorCandidate("div > span", "css"), context)

    assert len(results) == 1
    assert results[0].candidate.value == "html > body > div:nth-of-type(1) > span:nth-of-type(1)"
    assert results[0].features.is_unique_match


def test_positional_xpath_is_used_when_css_path_duplicates_input() -> None:
    context = _context("<div><span></span></div>")
    candidate = SelectorCandidate("html > body > div:nth-of-type(1) > span:nth-of-type(1)", "css")
    results = generate(candidate, context)

    assert len(results) == 1
    assert results[0].candidate.kind == "xpath"
    assert results[0].candidate.value == "/html[1]/body[1]/div[1]/span[1]"
    assert results[0].features.is_unique_match


def test_unresolvable_selector_raises() -> None:
    context = _context("<div></div>")
    with pytest.raises(ResolutionError):
        generate(SelectorCandidate("#missing", "css"), context)


def test_invalid_limit_is_rejected() -> None:
    context = _context("<div id='main-panel'></div>")
    with pytest.raises(ValueError):
        generate(SelectorCandidate("#main-panel", "css"), context, limit=0)


def test_positional_helpers_follow_node_path() -> None:
    context = _context("<ul><li>a</li><li>b</li></ul>")
    node = context.resolve(SelectorCandidate("li:nth-of-type(2)", "css"))[0]

    assert positional_css_path(node) == "html > body > ul:nth-of-type(1) > li:nth-of-type(2)"
    assert positional_xpath(node) == "/html[1]/body[1]/ul[1]/li[2]"


def test_text_alternative_targets_the_analyzed_element() -> None:
    context = _context('<form><button id="go"><span>Save</span></button></form>')
    target = context.resolve(SelectorCandidate("#go", "css"))[0]
    results = generate(SelectorCandidate("#go", "css"), context)
    values = [(item.candidate.kind, item.candidate.value) for item in results]

    assert ("text", "Save") not in values
    assert ("xpath", "//button[normalize-space(.)='Save']") in values
    for item in results:
        matched = context.resolve(item.candidate)
        assert [node.path for node in matched] == [target.path]


def test_text_alternative_stays_plain_when_element_owns_text() -> None:
    context = _context('<form><button id="go">Save</button></form>')
    results = generate(SelectorCandidate("#go", "css"), context)

    assert ("text", "Save") in [(item.candidate.kind, item.candidate.value) for item in results]


def test_results_carry_improvement_suggestions() -> None:
    context = _context("<div><span>a</span><span>b</span></div>")
    nodes = context.resolve(SelectorCandidate("span", "css"))
    result = build_result(SelectorCandidate("span", "css"), nodes)

    assert "Add more specific attributes to make selector unique" in result.suggestions
