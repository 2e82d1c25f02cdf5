"""Structural templates used as learning keys.

Many distinct selectors on a domain share one template, e.g.
``[data-testid="save"]`` and ``button[data-testid='cancel']`` both learn into
``[data-testid]``.
"""

from __future__ import annotations

import re

from .models import SelectorCandidate
from .selector_rules import normalize_space

TEXT_PATTERN = "text()"

_COMBINATORS = (">", "+", "~")
_ATTRIBUTE_BLOCK = re.compile(r"""\[(?:[^\]"']|"[^"]*"|'[^']*')*\]""")
_ATTRIBUTE_NAME = re.compile(r"\[\s*([^\s~|^$*=\]]+)")
_PSEUDO = re.compile(r"(:{1,2}[\w-]+)(\((?:[^()]|\([^()]*\))*\))?")
_ID = re.compile(r"#(?:\\.|[\w-])+")
_CLASS = re.compile(r"\.(?:\\.|[\w-])+")
_TAG = re.compile(r"^([A-Za-z][\w-]*|\*)")

_XPATH_LITERAL = r"""(?:"[^"]*"|'[^']*')"""
_XPATH_TEXT_FUNCS = r"(?:text\(\)|normalize-space\(\s*(?:\.|text\(\))?\s*\)|string\(\s*\.?\s*\)|\.)"


def derive_pattern(candidate: SelectorCandidate) -> str:
    if candidate.kind == "text":
        return TEXT_PATTERN
    if candidate.kind == "xpath":
        return xpath_template(candidate.value)
    return css_template(candidate.value)


def css_template(selector: str) -> str:
    groups = [group for group in _split_top_level(selector, ",") if group.strip()]
    return ", ".join(_template_complex(group) for group in groups)


def xpath_template(selector: str) -> str:
    text = normalize_space(selector, limit=10_000)
    text = re.sub(
        rf"(contains|starts-with)\(\s*{_XPATH_TEXT_FUNCS}\s*,\s*{_XPATH_LITERAL}\s*\)",
        "text()",
        text,
    )
    text = re.sub(rf"{_XPATH_TEXT_FUNCS}\s*=\s*{_XPATH_LITERAL}", "text()", text)
    text = re.sub(
        rf"(contains|starts-with)\(\s*(@[\w:-]+)\s*,\s*{_XPATH_LITERAL}\s*\)",
        r"\2",
        text,
    )
    text = re.sub(rf"(@[\w:-]+)\s*=\s*{_XPATH_LITERAL}", r"\1", text)
    text = re.sub(r"\[\s*\d+\s*\]", "[n]", text)
    text = re.sub(_XPATH_LITERAL, "'?'", text)
    return text


def _template_complex(selector: str) -> str:
    tokens = _tokenize_css(selector)
    parts: list[str] = []
    for token in tokens:
        if token == " ":
            parts.append(" ")
        elif token in _COMBINATORS:
            parts.append(f" {token} ")
        else:
            parts.append(_template_compound(token))
    return "".join(parts).strip()


def _template_compound(compound: str) -> str:
    attributes = [
        match.group(1).lower()
        for block in _ATTRIBUTE_BLOCK.findall(compound)
        if (match := _ATTRIBUTE_NAME.match(block))
    ]
    remainder = _ATTRIBUTE_BLOCK.sub("", compound)
    pseudos = _PSEUDO.findall(remainder)
    remainder = _PSEUDO.sub("", remainder)

    has_id = bool(_ID.search(remainder))
    has_class = bool(_CLASS.search(remainder))
    tag_match = _TAG.match(remainder)

    pieces: list[str] = []
    if tag_match and not (has_id or attributes):
        pieces.append(tag_match.group(1).lower())
    if has_id:
        pieces.append("#id")
    if has_class:
        pieces.append(".class")
    pieces.extend(f"[{name}]" for name in attributes)
    for name, args in pseudos:
        pieces.append(f"{name.lower()}(n)" if args else name.lower())
    return "".join(pieces) or "*"


def _tokenize_css(selector: str) -> list[str]:
    tokens: list[str] = []
    buffer: list[str] = []
    depth = 0
    quote: str | None = None
    previous = ""

    def flush() -> None:
        if buffer:
            tokens.append("".join(buffer))
            buffer.clear()

    for char in selector.strip():
        if quote:
            buffer.append(char)
            if char == quote and previous != "\\":
                quote = None
        elif char in "'\"":
            quote = char
            buffer.append(char)
        elif char in "[(":
            depth += 1
            buffer.append(char)
        elif char in "])":
            depth = max(0, depth - 1)
            buffer.append(char)
        elif depth == 0 and char in _COMBINATORS:
            flush()
            if tokens and tokens[-1] == " ":
                tokens[-1] = char
            else:
                tokens.append(char)
        elif depth == 0 and char.isspace():
            flush()
            if tokens and tokens[-1] not in (" ", *_COMBINATORS):
                tokens.append(" ")
        else:
            buffer.append(char)
        previous = char
    flush()

    while tokens and tokens[-1] in (" ", *_COMBINATORS):
        tokens.pop()
    return tokens


def _split_top_level(selector: str, separator: str) -> list[str]:
    pieces: list[str] = []
    buffer: list[str] = []
    depth = 0
    quote: str | None = None
    for char in selector:
        if quote:
            if char == quote:
                quote = None
        elif char in "'\"":
            quote = char
        elif char in "[(":
            depth += 1
        elif char in "])":
            depth = max(0, depth - 1)
        elif char == separator and depth == 0:
            pieces.append("".join(buffer))
            buffer = []
            continue
        buffer.append(char)
    pieces.append("".join(buffer))
    return pieces
