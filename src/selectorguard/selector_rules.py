from __future__ import annotations

import re
from math import log2

from .models import SelectorCandidate

ROOT_ID_BLOCKLIST = {"__next", "root", "app", "__nuxt", "gatsby-focus-wrapper"}
ROOT_ID_BLOCKLIST_LOWER = {item.lower() for item in ROOT_ID_BLOCKLIST}

TEST_ATTR_PRIORITY = (
    "data-testid",
    "data-test",
    "data-qa",
    "data-cy",
    "data-e2e",
)

_TOKEN_SPLIT = re.compile(r"[-_:.\s]+")
_UUID_PATTERN = re.compile(r"[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}", re.IGNORECASE)
_REACT_ID_PATTERN = re.compile(r"^:r[0-9a-z]+:$", re.IGNORECASE)

_FRAMEWORK_ID_PATTERNS = (
    re.compile(r"(^|[-_:])(j_idt|jdt_)\d+", re.IGNORECASE),
    re.compile(r"^(ember|ext-gen|ext-comp|yui_|gwt-uid-|mui-|react-select-)\d", re.IGNORECASE),
)

_POSITION_PATTERNS = (
    re.compile(r":nth-(child|of-type|last-child|last-of-type)\(", re.IGNORECASE),
    re.compile(r"\[\d+\]"),
)

_CSS_SAFE_ID_PATTERN = re.compile(r"^-?[A-Za-z_][A-Za-z0-9_-]*$")


def normalize_space(value: str | None, limit: int = 200) -> str:
    if not value:
        return ""
    compact = re.sub(r"\s+", " ", str(value)).strip()
    return compact[:limit] if compact else ""


def shannon_entropy(value: str) -> float:
    text = value.strip()
    if not text:
        return 0.0
    total = len(text)
    frequencies: dict[str, int] = {}
    for char in text:
        frequencies[char] = frequencies.get(char, 0) + 1

    entropy = 0.0
    for count in frequencies.values():
        probability = count / total
        entropy -= probability * log2(probability)
    return entropy


def digit_ratio(value: str) -> float:
    text = value.strip()
    if not text:
        return 0.0
    digits = sum(1 for char in text if char.isdigit())
    return digits / len(text)


def has_semantic_word(token: str) -> bool:
    # A letter run that reads like a word: long enough, has a vowel, is not hex.
    for run in re.findall(r"[A-Za-z]{4,}", token):
        if not re.search(r"[aeiouy]", run, flags=re.IGNORECASE):
            continue
        if re.fullmatch(r"[a-f]+", run, flags=re.IGNORECASE):
            continue
        return True
    return False


def has_hash_like_pattern(value: str) -> bool:
    text = value.strip()
    if not text:
        return False
    if _UUID_PATTERN.search(text):
        return True
    if re.fullmatch(r"[a-f0-9]{8,}", text, flags=re.IGNORECASE) and re.search(r"\d", text):
        return True
    if re.search(r"[a-f0-9]{10,}", text, flags=re.IGNORECASE) and digit_ratio(text) > 0.2:
        return True
    return False


def is_machine_generated_token(token: str) -> bool:
    text = token.strip()
    if not text:
        return False
    if has_hash_like_pattern(text):
        return True
    if re.search(r"\d{4,}", text):
        return True
    if len(text) >= 8 and text.isalnum() and re.search(r"\d", text) and not has_semantic_word(text):
        return True
    return False


def is_machine_generated_value(value: str) -> bool:
    text = normalize_space(value)
    if not text:
        return True
    if _REACT_ID_PATTERN.match(text):
        return True
    if _UUID_PATTERN.search(text):
        return True
    if any(pattern.search(text) for pattern in _FRAMEWORK_ID_PATTERNS):
        return True
    if shannon_entropy(text) >= 4.2 and digit_ratio(text) > 0.25:
        return True
    return any(is_machine_generated_token(token) for token in _TOKEN_SPLIT.split(text))


def is_blocked_root_id(id_value: str) -> bool:
    return id_value.strip().lower() in ROOT_ID_BLOCKLIST_LOWER


def is_stable_hook(attr: str, value: str | None) -> bool:
    if not value or not value.strip():
        return False
    attribute = attr.strip().lower()
    if attribute == "id" and is_blocked_root_id(value):
        return False
    return not is_machine_generated_value(value)


def is_css_safe_id(value: str) -> bool:
    return bool(_CSS_SAFE_ID_PATTERN.fullmatch(value.strip()))


def escape_css_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def xpath_literal(value: str) -> str:
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    pieces = value.split("'")
    quoted = [f"'{piece}'" for piece in pieces]
    return "concat(" + ", \"'\", ".join(quoted) + ")"


def build_id_selector(raw_id: str) -> str:
    id_value = raw_id.strip()
    if is_css_safe_id(id_value):
        return f"#{id_value}"
    return f'[id="{escape_css_string(id_value)}"]'


def is_position_based(value: str) -> bool:
    return any(pattern.search(value) for pattern in _POSITION_PATTERNS)


def normalize_selector(candidate: SelectorCandidate) -> str:
    text = normalize_space(candidate.value, limit=10_000)
    if candidate.kind == "css":
        text = re.sub(r"\s*([>+~])\s*", r" \1 ", text)
        text = re.sub(r"\[\s*([\w-]+)\s*([~|^$*]?=)\s*'([^'\"]*)'\s*\]", r'[\1\2"\3"]', text)
        text = re.sub(r"\[\s*([\w-]+)\s*([~|^$*]?=)\s*([^'\"\]\s]+)\s*\]", r'[\1\2"\3"]', text)
    return f"{candidate.kind}:{text}"


def selector_warnings(candidate: SelectorCandidate, match_count: int) -> list[str]:
    warnings: list[str] = []
    value = candidate.value

    if match_count == 0:
        warnings.append("Selector matches no elements")
    elif match_count > 1:
        warnings.append(f"Selector matches {match_count} elements - may be too broad")

    if is_position_based(value):
        warnings.append("Position-based selectors are fragile")
    if len(value) > 100:
        warnings.append("Selector is very long and may be fragile")
    if candidate.kind == "css" and "*" in re.sub(r"\[[^\]]*\]", "", value):
        warnings.append("Universal selector (*) can impact performance")
    if candidate.kind != "text" and "#" not in value and "data-" not in value and "@id" not in value:
        warnings.append("Consider using IDs or data attributes for better stability")
    return warnings
