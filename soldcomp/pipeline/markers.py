"""Target-property marker recognition.

Each pattern is a small pure function over one cell of text; callers compose
them. A marker is either a prefix such as ``"TARGET = 7 Fernbank Close"``
(the trailing text is returned as the remainder) or a cell that reads like a
bare marker word (``"Target"``, ``"tgt"``, a near miss such as ``"Targt"``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from soldcomp.common.fuzzy import similarity

TARGET_VARIATIONS = (
    "target",
    "target property",
    "target:",
    "target is",
    "tgt",
    "subject property",
    "subject",
)

# More specific prefixes first: "target property:" must not be read as
# "target" followed by the address "property: ...".
TARGET_PREFIX_PATTERNS = (
    re.compile(r"^target\s+property\s*:?\s*", re.IGNORECASE),
    re.compile(r"^target\s+is\s*", re.IGNORECASE),
    re.compile(r"^target\s*=\s*", re.IGNORECASE),
    re.compile(r"^target\s*:\s*", re.IGNORECASE),
    re.compile(r"^target\b\s*", re.IGNORECASE),
    re.compile(r"^tgt\b\s*:?\s*", re.IGNORECASE),
    re.compile(r"^subject\s+property\s*:?\s*", re.IGNORECASE),
    re.compile(r"^subject\b\s*:?\s*", re.IGNORECASE),
)

MARKER_FUZZY_THRESHOLD = 80

_LEADING_PUNCTUATION_RE = re.compile(r"^[,:=\s]+")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class TargetMarker:
    indicator: str
    remainder: str


def match_target_prefix(text: str) -> TargetMarker | None:
    stripped = text.strip()
    for pattern in TARGET_PREFIX_PATTERNS:
        match = pattern.match(stripped)
        if match is None:
            continue
        remainder = _tidy(stripped[match.end() :])
        return TargetMarker(indicator=stripped[: match.end()].strip(), remainder=remainder)
    return None


def match_marker_word(text: str) -> TargetMarker | None:
    """A cell that is nothing but a (possibly misspelt) marker word."""
    value = text.strip().lower()
    if not value:
        return None
    for variation in TARGET_VARIATIONS:
        if similarity(value, variation) > MARKER_FUZZY_THRESHOLD:
            return TargetMarker(indicator=text.strip(), remainder="")
    return None


def find_target_marker(text: str | None) -> TargetMarker | None:
    if not text or not isinstance(text, str):
        return None
    return match_target_prefix(text) or match_marker_word(text)


def clean_target_text(text: str) -> str:
    """Remove one leading marker prefix, keeping the address text after it."""
    if not text:
        return text
    marker = match_target_prefix(text)
    if marker is None:
        return _tidy(text)
    return marker.remainder


def _tidy(text: str) -> str:
    text = _LEADING_PUNCTUATION_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()
