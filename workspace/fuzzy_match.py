"""
Find / replace with a whitespace-tolerant fallback.

Rewrites echoed back by a model frequently differ from the live buffer only in
whitespace or line wrapping, so a pure literal match is too brittle. A fully
fuzzy match on short strings, on the other hand, produces false positives.
Matching is therefore tiered:

  1. exact   - first literal occurrence of the needle
  2. spacing - only for needles of at least `min_chars` (after trimming) that
               split into at least `min_tokens` whitespace-separated tokens:
               each token is matched literally, any run of whitespace between
               them matches any other run of whitespace

The replacement text is always inserted verbatim (no backreference expansion).
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

EXACT = "exact"
SPACING = "spacing"

DEFAULT_MIN_CHARS = 16
DEFAULT_MIN_TOKENS = 3


@dataclass(frozen=True)
class TextMatch:
    start: int
    end: int
    strategy: str


def build_whitespace_pattern(
    needle: str,
    min_chars: int = DEFAULT_MIN_CHARS,
    min_tokens: int = DEFAULT_MIN_TOKENS,
) -> Optional[Pattern]:
    """Compile the whitespace-tolerant pattern for `needle`, or None if it is too short."""
    trimmed = needle.strip()
    if len(trimmed) < min_chars:
        return None
    tokens = trimmed.split()
    if len(tokens) < min_tokens:
        return None
    return re.compile(r"\s+".join(re.escape(token) for token in tokens), re.MULTILINE)


def locate(
    content: str,
    needle: str,
    min_chars: int = DEFAULT_MIN_CHARS,
    min_tokens: int = DEFAULT_MIN_TOKENS,
) -> Optional[TextMatch]:
    """Find the first match of `needle` in `content` using the tiered strategy."""
    if not needle:
        return None

    index = content.find(needle)
    if index != -1:
        return TextMatch(index, index + len(needle), EXACT)

    pattern = build_whitespace_pattern(needle, min_chars, min_tokens)
    if pattern is None:
        return None
    match = pattern.search(content)
    if match is None:
        return None
    return TextMatch(match.start(), match.end(), SPACING)


def fuzzy_find_and_replace(
    content: str,
    needle: str,
    replacement: str,
    min_chars: int = DEFAULT_MIN_CHARS,
    min_tokens: int = DEFAULT_MIN_TOKENS,
) -> Tuple[str, int, Optional[str]]:
    """
    Replace the first match of `needle` in `content`.

    Returns:
        (new_content, match_count, error). On failure new_content is the
        untouched input, match_count is 0 and error explains why.
    """
    if not needle:
        return content, 0, "Search text cannot be empty"

    found = locate(content, needle, min_chars, min_tokens)
    if found is None:
        return content, 0, f"Could not find a match for search text ({len(needle)} characters)"

    return content[:found.start] + replacement + content[found.end:], 1, None


# =============================================================================
# Search panel helpers
# =============================================================================

def find_occurrences(content: str, query: str, case_sensitive: bool = True) -> List[int]:
    """Start offsets of every non-overlapping literal occurrence of `query`."""
    if not query:
        return []
    flags = 0 if case_sensitive else re.IGNORECASE
    return [m.start() for m in re.finditer(re.escape(query), content, flags)]


def next_occurrence(offsets: List[int], position: int) -> Optional[int]:
    """First occurrence strictly after `position`, wrapping to the top."""
    if not offsets:
        return None
    for offset in offsets:
        if offset > position:
            return offset
    return offsets[0]


def previous_occurrence(offsets: List[int], position: int) -> Optional[int]:
    """Last occurrence strictly before `position`, wrapping to the bottom."""
    if not offsets:
        return None
    for offset in reversed(offsets):
        if offset < position:
            return offset
    return offsets[-1]
