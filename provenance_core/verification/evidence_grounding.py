# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 Spectrue Contributors
"""
Evidence grounding.

Locates a model-supplied evidence snippet inside the document it claims to
quote and returns the document's own text for that span. Matching tolerates
whitespace runs, letter case and typographic quotes/dashes; the returned
string is always a verbatim slice of the document.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

_ELLIPSIS_RE = re.compile(r"\s*(?:\.\.\.|…|\[\.\.\.\])\s*")
_MIN_FRAGMENT_CHARS = 20

_CHAR_FOLD = {
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
    "–": "-",
    "—": "-",
    " ": " ",
}


def _fold_with_map(text: str) -> tuple[str, list[int]]:
    """
    Fold text for matching. Returns the folded string and, for each folded
    char, the index of the original char it came from.
    """
    out: list[str] = []
    index: list[int] = []
    prev_space = True
    for i, ch in enumerate(text):
        ch = _CHAR_FOLD.get(ch, ch)
        if ch.isspace():
            if prev_space:
                continue
            out.append(" ")
            index.append(i)
            prev_space = True
            continue
        for folded in ch.casefold():
            out.append(folded)
            index.append(i)
        prev_space = False
    if out and out[-1] == " ":
        out.pop()
        index.pop()
    return "".join(out), index


def _bound(snippet: str, max_chars: int) -> str:
    s = snippet.strip()
    if len(s) <= max_chars:
        return s
    cut = s[:max_chars]
    # Prefer ending on a word boundary when one is reasonably close.
    space = cut.rfind(" ")
    if space >= max_chars * 0.6:
        cut = cut[:space]
    return cut.rstrip()


def _locate_exact_or_folded(content: str, needle: str, folded_content: str, index: list[int]) -> str | None:
    if not needle.strip():
        return None
    if needle in content:
        return needle
    folded_needle, _ = _fold_with_map(needle)
    if not folded_needle:
        return None
    pos = folded_content.find(folded_needle)
    if pos < 0:
        return None
    start = index[pos]
    end = index[pos + len(folded_needle) - 1] + 1
    return content[start:end]


def locate_snippet(content: str, snippet: str, *, max_chars: int = 500) -> str | None:
    """
    Return the verbatim document text matching `snippet`, bounded to
    `max_chars`, or None when the snippet is not in the document.
    """
    if not content or not snippet or not snippet.strip():
        return None

    folded_content, index = _fold_with_map(content)
    found = _locate_exact_or_folded(content, snippet.strip(), folded_content, index)
    if found is None:
        # Elided quotes ("A ... B"): keep the longest fragment that is present.
        fragments = [f for f in _ELLIPSIS_RE.split(snippet) if len(f.strip()) >= _MIN_FRAGMENT_CHARS]
        for fragment in sorted(fragments, key=len, reverse=True):
            found = _locate_exact_or_folded(content, fragment.strip(), folded_content, index)
            if found is not None:
                break
    if found is None:
        return None
    return _bound(found, max_chars)


def is_grounded(content: str, snippet: str) -> bool:
    """True when `snippet` occurs in `content` up to whitespace/case folding."""
    if not snippet:
        return False
    if snippet in content:
        return True
    folded_content, _ = _fold_with_map(content)
    folded_snippet, _ = _fold_with_map(snippet)
    return bool(folded_snippet) and folded_snippet in folded_content
