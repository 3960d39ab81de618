# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 Spectrue Contributors
"""
Single-winner ranking shared by fact representatives and media selection.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, TypeVar

T = TypeVar("T")


def pick_best(
    items: Iterable[T],
    *,
    score: Callable[[T], float],
    tiebreak: Callable[[T], Any],
    eligible: Callable[[T], bool] | None = None,
) -> T | None:
    """
    Highest `score` among eligible items; equal scores fall back to the
    smallest `tiebreak` key. Ineligible items never win, whatever their score.
    """
    candidates = [i for i in items if eligible is None or eligible(i)]
    if not candidates:
        return None
    return min(candidates, key=lambda i: (-score(i), tiebreak(i)))


def rank(
    items: Iterable[T],
    *,
    score: Callable[[T], float],
    tiebreak: Callable[[T], Any],
) -> list[T]:
    return sorted(items, key=lambda i: (-score(i), tiebreak(i)))
