"""String similarity primitive shared by header, target and candidate matching."""

from __future__ import annotations

from rapidfuzz import fuzz


def similarity(a: str | None, b: str | None) -> int:
    """Return a symmetric 0-100 similarity ratio.

    Inputs are case-folded and trimmed first, so identical text after that
    scores exactly 100. An empty side always scores 0.
    """
    left = (a or "").strip().casefold()
    right = (b or "").strip().casefold()
    if not left or not right:
        return 0
    if left == right:
        return 100
    # Rounding must not lift a near match to the exact-match score.
    return min(99, int(round(fuzz.ratio(left, right))))
