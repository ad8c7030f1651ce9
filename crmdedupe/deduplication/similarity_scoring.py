"""
Similarity Scoring

Edit-distance primitives for the fuzzy name pass of the duplicate matcher.
"""

from typing import List


def levenshtein_distance(a: str, b: str) -> int:
    """Minimum single-character insertions, deletions or substitutions turning ``a`` into ``b``.

    Keeps two rows sized to the shorter string, so memory is
    O(min(len(a), len(b))).
    """
    if a == b:
        return 0
    # Columns run over the shorter string
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    prev: List[int] = list(range(len(b) + 1))
    curr: List[int] = [0] * (len(b) + 1)

    for i, char_a in enumerate(a, start=1):
        curr[0] = i
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            curr[j] = min(
                prev[j] + 1,         # deletion
                curr[j - 1] + 1,     # insertion
                prev[j - 1] + cost,  # substitution
            )
        prev, curr = curr, prev

    return prev[len(b)]


def is_fuzzy_name_match(name_a: str, name_b: str, max_distance: int = 2, min_length: int = 3) -> bool:
    """Whether two normalized full names are close enough for the name pass.

    Both names must be at least ``min_length`` long, and the distance must be
    within ``max_distance`` and strictly below the shorter name's length.
    """
    if len(name_a) < min_length or len(name_b) < min_length:
        return False
    distance = levenshtein_distance(name_a, name_b)
    return distance <= max_distance and distance < min(len(name_a), len(name_b))
