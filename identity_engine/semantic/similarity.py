from __future__ import annotations

import math
from typing import Sequence


def jaro_winkler(left: str, right: str) -> float:
    """Jaro-Winkler similarity in [0, 1]; 1 means identical strings."""
    if left == right:
        return 1.0
    if not left or not right:
        return 0.0

    match_window = max(len(left), len(right)) // 2 - 1
    left_matches = [False] * len(left)
    right_matches = [False] * len(right)

    matches = 0
    for i, char in enumerate(left):
        start = max(0, i - match_window)
        end = min(i + match_window + 1, len(right))
        for j in range(start, end):
            if right_matches[j] or right[j] != char:
                continue
            left_matches[i] = True
            right_matches[j] = True
            matches += 1
            break

    if matches == 0:
        return 0.0

    transpositions = 0
    k = 0
    for i, char in enumerate(left):
        if not left_matches[i]:
            continue
        while not right_matches[k]:
            k += 1
        if char != right[k]:
            transpositions += 1
        k += 1

    jaro = (
        matches / len(left)
        + matches / len(right)
        + (matches - transpositions / 2) / matches
    ) / 3

    prefix = 0
    for i in range(min(4, len(left), len(right))):
        if left[i] != right[i]:
            break
        prefix += 1

    return jaro + prefix * 0.1 * (1 - jaro)


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    if not left or not right or len(left) != len(right):
        return 0.0
    dot = sum(a * b for a, b in zip(left, right))
    left_norm = math.sqrt(sum(a * a for a in left))
    right_norm = math.sqrt(sum(b * b for b in right))
    if left_norm <= 0 or right_norm <= 0:
        return 0.0
    return dot / (left_norm * right_norm)
