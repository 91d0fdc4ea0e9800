"""
Similarity primitives.

  - cosine_similarity  — embedding vectors, result in [-1, 1]
  - to_unit_interval   — maps a cosine into [0, 1]; callers apply it explicitly
  - lexical_similarity — token-set Jaccard overlap, the similarity of last resort

Pure functions: no I/O, no state, never raise on odd input.
"""

import math
import re
from typing import Sequence


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    # Only the common prefix is compared when lengths differ
    if a is None or b is None:
        return 0.0
    n = min(len(a), len(b))
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for i in range(n):
        x, y = float(a[i]), float(b[i])
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0 or norm_b == 0:
        return 0.0
    value = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    if math.isnan(value):
        return 0.0
    return max(-1.0, min(1.0, value))


def to_unit_interval(cosine: float) -> float:
    return max(0.0, min(1.0, (cosine + 1.0) / 2.0))


def _token_set(text: str) -> set[str]:
    text = (text or "").lower()
    text = re.sub(r"[^\w\s]", " ", text, flags=re.UNICODE)
    return set(text.split())


def lexical_similarity(a: str, b: str) -> float:
    set_a = _token_set(a)
    set_b = _token_set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)
