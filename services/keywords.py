"""
Keyword diff between a target description and a user prompt.

Tokens are lower-cased, stripped of punctuation (hyphens survive, so
"close-up" stays one token) and filtered against a stopword list. Above the
beginner tier bare shape nouns are dropped from the target side: by then the
player already names shapes and feedback should push scene, material and
lighting instead.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from models.schemas import AttributeCategory, Tier
from services.tiers import get_rule

STOPWORDS = frozenset({
    "a", "an", "the", "with", "and", "or", "of", "on", "in", "at", "to", "for", "by", "from",
    "over", "under", "into", "near", "next", "up", "down", "is", "are", "be",
    "very", "some", "more", "most", "much", "many", "few", "less", "least",
    "this", "that", "these", "those", "it", "its", "as", "like", "while",
    "between", "behind", "front",
})

SHAPE_WORDS = frozenset({
    "circle", "circles", "square", "squares", "triangle", "triangles", "rectangle",
    "rectangles", "oval", "ovals", "hexagon", "pentagon", "octagon", "diamond",
    "star", "shape", "shapes",
})

# Canonical shape for each word a beginner might use
SHAPE_ALIASES = {
    "circle": "circle", "sphere": "circle", "dot": "circle", "ball": "circle", "orb": "circle",
    "square": "square", "cube": "square", "box": "square",
    "triangle": "triangle", "pyramid": "triangle",
    "rectangle": "rectangle",
    "oval": "oval", "ellipse": "oval",
    "hexagon": "hexagon",
    "pentagon": "pentagon",
    "diamond": "diamond", "rhombus": "diamond",
    "star": "star",
    "heart": "heart",
}

ATTRIBUTE_HINTS: dict[AttributeCategory, tuple[str, ...]] = {
    AttributeCategory.color: (
        "red", "blue", "green", "yellow", "orange", "purple", "pink", "white", "black",
        "gray", "grey", "brown", "gold", "silver",
    ),
    AttributeCategory.material: (
        "wood", "wooden", "metal", "glass", "plastic", "stone", "marble", "fabric", "ceramic",
    ),
    AttributeCategory.lighting: (
        "sunlight", "shadow", "shadows", "soft light", "hard light", "studio", "backlit",
        "sunny", "golden hour", "overcast",
    ),
    AttributeCategory.placement: (
        "center", "centred", "centered", "middle", "left", "right", "close-up", "closeup",
        "wide", "overhead", "top-down", "background", "foreground",
    ),
    AttributeCategory.style: (
        "vintage", "modern", "minimal", "realistic", "photo", "photograph", "macro", "film",
        "bokeh", "cinematic",
    ),
}

MAX_MISSING_KEYWORDS = 8

_HINT_PATTERNS = {
    category: [re.compile(r"(?<![a-z0-9])" + re.escape(h) + r"(?![a-z0-9])") for h in hints]
    for category, hints in ATTRIBUTE_HINTS.items()
}


@dataclass
class KeywordDiff:
    subject: str
    missing_keywords: list[str] = field(default_factory=list)
    missing_attributes: list[AttributeCategory] = field(default_factory=list)
    target_keywords: list[str] = field(default_factory=list)
    prompt_keywords: list[str] = field(default_factory=list)


def tokenize(text: str) -> list[str]:
    text = (text or "").lower()
    text = re.sub(r"[^a-z0-9\s-]", " ", text)
    return [t for t in text.split() if t.strip("-")]


def extract_keywords(text: str) -> list[str]:
    return [t for t in tokenize(text) if t not in STOPWORDS and len(t) > 2]


def has_category(text: str, category: AttributeCategory) -> bool:
    lowered = (text or "").lower()
    return any(p.search(lowered) for p in _HINT_PATTERNS[category])


def find_shape(text: str) -> Optional[str]:
    for token in tokenize(text):
        singular = token[:-1] if token.endswith("s") and token[:-1] in SHAPE_ALIASES else token
        if singular in SHAPE_ALIASES:
            return SHAPE_ALIASES[singular]
    return None


def find_color(text: str) -> Optional[str]:
    colors = ATTRIBUTE_HINTS[AttributeCategory.color]
    for token in tokenize(text):
        if token in colors:
            return "gray" if token == "grey" else token
    return None


def short_label(text: str) -> str:
    """
    Beginner targets are a couple of words already ("glowing heart"); longer
    generation prompts are reduced to colour + shape ("red circle").
    """
    words = tokenize(text)
    if 0 < len(words) <= 3:
        return " ".join(words)
    color = find_color(text)
    shape = find_shape(text)
    if shape:
        return f"{color} {shape}" if color else shape
    keywords = extract_keywords(text)
    if keywords:
        return " ".join(keywords[:2])
    return (text or "").strip() or "target"


def analyze_keywords(target: str, prompt: str, tier: Optional[Tier] = None) -> KeywordDiff:
    target_lower = (target or "").lower()
    prompt_lower = (prompt or "").lower()

    target_keywords = extract_keywords(target_lower)
    if tier is not None and get_rule(tier).filter_shape_words:
        target_keywords = [w for w in target_keywords if w not in SHAPE_WORDS]
    prompt_keywords = extract_keywords(prompt_lower)

    prompt_set = set(prompt_keywords)
    missing: list[str] = []
    for word in target_keywords:
        if word not in prompt_set and word not in missing:
            missing.append(word)

    missing_attributes = [
        category
        for category in ATTRIBUTE_HINTS
        if has_category(target_lower, category) and not has_category(prompt_lower, category)
    ]

    return KeywordDiff(
        subject=" ".join(target_keywords[:2]) or "target",
        missing_keywords=missing[:MAX_MISSING_KEYWORDS],
        missing_attributes=missing_attributes,
        target_keywords=target_keywords,
        prompt_keywords=prompt_keywords,
    )
