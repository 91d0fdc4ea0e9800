"""
Feedback service.

Builds the two lines shown under a score:
  - note — a corrective phrase anchored to the TARGET, not the player's prompt
  - tip  — the attribute categories to work on next

Phrasing depends on the tier's feedback style (see services/tiers.py). When
no concrete gap is found the tip comes from a fixed pool, picked by a hash of
the inputs so the same prompt always gets the same advice.
"""

import re

from models.schemas import Feedback, Tier
from services.keywords import KeywordDiff, analyze_keywords, find_color, find_shape, short_label, tokenize
from services.tiers import get_rule, next_tier, tier_label

GENERIC_TIPS = (
    "Add a camera angle (macro, wide, overhead)",
    "Specify time of day and lighting (golden hour, overcast)",
    "Mention material and texture (wood, metal, glossy, matte)",
    "Add style cues (cinematic, vintage, studio photo)",
    "Control depth of field (shallow focus, bokeh)",
    "Refine background/foreground separation",
    "Boost contrast and shadows for clarity",
    "State color palette explicitly",
    "Describe placement and distance (centered, close-up)",
    "Use environment context (on a table, on the beach)",
)

# (label, word roots looked for in the target and the prompt)
ATMOSPHERE_CUES = (
    ("fog/smoke", ("fog", "smok", "mist")),
    ("weather", ("rain", "wet")),
    ("reflections", ("reflect", "glass")),
)

HIGH_SCORE = 90
MAX_NOTE_WORDS = 9
MAX_NOTE_EXTRAS = 5

_PREPOSITIONS = r"(?:with|on|in|at|of|and)"


def seeded_index(seed: str, size: int) -> int:
    h = 0
    for ch in seed:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return h % size


def pick_deterministic(options, seed: str):
    return options[seeded_index(seed, len(options))]


def sanitize_phrase(phrase: str) -> str:
    text = " ".join((phrase or "").split())
    text = re.sub(rf"\b{_PREPOSITIONS}(?:\s+{_PREPOSITIONS})+\b", lambda m: m.group(0).split()[0], text)
    text = re.sub(r"\b(\w+)(?:\s+\1\b)+", r"\1", text)
    text = re.sub(r"^(?:with\s+)+", "", text)
    text = re.sub(r"(?:[\s,;:.!?-]|\bwith\b)+$", "", text)
    return text.strip(" ,")


def _unaddressed_cues(target: str, prompt: str) -> list[str]:
    target_tokens = tokenize(target)
    prompt_tokens = tokenize(prompt)

    def mentions(tokens, roots):
        return any(t.startswith(root) for t in tokens for root in roots)

    return [
        label
        for label, roots in ATMOSPHERE_CUES
        if mentions(target_tokens, roots) and not mentions(prompt_tokens, roots)
    ]


def _high_score_feedback(target: str, prompt: str, tier: Tier) -> Feedback:
    cues = _unaddressed_cues(target, prompt)
    if cues:
        return Feedback(
            note=f"Great match! Add {cues[0]} for 95+.",
            tip="Focus on: atmosphere, weather, reflections",
        )
    upcoming = next_tier(tier)
    if upcoming == tier:
        return Feedback(
            note=f"Perfect! You've mastered {tier_label(tier)} mode.",
            tip="Keep it up: try a negative prompt (--no) to lock in the details",
        )
    return Feedback(
        note=f"Perfect! Ready for {tier_label(upcoming)} mode.",
        tip=f"Next up: {get_rule(upcoming).lesson}",
    )


def _label_feedback(target: str, prompt: str) -> Feedback:
    label = short_label(target)
    missing = []
    color = find_color(target)
    if color and color != find_color(prompt):
        missing.append("color")
    shape = find_shape(target)
    if shape and shape != find_shape(prompt):
        missing.append("shape")
    tip = f"Focus on: {', '.join(missing)}" if missing else f'Keep it short: color + shape, e.g. "{label}"'
    return Feedback(note=f'Try: "{label}"', tip=tip)


def humanize_descriptor(target: str) -> str:
    """First two or three clauses of the target, under ten words, 'texture' read as 'surface'."""
    clauses = [c.strip() for c in (target or "").split(",") if c.strip()]
    words: list[str] = []
    for clause in clauses[:3]:
        clause_words = re.sub(r"\btextures?\b", "surface", clause, flags=re.IGNORECASE).split()
        if words and len(words) + len(clause_words) > MAX_NOTE_WORDS:
            break
        words.extend(clause_words)
        words[-1] = words[-1] + ","
    phrase = " ".join(words[:MAX_NOTE_WORDS])
    return sanitize_phrase(phrase)


def _diff_note(diff: KeywordDiff) -> str:
    if not diff.missing_keywords:
        return f"Describe the {diff.subject} with specific color, lighting and placement."
    extras = _extras(diff)
    phrase = sanitize_phrase(f"{diff.subject} with {', '.join(extras)}" if extras else diff.subject)
    return f'Try: "{phrase}"'


def _extras(diff: KeywordDiff) -> list[str]:
    subject_words = set(diff.subject.split())
    return [w for w in diff.missing_keywords if w not in subject_words][:MAX_NOTE_EXTRAS]


def _tip(diff: KeywordDiff, target: str, prompt: str) -> str:
    if diff.missing_attributes:
        return "Focus on: " + ", ".join(c.value for c in diff.missing_attributes)
    extras = _extras(diff)
    if extras:
        return "Add specifics: " + ", ".join(extras[:2])
    return pick_deterministic(GENERIC_TIPS, (target or "").lower() + "|" + (prompt or "").lower())


def generate_feedback(target: str, prompt: str, score: int, tier: Tier = Tier.medium) -> Feedback:
    rule = get_rule(tier)

    if score > HIGH_SCORE:
        return _high_score_feedback(target, prompt, rule.tier)

    if rule.feedback_style == "label":
        return _label_feedback(target, prompt)

    diff = analyze_keywords(target, prompt, rule.tier)
    tip = _tip(diff, target, prompt)

    if rule.feedback_style == "humanized" and diff.missing_keywords:
        phrase = humanize_descriptor(target)
        if phrase:
            return Feedback(note=f'Try: "{phrase}"', tip=tip)

    return Feedback(note=_diff_note(diff), tip=tip)
