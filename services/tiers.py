"""
Per-tier scoring and feedback policy.

Every tier-dependent decision (which bonuses apply, the bonus cap, the
short-prompt penalty, how feedback is phrased) is read from TIER_RULES.
The table is static and never mutated at runtime; the point values are
tuning constants, not part of the API contract.
"""

import re
from dataclasses import dataclass

from models.schemas import Tier


@dataclass(frozen=True)
class BonusTrigger:
    name: str
    pattern: re.Pattern
    points: int

    def matches(self, prompt: str) -> bool:
        return bool(self.pattern.search(prompt or ""))


TEXTURE = BonusTrigger(
    "texture",
    re.compile(r"shiny|fuzzy|matte|glossy|rough|smooth|metal|glass", re.IGNORECASE),
    8,
)
LIGHTING = BonusTrigger(
    "lighting",
    re.compile(r"shadow|light|glowing|backlit|warm|cool|volumetric|cinematic", re.IGNORECASE),
    7,
)
NEGATIVE_PROMPT = BonusTrigger(
    "negative-prompt",
    re.compile(r"--no\b|\bnegative\s*:", re.IGNORECASE),
    6,
)
ASPECT_RATIO = BonusTrigger("aspect-ratio", re.compile(r"--ar\b", re.IGNORECASE), 4)
QUALITY = BonusTrigger(
    "quality",
    re.compile(r"masterpiece|ultra-detailed|highly detailed", re.IGNORECASE),
    5,
)


@dataclass(frozen=True)
class TierRule:
    tier: Tier

    # Curriculum copy shown by /meta and in "next tier" feedback
    name: str
    skill: str
    goal: str
    lesson: str
    bad: str
    good: str

    bonus_triggers: tuple[BonusTrigger, ...] = ()
    bonus_cap: int = 0

    # Short-prompt penalty
    min_words: int = 6
    short_prompt_penalty: int = 0

    # Beginner shape/colour matching
    color_boost: int = 0
    shape_boost: int = 0
    shape_mismatch_penalty: int = 0
    shape_mismatch_below: float = 0.8

    # "label" quotes the target, "humanized" trims its descriptor, "diff" runs the keyword diff
    feedback_style: str = "diff"
    filter_shape_words: bool = True


TIER_ORDER: tuple[Tier, ...] = (Tier.easy, Tier.medium, Tier.hard, Tier.advanced, Tier.expert)

TIER_RULES: dict[Tier, TierRule] = {
    Tier.easy: TierRule(
        tier=Tier.easy,
        name="Level 1 — Naming Things",
        skill="Clarity",
        goal="95+",
        lesson="Tell the model what you see — like texting a friend.",
        bad="robot",
        good="small yellow cube robot",
        bonus_cap=8,
        min_words=0,
        color_boost=3,
        shape_boost=5,
        shape_mismatch_penalty=10,
        feedback_style="label",
        filter_shape_words=False,
    ),
    Tier.medium: TierRule(
        tier=Tier.medium,
        name="Level 2 — Light & Texture",
        skill="Realism",
        goal="90+",
        lesson="Lighting = mood. Texture = touch.",
        bad="robot",
        good="shiny metal robot with soft shadows",
        bonus_triggers=(TEXTURE, LIGHTING, QUALITY),
        bonus_cap=15,
        feedback_style="humanized",
    ),
    Tier.hard: TierRule(
        tier=Tier.hard,
        name="Level 3 — Environment",
        skill="Scene Building",
        goal="85+",
        lesson="No floating objects. Build the stage.",
        bad="robot",
        good="robot on workbench in lab",
        bonus_triggers=(TEXTURE, LIGHTING, QUALITY, ASPECT_RATIO),
        bonus_cap=20,
        short_prompt_penalty=10,
    ),
    Tier.advanced: TierRule(
        tier=Tier.advanced,
        name="Level 4 — Style & Camera",
        skill="Art Direction",
        goal="80+",
        lesson="You're the director. The model is the camera.",
        bad="robot in lab",
        good="50mm close-up, digital painting style",
        bonus_triggers=(TEXTURE, LIGHTING, NEGATIVE_PROMPT, ASPECT_RATIO, QUALITY),
        bonus_cap=25,
        short_prompt_penalty=10,
    ),
    Tier.expert: TierRule(
        tier=Tier.expert,
        name="Level 5 — Precision & Control",
        skill="Prompt Engineering",
        goal="75+",
        lesson="Engineers don't write — they compile.",
        bad="cool robot",
        good="Primary: yellow cube-robot... Negative: no scratches",
        bonus_triggers=(TEXTURE, LIGHTING, NEGATIVE_PROMPT, ASPECT_RATIO, QUALITY),
        bonus_cap=30,
        short_prompt_penalty=10,
    ),
}


def get_rule(tier) -> TierRule:
    return TIER_RULES[Tier(tier)]


def next_tier(current) -> Tier:
    idx = TIER_ORDER.index(Tier(current))
    return TIER_ORDER[min(idx + 1, len(TIER_ORDER) - 1)]


def tier_label(tier) -> str:
    return Tier(tier).value.capitalize()


def tier_for_score(score: int) -> Tier:
    """Suggested starting tier for a player's placement score."""
    if score < 70:
        return Tier.easy
    if score < 85:
        return Tier.medium
    if score < 92:
        return Tier.hard
    if score < 97:
        return Tier.advanced
    return Tier.expert
