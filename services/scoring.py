"""
Scoring service.

Turns a similarity in [0, 1] into the 0-100 score shown to the player:
  - Base            — round(similarity01 * 100)
  - Bonus           — tier-specific prompt craft (texture, lighting, --no, --ar,
                      quality boosters), or colour/shape matches on the easy tier;
                      capped per tier
  - Penalty         — terse prompts on the upper tiers, wrong shape on the easy tier

Pure and deterministic: same inputs, same score.
"""

from models.schemas import ScoreBreakdown, Tier
from services.keywords import find_color, find_shape, tokenize
from services.tiers import TierRule, get_rule

MAX_SHAPE_PENALTY = 10


def _clamp01(value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if value != value:  # NaN
        return 0.0
    return max(0.0, min(1.0, value))


def _word_count(text: str) -> int:
    return len((text or "").split())


def _prompt_bonus(prompt: str, rule: TierRule) -> int:
    return sum(t.points for t in rule.bonus_triggers if t.matches(prompt))


def _beginner_adjustment(similarity01: float, prompt: str, target: str, rule: TierRule) -> tuple[int, int]:
    """Returns (boost, penalty) for colour/shape matches against the target label."""
    boost = 0
    penalty = 0
    target_color = find_color(target)
    target_shape = find_shape(target)
    prompt_shape = find_shape(prompt)

    if target_color and target_color in {("gray" if t == "grey" else t) for t in tokenize(prompt)}:
        boost += rule.color_boost
    if target_shape and prompt_shape == target_shape:
        boost += rule.shape_boost
    elif (
        target_shape
        and prompt_shape
        and prompt_shape != target_shape
        and similarity01 < rule.shape_mismatch_below
    ):
        penalty += rule.shape_mismatch_penalty
    return boost, min(penalty, MAX_SHAPE_PENALTY)


def shape_score(similarity01: float, prompt: str, tier: Tier, target: str = "") -> ScoreBreakdown:
    rule = get_rule(tier)
    similarity01 = _clamp01(similarity01)
    base = round(similarity01 * 100)

    bonus = _prompt_bonus(prompt, rule)
    penalty = 0
    if rule.color_boost or rule.shape_boost or rule.shape_mismatch_penalty:
        boost, mismatch = _beginner_adjustment(similarity01, prompt, target, rule)
        bonus += boost
        penalty += mismatch
    bonus = min(bonus, rule.bonus_cap)

    if rule.short_prompt_penalty and _word_count(prompt) < rule.min_words:
        penalty += rule.short_prompt_penalty

    score = max(0, min(100, round(base + bonus - penalty)))
    return ScoreBreakdown(score=score, base=base, bonus=bonus, penalty=penalty)


def compute_score(similarity01: float, prompt: str, tier: Tier, target: str = "") -> int:
    return shape_score(similarity01, prompt, tier, target).score


def label_for_score(score: int) -> str:
    if score >= 98:
        return "Perfect!"
    elif score >= 90:
        return "Excellent"
    elif score >= 75:
        return "Great"
    elif score >= 55:
        return "Almost there"
    elif score >= 35:
        return "Partial match"
    return "Keep practising"
