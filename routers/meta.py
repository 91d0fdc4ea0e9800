from fastapi import APIRouter, Query

from models.schemas import MetaResponse, PlacementResponse, ScoringMode, TierInfo
from services.tiers import TIER_ORDER, get_rule, tier_for_score

router = APIRouter(prefix="/meta", tags=["Meta"])


def _tier_info(tier) -> TierInfo:
    rule = get_rule(tier)
    return TierInfo(
        id=rule.tier,
        name=rule.name,
        skill=rule.skill,
        goal=rule.goal,
        lesson=rule.lesson,
        bad=rule.bad,
        good=rule.good,
    )


@router.get("", response_model=MetaResponse)
async def get_meta():
    return MetaResponse(
        tiers=[_tier_info(tier) for tier in TIER_ORDER],
        scoring_modes=list(ScoringMode),
    )


@router.get("/placement", response_model=PlacementResponse)
async def get_placement(score: int = Query(..., ge=0, le=100)):
    """Suggest a starting tier from a placement round score."""
    return PlacementResponse(score=score, tier=_tier_info(tier_for_score(score)))
