from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


# ─────────────────────────────────────────
#  Enums
# ─────────────────────────────────────────

class Tier(str, Enum):
    easy = "easy"
    medium = "medium"
    hard = "hard"
    advanced = "advanced"
    expert = "expert"


class ScoringMode(str, Enum):
    image_embedding = "image-embedding"
    text_embedding = "text-embedding"
    lexical_fallback = "lexical-fallback"


class AttributeCategory(str, Enum):
    color = "color"
    material = "material"
    lighting = "lighting"
    placement = "placement"
    style = "style"


class StepOutcome(str, Enum):
    succeeded = "succeeded"
    failed = "failed"
    skipped = "skipped"


# ─────────────────────────────────────────
#  Internal values (never serialised as-is)
# ─────────────────────────────────────────

@dataclass
class GradingRequest:
    """A validated score request with images already decoded."""
    prompt: str
    tier: Tier = Tier.easy
    target_description: str = ""
    target_image: Optional[bytes] = None
    generated_image: Optional[bytes] = None
    target_embedding: Optional[list[float]] = None
    generated_embedding: Optional[list[float]] = None


class SimilarityResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    value01: float = Field(ge=0.0, le=1.0)
    mode: ScoringMode


@dataclass(frozen=True)
class StepRecord:
    state: str
    outcome: StepOutcome
    error: Optional[str] = None


@dataclass
class SimilarityOutcome:
    result: SimilarityResult
    steps: list[StepRecord] = field(default_factory=list)
    last_error: Optional[str] = None


@dataclass(frozen=True)
class ScoreBreakdown:
    score: int       # 0-100, final
    base: int        # round(similarity01 * 100)
    bonus: int = 0   # after the tier cap
    penalty: int = 0


# ─────────────────────────────────────────
#  Request / Response schemas (API surface)
# ─────────────────────────────────────────

class ScoreRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = ""
    tier: Tier = Tier.easy
    target_description: Optional[str] = Field(default=None, alias="targetDescription")
    target_image: Optional[str] = Field(default=None, alias="targetImage")          # base64 or data URL
    generated_image: Optional[str] = Field(default=None, alias="generatedImage")
    target_embedding: Optional[list[float]] = Field(default=None, alias="targetEmbedding")
    generated_embedding: Optional[list[float]] = Field(default=None, alias="generatedEmbedding")


class Feedback(BaseModel):
    note: str = Field(min_length=1)
    tip: str = Field(min_length=1)


class ScoreResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ai_score: int = Field(ge=0, le=100, alias="aiScore")
    similarity01: float
    bonus: int = Field(ge=0)
    scoring_mode: ScoringMode = Field(alias="scoringMode")
    score_label: str = Field(alias="scoreLabel")
    feedback: Feedback
    error_message: Optional[str] = Field(default=None, alias="errorMessage")


class TierInfo(BaseModel):
    id: Tier
    name: str
    skill: str
    goal: str
    lesson: str
    bad: str
    good: str


class MetaResponse(BaseModel):
    tiers: list[TierInfo]
    scoring_modes: list[ScoringMode]


class PlacementResponse(BaseModel):
    score: int
    tier: TierInfo
