"""
Generation Stage Models

Stage registry (dependency, output shape, output budget, prompt template),
per-stage status, and the artifact produced by a successful stage.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StageId(str, Enum):
    """Named units of content generation."""

    RECOMMENDATIONS = "recommendations"
    ROADMAP = "roadmap"
    MARKET_INSIGHTS = "market-insights"
    ACTION_PLAN = "action-plan"
    LEARNING_PLAN = "learning-plan"
    INTERVIEW_QUESTIONS = "interview-questions"
    NETWORKING_STRATEGY = "networking-strategy"


class StageStatus(str, Enum):
    """Volatile per-stage status (never persisted)."""

    IDLE = "idle"
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"


class OutputShape(str, Enum):
    """Top-level JSON type a stage is expected to produce."""

    LIST = "list"
    OBJECT = "object"

    def fallback(self) -> Any:
        """Safe default substituted when a response cannot be parsed."""
        return [] if self is OutputShape.LIST else None

    def matches(self, value: Any) -> bool:
        """Check a parsed value has this shape's top-level type."""
        if self is OutputShape.LIST:
            return isinstance(value, list)
        return isinstance(value, dict)


class StageSpec(BaseModel):
    """Static description of one generation stage."""

    model_config = ConfigDict(frozen=True)

    stage_id: StageId
    depends_on: Optional[StageId] = None
    shape: OutputShape
    output_budget: int = Field(..., gt=0, description="max_tokens for the request")
    template: str = Field(..., description="Template path relative to prompts/")


STAGE_SPECS: dict[StageId, StageSpec] = {
    spec.stage_id: spec
    for spec in (
        StageSpec(
            stage_id=StageId.RECOMMENDATIONS,
            shape=OutputShape.LIST,
            output_budget=1500,
            template="stages/recommendations.j2",
        ),
        StageSpec(
            stage_id=StageId.ROADMAP,
            depends_on=StageId.RECOMMENDATIONS,
            shape=OutputShape.OBJECT,
            output_budget=2000,
            template="stages/roadmap.j2",
        ),
        StageSpec(
            stage_id=StageId.MARKET_INSIGHTS,
            depends_on=StageId.RECOMMENDATIONS,
            shape=OutputShape.OBJECT,
            output_budget=2000,
            template="stages/market_insights.j2",
        ),
        StageSpec(
            stage_id=StageId.ACTION_PLAN,
            depends_on=StageId.RECOMMENDATIONS,
            shape=OutputShape.LIST,
            output_budget=1500,
            template="stages/action_plan.j2",
        ),
        StageSpec(
            stage_id=StageId.LEARNING_PLAN,
            depends_on=StageId.RECOMMENDATIONS,
            shape=OutputShape.OBJECT,
            output_budget=2500,
            template="stages/learning_plan.j2",
        ),
        StageSpec(
            stage_id=StageId.INTERVIEW_QUESTIONS,
            depends_on=StageId.RECOMMENDATIONS,
            shape=OutputShape.OBJECT,
            output_budget=2500,
            template="stages/interview_questions.j2",
        ),
        StageSpec(
            stage_id=StageId.NETWORKING_STRATEGY,
            depends_on=StageId.RECOMMENDATIONS,
            shape=OutputShape.LIST,
            output_budget=800,
            template="stages/networking_strategy.j2",
        ),
    )
}

ROOT_STAGE = StageId.RECOMMENDATIONS


class UnknownStageError(KeyError):
    """Raised when a caller names a stage that is not registered."""


def get_stage_spec(stage_id: StageId | str) -> StageSpec:
    """Look up a stage by id or by its string value.

    Raises:
        UnknownStageError: If the stage is not registered
    """
    try:
        return STAGE_SPECS[StageId(stage_id)]
    except ValueError as e:
        raise UnknownStageError(f"Unknown generation stage: {stage_id!r}") from e


def dependents_of(stage_id: StageId) -> list[StageId]:
    """Stages that list ``stage_id`` as their dependency, in registry order."""
    return [s.stage_id for s in STAGE_SPECS.values() if s.depends_on == stage_id]


def has_content(payload: Any) -> bool:
    """True when a payload is a non-empty list or object."""
    if isinstance(payload, (list, dict)):
        return len(payload) > 0
    return False


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GeneratedArtifact(BaseModel):
    """Normalized payload produced by a stage.

    Replaced wholesale on regeneration, never mutated in place.
    """

    model_config = ConfigDict(frozen=True)

    stage_id: StageId
    payload: Any = None
    degraded: bool = Field(
        default=False, description="True when payload is the fallback default"
    )
    generated_at: datetime = Field(default_factory=_utc_now)


class CareerRecommendation(BaseModel):
    """One item of the recommendations stage.

    Lenient: the generation service may add, omit or loosely type fields.
    Only ``title`` is required; malformed secondary fields fall back to
    their defaults instead of failing validation.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    title: str = Field(..., min_length=1)
    match: Optional[float] = None
    description: str = ""
    key_skills: list[str] = Field(default_factory=list, alias="keySkills")
    salary_range: str = Field(default="", alias="salaryRange")

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("match", mode="before")
    @classmethod
    def coerce_match(cls, v: Any) -> Optional[float]:
        """Accept numbers and strings such as "92" or "92%"."""
        if isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            return float(v)
        if isinstance(v, str):
            try:
                return float(v.strip().rstrip("%").strip())
            except ValueError:
                return None
        return None

    @field_validator("description", "salary_range", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)

    @field_validator("key_skills", mode="before")
    @classmethod
    def coerce_skills(cls, v: Any) -> list[str]:
        """Accept a list or a comma-separated string; drop anything else."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        if isinstance(v, (list, tuple)):
            return [str(item).strip() for item in v if item is not None and str(item).strip()]
        return []
