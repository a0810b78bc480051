"""
Query Generation Models

Pydantic models for generated queries, regeneration context, and the
routing decisions taken on them during a single user turn.
"""

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from kqlassist.models.errors import KQLAssistError
from kqlassist.models.result import QueryResult

REASONING_PLACEHOLDER = "No reasoning provided."


class ExecutionMode(str, Enum):
    """How the caller wants generated queries to be handled."""

    AUTO = "auto"
    REVIEW_ALWAYS = "review-always"
    RAW = "raw"


class RouterState(str, Enum):
    """States of the confidence router for one user turn."""

    GENERATING = "generating"
    AWAITING_DECISION = "awaiting_decision"
    REVIEWING = "reviewing"
    EXECUTING = "executing"
    DONE = "done"
    FAILED = "failed"


class ReviewAction(str, Enum):
    """Decision a reviewer can take on a pending query."""

    EXECUTE = "execute"
    REGENERATE = "regenerate"
    EDIT = "edit"
    CANCEL = "cancel"


class GeneratedQuery(BaseModel):
    """KQL candidate produced by the generation gateway."""

    query_text: str = Field(..., description="Generated KQL query")
    confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Heuristic trust score from completion status and output structure",
    )
    reasoning: str = Field(
        default=REASONING_PLACEHOLDER,
        description="Model's explanation of the approach",
    )

    model_config = ConfigDict(frozen=True)

    @field_validator("reasoning", mode="before")
    @classmethod
    def default_reasoning(cls, v: str | None) -> str:
        """Replace missing or blank reasoning with the placeholder."""
        if v is None or not str(v).strip():
            return REASONING_PLACEHOLDER
        return str(v).strip()


class RegenerationContext(BaseModel):
    """Context handed to the regenerator after a rejected attempt."""

    previous_query_text: str = Field(..., description="Query that was rejected")
    attempt_number: int = Field(..., ge=1, description="Number of the attempt being produced")
    feedback: str | None = Field(None, description="Reviewer feedback, if any")
    previous_reasoning: str | None = Field(None, description="Reasoning of the rejected query")

    model_config = ConfigDict(frozen=True)


class ReviewDecision(BaseModel):
    """Reviewer's answer to a pending query."""

    action: ReviewAction
    feedback: str | None = None
    edited_query: str | None = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def execute(cls) -> "ReviewDecision":
        return cls(action=ReviewAction.EXECUTE)

    @classmethod
    def regenerate(cls, feedback: str | None = None) -> "ReviewDecision":
        return cls(action=ReviewAction.REGENERATE, feedback=feedback)

    @classmethod
    def edit(cls, edited_query: str) -> "ReviewDecision":
        return cls(action=ReviewAction.EDIT, edited_query=edited_query)

    @classmethod
    def cancel(cls) -> "ReviewDecision":
        return cls(action=ReviewAction.CANCEL)


class ReviewRequest(BaseModel):
    """What a reviewer is shown when the router suspends for review."""

    user_input: str
    query: GeneratedQuery
    attempt: int = Field(..., ge=1)
    max_attempts: int = Field(..., ge=1)
    history: list[str] = Field(default_factory=list)
    threshold: float = Field(..., ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)

    @property
    def can_regenerate(self) -> bool:
        return self.attempt < self.max_attempts

    @property
    def low_confidence(self) -> bool:
        return self.query.confidence < self.threshold


@dataclass
class TurnOutcome:
    """Final state of one user turn through the confidence router."""

    state: RouterState
    query: GeneratedQuery | None = None
    result: QueryResult | None = None
    attempts: int = 0
    history: list[GeneratedQuery] = field(default_factory=list)
    error: KQLAssistError | None = None
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state == RouterState.DONE and self.result is not None

    @property
    def pending_review(self) -> bool:
        return self.state == RouterState.REVIEWING
