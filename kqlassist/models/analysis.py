"""
Result Analysis Models

Statistics computed locally from a query result, and the patterns and
follow-up queries a language model suggests for it.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

AnalysisType = Literal["statistical", "patterns", "full"]
Distribution = Literal["normal", "skewed", "uniform", "unknown"]
Trend = Literal["increasing", "decreasing", "stable", "unknown"]


class NumericSummary(BaseModel):
    """Summary of the first numeric column."""

    column: str
    count: int
    mean: float
    median: float
    std_dev: float
    minimum: float
    maximum: float
    outliers: list[float] = Field(
        default_factory=list, description="Values beyond two standard deviations, at most 10"
    )
    distribution: Distribution = "unknown"


class TemporalSummary(BaseModel):
    """Time range of the first datetime column, and how the numeric column moves over it."""

    column: str
    start: datetime
    end: datetime
    trend: Trend = "unknown"


class ResultStatistics(BaseModel):
    """Statistics over the primary table."""

    total_rows: int = 0
    unique_values: dict[str, int] = Field(default_factory=dict)
    null_percentage: dict[str, float] = Field(default_factory=dict)
    numeric: NumericSummary | None = None
    temporal: TemporalSummary | None = None


class FollowUpQuery(BaseModel):
    """A query worth running next."""

    query: str
    purpose: str
    priority: Literal["high", "medium", "low"] = "medium"


class ResultAnalysis(BaseModel):
    """Outcome of analyzing one query result."""

    analysis_type: AnalysisType
    statistics: ResultStatistics
    trends: list[str] = Field(default_factory=list)
    anomalies: list[str] = Field(default_factory=list)
    correlations: list[str] = Field(default_factory=list)
    insights: str | None = None
    recommendations: list[str] = Field(default_factory=list)
    follow_up_queries: list[FollowUpQuery] = Field(default_factory=list)
