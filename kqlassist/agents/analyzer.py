"""
Result Analyzer

Summarizes an executed query's result. Statistics are computed locally
from every row of the primary table; patterns, insights and follow-up
queries come from the language model, which sees the column list, a few
sample rows and those statistics.

Analysis types:
    statistical   local statistics and recommendations only, no model call
    patterns      adds trends, anomalies, correlations and follow-up queries
    full          adds written insights as well
"""

import json
import logging
import math
import statistics
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from kqlassist.agents.base import BaseAgent
from kqlassist.agents.explainer import language_instruction
from kqlassist.agents.generator import find_json_object
from kqlassist.llm.base import BaseLLMProvider
from kqlassist.models.analysis import (
    AnalysisType,
    Distribution,
    FollowUpQuery,
    NumericSummary,
    ResultAnalysis,
    ResultStatistics,
    TemporalSummary,
    Trend,
)
from kqlassist.models.result import QueryResult, ResultTable
from kqlassist.pipeline.deadline import Deadline
from kqlassist.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

SAMPLE_ROWS = 5
MAX_OUTLIERS = 10
MAX_FOLLOW_UPS = 3
LARGE_RESULT_ROWS = 10_000
STABLE_TREND_TOLERANCE = 0.1

_NUMERIC_TYPES = ("long", "real", "int", "decimal")
_ANALYSIS_KEYS = ("trends", "anomalies", "correlations", "insights", "follow_up_queries")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def _numeric_column(table: ResultTable) -> int | None:
    for index, column in enumerate(table.columns):
        if any(name in column.type for name in _NUMERIC_TYPES):
            return index
    for index in range(len(table.columns)):
        sample = [row[index] for row in table.rows[:10] if row[index] is not None]
        if sample and all(_is_number(value) for value in sample):
            return index
    return None


def _datetime_column(table: ResultTable) -> int | None:
    for index, column in enumerate(table.columns):
        name = column.name.lower()
        if column.type == "datetime" or "time" in name or "date" in name:
            return index
    return None


def _distribution(values: list[float], mean: float, std_dev: float) -> Distribution:
    """Classify by skewness, then by excess kurtosis (-1.2 for a uniform spread)."""
    if std_dev == 0 or len(values) < 3:
        return "unknown"
    skewness = sum(((value - mean) / std_dev) ** 3 for value in values) / len(values)
    if abs(skewness) >= 0.5:
        return "skewed"
    kurtosis = sum(((value - mean) / std_dev) ** 4 for value in values) / len(values) - 3
    return "uniform" if kurtosis < -1 else "normal"


def _summarize_numbers(table: ResultTable, index: int) -> NumericSummary | None:
    values = [float(row[index]) for row in table.rows if _is_number(row[index])]
    if not values:
        return None
    mean = statistics.fmean(values)
    std_dev = statistics.pstdev(values)
    return NumericSummary(
        column=table.columns[index].name,
        count=len(values),
        mean=round(mean, 2),
        median=round(statistics.median(values), 2),
        std_dev=round(std_dev, 2),
        minimum=min(values),
        maximum=max(values),
        outliers=[v for v in values if abs(v - mean) > 2 * std_dev][:MAX_OUTLIERS],
        distribution=_distribution(values, mean, std_dev),
    )


def _trend(points: list[tuple[datetime, float]]) -> Trend:
    """Compare the mean of the earliest third with the latest third."""
    third = len(points) // 3
    if third == 0:
        return "unknown"
    points = sorted(points, key=lambda point: point[0])
    first = statistics.fmean(value for _, value in points[:third])
    last = statistics.fmean(value for _, value in points[-third:])
    scale = max(abs(first), abs(last))
    if scale == 0 or abs(last - first) <= STABLE_TREND_TOLERANCE * scale:
        return "stable"
    return "increasing" if last > first else "decreasing"


def _summarize_time(
    table: ResultTable, index: int, numeric_index: int | None
) -> TemporalSummary | None:
    stamps = [(_as_datetime(row[index]), row) for row in table.rows]
    stamps = [(stamp, row) for stamp, row in stamps if stamp is not None]
    if not stamps:
        return None
    ordered = sorted(stamp for stamp, _ in stamps)
    trend: Trend = "unknown"
    if numeric_index is not None and numeric_index != index:
        trend = _trend(
            [
                (stamp, float(row[numeric_index]))
                for stamp, row in stamps
                if _is_number(row[numeric_index])
            ]
        )
    return TemporalSummary(
        column=table.columns[index].name, start=ordered[0], end=ordered[-1], trend=trend
    )


def compute_statistics(result: QueryResult) -> ResultStatistics:
    """Statistics over every row of the primary table."""
    table = result.primary_table
    if table is None or not table.rows:
        return ResultStatistics(total_rows=0)

    total = table.row_count
    unique_values: dict[str, int] = {}
    null_percentage: dict[str, float] = {}
    for index, column in enumerate(table.columns):
        present = [row[index] for row in table.rows if row[index] is not None]
        unique_values[column.name] = len(
            {json.dumps(value, sort_keys=True, default=str) for value in present}
        )
        null_percentage[column.name] = round((total - len(present)) / total * 100, 1)

    numeric_index = _numeric_column(table)
    time_index = _datetime_column(table)
    return ResultStatistics(
        total_rows=total,
        unique_values=unique_values,
        null_percentage=null_percentage,
        numeric=_summarize_numbers(table, numeric_index) if numeric_index is not None else None,
        temporal=(
            _summarize_time(table, time_index, numeric_index) if time_index is not None else None
        ),
    )


def recommend(stats: ResultStatistics) -> list[str]:
    """Rule-based recommendations from the statistics alone."""
    recommendations = []
    if stats.total_rows == 0:
        recommendations.append("No data returned; consider widening the time range or filters")
    elif stats.total_rows > LARGE_RESULT_ROWS:
        recommendations.append("Large result; consider adding filters or summarizing")
    if any(percent > 50 for percent in stats.null_percentage.values()):
        recommendations.append("Some columns are mostly empty; consider projecting them away")
    if stats.numeric and len(stats.numeric.outliers) > stats.total_rows * 0.1:
        recommendations.append(
            f"Many outliers in {stats.numeric.column}; check the data for quality issues"
        )
    return recommendations


def suggest_follow_ups(query: str, stats: ResultStatistics) -> list[FollowUpQuery]:
    """Follow-up queries derived from the statistics."""
    suggestions = []
    if stats.numeric and stats.numeric.outliers:
        threshold = round(stats.numeric.mean + 2 * stats.numeric.std_dev, 2)
        suggestions.append(
            FollowUpQuery(
                query=f"{query}\n| where {stats.numeric.column} > {threshold}",
                purpose=f"Rows where {stats.numeric.column} is an outlier",
                priority="medium",
            )
        )
    if stats.temporal:
        suggestions.append(
            FollowUpQuery(
                query=f"{query}\n| summarize count() by bin({stats.temporal.column}, 1h)",
                purpose="Hourly distribution over the time range",
                priority="low",
            )
        )
    return suggestions


def _is_analysis(data: Any) -> bool:
    return isinstance(data, dict) and any(key in data for key in _ANALYSIS_KEYS)


def _strings(items: Any) -> list[str]:
    if not isinstance(items, list):
        return []
    texts = []
    for item in items:
        if isinstance(item, dict):
            item = item.get("description") or json.dumps(item, default=str)
        if item:
            texts.append(str(item))
    return texts


def _follow_ups(items: Any) -> list[FollowUpQuery]:
    if not isinstance(items, list):
        return []
    follow_ups = []
    for item in items:
        try:
            follow_ups.append(FollowUpQuery.model_validate(item))
        except ValidationError as e:
            logger.debug(f"Skipping malformed follow-up query: {e.error_count()} errors")
    return follow_ups


class QueryAnalyzer(BaseAgent):
    """Analyzes executed query results."""

    def __init__(self, llm_provider: BaseLLMProvider, prompts: PromptLoader | None = None):
        super().__init__(name="QueryAnalyzer", llm_provider=llm_provider, prompts=prompts)

    def _data_summary(self, result: QueryResult, stats: ResultStatistics) -> str:
        table = result.primary_table
        payload = {
            "table_count": len(result.tables),
            "columns": [column.model_dump() for column in table.columns] if table else [],
            "total_rows": stats.total_rows,
            "sample_rows": table.rows[:SAMPLE_ROWS] if table else [],
            "statistics": stats.model_dump(mode="json"),
        }
        return json.dumps(payload, indent=2, default=str)

    async def analyze(
        self,
        result: QueryResult,
        query: str,
        question: str | None = None,
        analysis_type: AnalysisType = "full",
        language: str = "en",
        *,
        deadline: Deadline | None = None,
    ) -> ResultAnalysis:
        """
        Analyze a query result.

        Model output that is not the expected JSON is kept as the insights
        text; the local statistics are always present.

        Raises:
            GenerationFailure: Upstream call failed or returned no content
        """
        stats = compute_statistics(result)
        analysis = ResultAnalysis(
            analysis_type=analysis_type,
            statistics=stats,
            recommendations=recommend(stats),
        )
        if analysis_type == "statistical" or stats.total_rows == 0:
            logger.debug("Analysis used local statistics only", extra={"rows": stats.total_rows})
            return analysis

        system_prompt = self.prompts.render(
            "agents/kql_analysis.md",
            include_insights=analysis_type == "full",
            max_follow_ups=MAX_FOLLOW_UPS,
            language_instruction=language_instruction(language),
        )
        user_prompt = (
            (f'Question: "{question}"\n\n' if question else "")
            + f"Query:\n{query}\n\nResult summary:\n{self._data_summary(result, stats)}"
        )
        response = await self._call_llm(
            system_prompt, user_prompt, deadline=deadline, stage="analyze"
        )

        data = find_json_object(response.content, accept=_is_analysis)
        if data is None:
            logger.warning("Analysis response was not JSON; keeping it as insights text")
            analysis.insights = response.content.strip()
        else:
            analysis.trends = _strings(data.get("trends"))
            analysis.anomalies = _strings(data.get("anomalies"))
            analysis.correlations = _strings(data.get("correlations"))
            if analysis_type == "full" and data.get("insights"):
                analysis.insights = str(data["insights"]).strip()
            analysis.follow_up_queries = _follow_ups(data.get("follow_up_queries"))[:MAX_FOLLOW_UPS]

        seen = {follow_up.query.strip() for follow_up in analysis.follow_up_queries}
        for follow_up in suggest_follow_ups(query, stats):
            if follow_up.query.strip() not in seen:
                analysis.follow_up_queries.append(follow_up)

        logger.info(
            f"Analyzed {stats.total_rows} rows",
            extra={
                "analysis_type": analysis_type,
                "trends": len(analysis.trends),
                "anomalies": len(analysis.anomalies),
                "follow_ups": len(analysis.follow_up_queries),
            },
        )
        return analysis
