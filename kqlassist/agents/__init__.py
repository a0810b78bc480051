"""
Agents Module

LLM-backed components of the generate → decide → execute path.

Available Agents:
    - QueryGenerator: natural language to KQL with confidence scoring
    - QueryRegenerator: structurally different retry after a rejection
    - QueryExplainer: plain-language explanation of a query
    - QueryAnalyzer: statistics, patterns and follow-up queries for a result
"""

from kqlassist.agents.analyzer import QueryAnalyzer, compute_statistics
from kqlassist.agents.base import BaseAgent
from kqlassist.agents.explainer import QueryExplainer
from kqlassist.agents.generator import (
    QueryGenerator,
    find_json_object,
    parse_generated_query,
    score_confidence,
)
from kqlassist.agents.regenerator import QueryRegenerator

__all__ = [
    "BaseAgent",
    "QueryGenerator",
    "QueryRegenerator",
    "QueryExplainer",
    "QueryAnalyzer",
    "compute_statistics",
    "find_json_object",
    "parse_generated_query",
    "score_confidence",
]
