"""
Pipeline package for kqlassist.

Contains the LangGraph confidence router and the turn deadline.
"""

from kqlassist.pipeline.deadline import Deadline
from kqlassist.pipeline.orchestrator import QueryPipeline, ReviewHandler, decide_route

__all__ = ["Deadline", "QueryPipeline", "ReviewHandler", "decide_route"]
