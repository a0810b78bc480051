"""
kqlassist Models Module

Pydantic models and exceptions shared by every layer.

Available Models:
    Query Models:
        - GeneratedQuery: KQL candidate with confidence and reasoning
        - RegenerationContext: What the regenerator knows about a rejected attempt
        - ExecutionMode, RouterState, ReviewAction: Routing enums
        - ReviewDecision, ReviewRequest: Human review exchange
        - TurnOutcome: Final state of one user turn

    Result Models:
        - QueryResult, ResultTable, ResultColumn: Canonical result shape
        - SchemaInfo, TableSchema, SchemaColumn: Discovered backend schema
        - ConnectionCheck: Connection validation outcome

    Analysis Models:
        - ResultAnalysis, ResultStatistics: Result statistics, patterns and follow-ups
        - NumericSummary, TemporalSummary, FollowUpQuery: Parts of an analysis

    Provider Models:
        - ProviderConfiguration: Discriminated union of backend configurations
        - ValidationResult: Validation gate outcome

    Errors:
        - KQLAssistError: Base exception
        - GenerationFailure, RegenerationExhausted, ReviewRoundsExhausted, ConfigurationInvalid
        - AuthenticationExhausted, ExecutionFailure, DeadlineExceeded

Usage:
    from kqlassist.models import GeneratedQuery, QueryResult
    from kqlassist.models.errors import AuthenticationExhausted
"""

from kqlassist.models.analysis import (
    AnalysisType,
    FollowUpQuery,
    NumericSummary,
    ResultAnalysis,
    ResultStatistics,
    TemporalSummary,
)
from kqlassist.models.errors import (
    AuthenticationExhausted,
    BackendError,
    BackendErrorKind,
    ConfigurationInvalid,
    DeadlineExceeded,
    ExecutionFailure,
    GenerationFailure,
    KQLAssistError,
    RegenerationExhausted,
    ReviewRoundsExhausted,
)
from kqlassist.models.provider import (
    PROVIDER_TYPES,
    ApplicationInsightsConfig,
    DataExplorerConfig,
    LogAnalyticsConfig,
    ProviderConfiguration,
    ValidationResult,
    parse_provider_config,
)
from kqlassist.models.query import (
    REASONING_PLACEHOLDER,
    ExecutionMode,
    GeneratedQuery,
    RegenerationContext,
    ReviewAction,
    ReviewDecision,
    ReviewRequest,
    RouterState,
    TurnOutcome,
)
from kqlassist.models.result import (
    ConnectionCheck,
    QueryResult,
    ResultColumn,
    ResultTable,
    SchemaColumn,
    SchemaInfo,
    TableSchema,
)

__all__ = [
    # Query models
    "REASONING_PLACEHOLDER",
    "ExecutionMode",
    "GeneratedQuery",
    "RegenerationContext",
    "ReviewAction",
    "ReviewDecision",
    "ReviewRequest",
    "RouterState",
    "TurnOutcome",
    # Result models
    "ConnectionCheck",
    "QueryResult",
    "ResultColumn",
    "ResultTable",
    "SchemaColumn",
    "SchemaInfo",
    "TableSchema",
    # Analysis models
    "AnalysisType",
    "FollowUpQuery",
    "NumericSummary",
    "ResultAnalysis",
    "ResultStatistics",
    "TemporalSummary",
    # Provider models
    "PROVIDER_TYPES",
    "ApplicationInsightsConfig",
    "DataExplorerConfig",
    "LogAnalyticsConfig",
    "ProviderConfiguration",
    "ValidationResult",
    "parse_provider_config",
    # Errors
    "AuthenticationExhausted",
    "BackendError",
    "BackendErrorKind",
    "ConfigurationInvalid",
    "DeadlineExceeded",
    "ExecutionFailure",
    "GenerationFailure",
    "KQLAssistError",
    "RegenerationExhausted",
    "ReviewRoundsExhausted",
]
