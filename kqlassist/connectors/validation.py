"""
Provider Configuration Validation

Pure checks run before any connector allocates network resources.
Errors make a configuration unusable; warnings flag fields that are
ignored or limit optional features.
"""

import logging
from urllib.parse import urlparse

from kqlassist.models.provider import (
    ApplicationInsightsConfig,
    DataExplorerConfig,
    LogAnalyticsConfig,
    ValidationResult,
)

logger = logging.getLogger(__name__)

_URL_FIELDS = ("endpoint", "cluster_uri")
_ARM_FIELDS = ("subscription_id", "resource_group", "resource_name")


def validate_provider_config(config) -> ValidationResult:
    """
    Validate a provider configuration.

    Args:
        config: ApplicationInsightsConfig, LogAnalyticsConfig or DataExplorerConfig

    Returns:
        ValidationResult listing every error and warning found
    """
    errors: list[str] = []
    warnings: list[str] = []

    if isinstance(config, ApplicationInsightsConfig):
        _check_application_insights(config, errors, warnings)
    elif isinstance(config, LogAnalyticsConfig):
        _check_log_analytics(config, errors, warnings)
    elif isinstance(config, DataExplorerConfig):
        _check_data_explorer(config, errors, warnings)
    else:
        errors.append(f"Unsupported provider type: {getattr(config, 'type', type(config).__name__)}")
        return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

    for field_name in _URL_FIELDS:
        value = getattr(config, field_name)
        if value and not _is_http_url(value):
            errors.append(f"{field_name} must be an http or https URL with a host: {value!r}")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def log_validation_result(provider_type: str, result: ValidationResult) -> None:
    """Log the outcome of a validation."""
    for warning in result.warnings:
        logger.warning(
            f"{provider_type} configuration: {warning}",
            extra={"provider_type": provider_type},
        )
    if result.is_valid:
        logger.debug(
            f"{provider_type} configuration is valid",
            extra={"provider_type": provider_type, "warning_count": len(result.warnings)},
        )
        return
    logger.error(
        f"{provider_type} configuration is invalid: {'; '.join(result.errors)}",
        extra={"provider_type": provider_type, "errors": result.errors},
    )


def _check_application_insights(
    config: ApplicationInsightsConfig, errors: list[str], warnings: list[str]
) -> None:
    if not config.application_id:
        errors.append("application_id is required for application-insights")

    missing = [name for name in _ARM_FIELDS if not getattr(config, name)]
    if missing:
        warnings.append(
            f"{', '.join(missing)} not set; resource discovery is limited"
        )
    _warn_unused(config, ("workspace_id", "cluster_uri", "database"), warnings)


def _check_log_analytics(
    config: LogAnalyticsConfig, errors: list[str], warnings: list[str]
) -> None:
    if not config.workspace_id:
        for name in _ARM_FIELDS:
            if not getattr(config, name):
                errors.append(
                    f"{name} is required for log-analytics when workspace_id is not set"
                )
    _warn_unused(config, ("application_id", "cluster_uri", "database"), warnings)


def _check_data_explorer(
    config: DataExplorerConfig, errors: list[str], warnings: list[str]
) -> None:
    if not config.cluster_uri:
        errors.append("cluster_uri is required for azure-data-explorer")
    if not config.database:
        errors.append("database is required for azure-data-explorer")
    _warn_unused(config, ("application_id", "workspace_id"), warnings)


def _warn_unused(config, field_names: tuple[str, ...], warnings: list[str]) -> None:
    for name in field_names:
        if getattr(config, name):
            warnings.append(f"{name} is not used by {config.type} and will be ignored")


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.hostname)
