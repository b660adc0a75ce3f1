"""Shared utilities for the appropriations compliance engine."""

# Pattern definitions
from utils.patterns import (
    PE_NUMBER,
    FISCAL_YEAR,
    ACCOUNT_CODE_TITLE,
)

# String utilities
from utils.strings import (
    safe_decimal,
    normalize_whitespace,
    normalize_purpose,
    has_min_length,
)

# Validation utilities
from utils.validation import (
    ERROR,
    WARNING,
    INFO,
    ValidationIssue,
    ValidationResult,
    is_positive_amount,
)

# Output formatting
from utils.formatting import (
    format_amount,
    format_thousands,
    format_percent,
    percent_of,
    TableFormatter,
    ReportFormatter,
)

# Configuration
from utils.config import (
    Config,
    ComplianceThresholds,
    DEFAULT_THRESHOLDS,
    EngineConfig,
    KnownValues,
    classify_account_title,
)

# Logging
from utils.logging import JsonFormatter, configure_logging

__all__ = [
    # Patterns
    "PE_NUMBER",
    "FISCAL_YEAR",
    "ACCOUNT_CODE_TITLE",
    # Strings
    "safe_decimal",
    "normalize_whitespace",
    "normalize_purpose",
    "has_min_length",
    # Validation
    "ERROR",
    "WARNING",
    "INFO",
    "ValidationIssue",
    "ValidationResult",
    "is_positive_amount",
    # Formatting
    "format_amount",
    "format_thousands",
    "format_percent",
    "percent_of",
    "TableFormatter",
    "ReportFormatter",
    # Config
    "Config",
    "ComplianceThresholds",
    "DEFAULT_THRESHOLDS",
    "EngineConfig",
    "KnownValues",
    "classify_account_title",
    # Logging
    "JsonFormatter",
    "configure_logging",
]
