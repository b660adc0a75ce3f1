"""Validation result structures shared by every compliance check.

Provides reusable pieces for:
- Recording blocking errors and advisory warnings in order
- Tagging issues with the check and statute that produced them
- Merging sub-check results into one aggregate
- Formatting validation results for display or serialization

Validators never raise for a business-rule failure; they return a
ValidationResult and the caller decides whether errors block a commit.
"""

from datetime import date, datetime
from enum import Enum
from typing import List, Dict, Any, Optional

ERROR = "error"
WARNING = "warning"
INFO = "info"


class ValidationIssue:
    """Represents a single validation issue found during checks."""

    def __init__(self, check_name: str, severity: str, detail: str,
                 statute: Optional[str] = None, sample: Optional[Any] = None):
        """Initialize a validation issue.

        Args:
            check_name: Name of the check that found this issue
            severity: Issue severity ('error', 'warning', 'info')
            detail: Human-readable description of the issue
            statute: Statute or regulation citation, if any
            sample: Value that triggered the issue
        """
        self.check_name = check_name
        self.severity = severity
        self.detail = detail
        self.statute = statute
        self.sample = sample

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "check": self.check_name,
            "severity": self.severity,
            "detail": self.detail,
            "statute": self.statute,
            "sample": str(self.sample) if self.sample is not None else None,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ValidationIssue):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return (f"ValidationIssue(check={self.check_name}, severity={self.severity}, "
                f"detail={self.detail!r})")


class ValidationResult:
    """Collects the outcome of one or more compliance checks.

    Subclasses expose typed attributes for their own payload and list them in
    ``detail_fields`` so they are included in ``to_dict()``.
    """

    detail_fields: tuple = ()

    def __init__(self, check_name: str = ""):
        """Initialize empty validation result.

        Args:
            check_name: Default check name for issues added without one
        """
        self.check_name = check_name
        self.issues: List[ValidationIssue] = []
        self.passed_checks: List[str] = []
        self.failed_checks: List[str] = []
        self.details: Dict[str, Any] = {}

    def add_issue(self, severity: str, detail: str, check_name: Optional[str] = None,
                  statute: Optional[str] = None, sample: Optional[Any] = None) -> None:
        """Add a validation issue.

        Args:
            severity: Issue severity ('error', 'warning', 'info')
            detail: Human-readable description
            check_name: Check that found the issue (defaults to this result's)
            statute: Statute citation
            sample: Value that triggered the issue
        """
        name = check_name or self.check_name
        self.issues.append(ValidationIssue(name, severity, detail, statute, sample))
        if severity == ERROR and name not in self.failed_checks:
            self.failed_checks.append(name)

    def add_error(self, detail: str, **kwargs: Any) -> None:
        self.add_issue(ERROR, detail, **kwargs)

    def add_warning(self, detail: str, **kwargs: Any) -> None:
        self.add_issue(WARNING, detail, **kwargs)

    def add_info(self, detail: str, **kwargs: Any) -> None:
        self.add_issue(INFO, detail, **kwargs)

    def mark_check_passed(self, check_name: str) -> None:
        """Mark a check as passed."""
        if check_name not in self.passed_checks:
            self.passed_checks.append(check_name)

    def mark_check_failed(self, check_name: str) -> None:
        """Mark a check as failed."""
        if check_name not in self.failed_checks:
            self.failed_checks.append(check_name)

    def merge(self, other: "ValidationResult", prefix: Optional[str] = None) -> None:
        """Append another result's issues and check outcomes to this one.

        Args:
            other: Result to fold in
            prefix: Optional label prepended to each merged message
        """
        for issue in other.issues:
            detail = f"{prefix}: {issue.detail}" if prefix else issue.detail
            self.issues.append(ValidationIssue(
                issue.check_name, issue.severity, detail, issue.statute, issue.sample))
        for name in other.passed_checks:
            self.mark_check_passed(name)
        for name in other.failed_checks:
            self.mark_check_failed(name)

    def get_issues_by_severity(self, severity: str) -> List[ValidationIssue]:
        """Get all issues of a specific severity, in insertion order."""
        return [i for i in self.issues if i.severity == severity]

    @property
    def errors(self) -> List[str]:
        """Blocking messages, in the order they were found."""
        return [i.detail for i in self.get_issues_by_severity(ERROR)]

    @property
    def warnings(self) -> List[str]:
        """Advisory messages, in the order they were found."""
        return [i.detail for i in self.get_issues_by_severity(WARNING)]

    @property
    def info(self) -> List[str]:
        return [i.detail for i in self.get_issues_by_severity(INFO)]

    def error_count(self) -> int:
        """Get total number of error-level issues."""
        return len(self.get_issues_by_severity(ERROR))

    def warning_count(self) -> int:
        """Get total number of warning-level issues."""
        return len(self.get_issues_by_severity(WARNING))

    @property
    def is_valid(self) -> bool:
        """True when no error-level issue was recorded."""
        return self.error_count() == 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "check": self.check_name,
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "issues": [i.to_dict() for i in self.issues],
            "passed_checks": list(self.passed_checks),
            "failed_checks": list(self.failed_checks),
            "details": self._details_dict(),
        }

    def _details_dict(self) -> Dict[str, Any]:
        data = _serialize(self.details)
        for name in self.detail_fields:
            data[name] = _serialize(getattr(self, name))
        return data

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(check={self.check_name}, "
                f"errors={self.error_count()}, warnings={self.warning_count()})")


def _serialize(value: Any) -> Any:
    """Render detail payloads as JSON-friendly primitives."""
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {(k.value if isinstance(k, Enum) else str(k)): _serialize(v)
                for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(_serialize(v) for v in value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def is_positive_amount(value: Any) -> bool:
    """Check if value is a usable obligation amount (a positive number).

    Args:
        value: Amount to validate

    Returns:
        True if value is a positive int/float/Decimal, False otherwise
    """
    if isinstance(value, bool):
        return False
    try:
        return value is not None and value > 0
    except TypeError:
        return False
