"""Validation result models."""

from typing import Any

from pydantic import BaseModel, Field


class CheckResult(BaseModel):
    """Outcome of a single prerequisite check."""

    passed: bool
    message: str
    details: dict[str, Any] | None = None
    remediation: list[str] | None = None
    warning: str | None = None
    skipped: bool = False


class ValidationIssue(BaseModel):
    """An error or warning raised by a check."""

    check: str
    message: str
    remediation: list[str] | None = None


class ValidationResult(BaseModel):
    """Aggregated outcome of all prerequisite checks."""

    success: bool
    checks: dict[str, CheckResult] = Field(default_factory=dict)
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
