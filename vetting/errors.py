"""
Exception hierarchy for the vetting engine.

Usage:
    from vetting.errors import NetworkError, TotalFailure

    try:
        analysis = calculate_margin(stats, candidate.price, category, config)
    except TotalFailure as e:
        logger.error("Margin failed: {}", e)

The pipeline never lets these escape to its caller: each one is turned into a
failed or degraded stage outcome and, when nothing usable is left, into an
error Decision.
"""

from __future__ import annotations

from typing import Any, Optional


class VettingError(Exception):
    """Base exception for all vetting errors."""

    def __init__(
        self,
        message: str,
        code: str = "VETTING_ERROR",
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for reports."""
        result: dict[str, Any] = {
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


class ValidationError(VettingError):
    """Malformed candidate product (missing title, non-positive price...)."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {}) or {}
        if field:
            details["field"] = field
        super().__init__(message, code="VALIDATION_ERROR", details=details, **kwargs)
        self.field = field


class NetworkError(VettingError):
    """Image or marketplace fetch failed after retries."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {}) or {}
        if url:
            details["url"] = url
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, code="NETWORK_ERROR", details=details, **kwargs)
        self.url = url
        self.status_code = status_code


class ComputationError(VettingError):
    """Invalid numeric input, e.g. a non-positive price."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="COMPUTATION_ERROR", **kwargs)


class PartialScenarioFailure(VettingError):
    """One margin scenario could not be computed; the others are still usable."""

    def __init__(self, scenario: str, message: str, **kwargs):
        details = kwargs.pop("details", {}) or {}
        details["scenario"] = scenario
        super().__init__(message, code="PARTIAL_SCENARIO_FAILURE", details=details, **kwargs)
        self.scenario = scenario


class TotalFailure(VettingError):
    """Every margin scenario failed."""

    def __init__(self, message: str, failures: Optional[dict[str, str]] = None, **kwargs):
        details = kwargs.pop("details", {}) or {}
        if failures:
            details["failures"] = failures
        super().__init__(message, code="TOTAL_FAILURE", details=details, **kwargs)
        self.failures = failures or {}
