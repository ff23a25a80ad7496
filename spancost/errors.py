"""spancost error hierarchy and exceptions."""

from __future__ import annotations


class SpanCostError(Exception):
    """Base exception for all spancost errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigError(SpanCostError):
    """Raised when configuration is invalid or conflicting."""
    pass


class PricingError(SpanCostError):
    """Raised when a price catalog cannot be loaded or validated."""
    pass


class ValidationError(SpanCostError):
    """Raised when per-call telemetry metadata fails validation."""
    pass
