"""Custom exceptions for Tailor."""

from typing import Any


class TailorError(Exception):
    """Base exception for all Tailor errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(TailorError):
    """Raised when a rule document or settings file is malformed."""


class CustomizationError(TailorError):
    """Raised when applying rules to a template fails unexpectedly."""


class PatternError(TailorError):
    """Raised when a regular expression in a rule cannot be compiled."""


class ManifestError(TailorError):
    """Raised when a library compatibility manifest cannot be read."""
