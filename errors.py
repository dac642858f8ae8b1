"""
errors.py - exception taxonomy for the SEO analysis service.

Every error the HTTP layer knows how to render derives from SEOAnalysisError.
"""

from typing import Any, Optional


class SEOAnalysisError(Exception):
    """Base exception for SEO analysis errors."""

    pass


class ConfigurationError(SEOAnalysisError):
    """Raised when secrets or settings are missing or invalid. Never retried."""

    pass


class ValidationError(SEOAnalysisError):
    """Raised when caller input is malformed."""

    pass


class UpstreamError(SEOAnalysisError):
    """
    DataForSEO call failed after all attempts.
    Keeps the last status and body the provider returned for diagnostics.
    """

    def __init__(
        self,
        message: str,
        last_status: Optional[int] = None,
        last_message: Optional[str] = None,
        attempts: int = 0,
        payload: Any = None,
    ):
        super().__init__(message)
        self.last_status = last_status
        self.last_message = last_message
        self.attempts = attempts
        self.payload = payload

    @property
    def details(self) -> Any:
        """Last upstream body if one was seen, otherwise the error text."""
        if self.payload is not None:
            return self.payload
        return self.last_message or str(self)


class GenerationError(SEOAnalysisError):
    """Claude call failed after all attempts."""

    def __init__(self, message: str, attempts: int = 0, last_error: Optional[str] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error

    @property
    def details(self) -> str:
        return self.last_error or str(self)
