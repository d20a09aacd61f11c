"""
Domain exceptions raised by the Voyageur Nest services.
"""
from typing import Any, Dict, List, Optional


class VoyageurError(Exception):
    """Base class for domain errors; carries an API error code."""

    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(VoyageurError):
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message, {"errors": errors or []})
        self.errors = errors or []


class NotFoundError(VoyageurError):
    error_code = "NOT_FOUND"


class RateLimitError(VoyageurError):
    """Raised by the AI rate limiter; ``reason`` is the machine-readable cause."""

    error_code = "RATE_LIMITED"

    def __init__(self, reason: str):
        super().__init__(reason, {"reason": reason})
        self.reason = reason


class AIProviderError(VoyageurError):
    error_code = "AI_PROVIDER_ERROR"
