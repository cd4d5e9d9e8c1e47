"""
Pipeline Errors - Centralized failure taxonomy for the OpenURL gateway.

Every failure the request pipeline can surface to a caller lives here.

Each error has:
- status_code: HTTP status used by the API layer
- message: Human-readable description (safe to expose)
- to_dict(): Structured output for logs and JSON responses
"""

from typing import Any, Dict, Optional


SUBMISSION_FAILED_MESSAGE = "Error encountered submitting request to mod-rs"


class PipelineError(Exception):
    """Base class for errors that terminate the request pipeline."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class UnsupportedServiceError(PipelineError):
    """No registered service handle matches the resolved symbol."""

    status_code = 404

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"unsupported service '{symbol}'", {"symbol": symbol})


class SubmissionError(PipelineError):
    """
    The downstream service answered the submission with a non-2xx status.

    Carries the downstream status and body, plus the outcome already
    rendered for the active output mode so the caller still receives the
    JSON document or the "bad" page.
    """

    status_code = 500

    def __init__(self, status: int, body: str, outcome: Any = None):
        self.status = status
        self.body = body
        self.outcome = outcome
        super().__init__(
            SUBMISSION_FAILED_MESSAGE,
            {"status": status, "body": body},
        )


class DownstreamConnectionError(PipelineError):
    """Transport-level failure talking to the downstream service."""

    status_code = 502


class LoginError(PipelineError):
    """The downstream service rejected the session login."""

    status_code = 502

    def __init__(self, symbol: str, status: int, body: str = ""):
        self.symbol = symbol
        self.status = status
        super().__init__(
            f"Login to service '{symbol}' failed with HTTP {status}",
            {"symbol": symbol, "status": status, "body": body},
        )


class ConfigError(Exception):
    """Exception raised for configuration loading errors."""
    pass


class TemplateNotFoundError(Exception):
    """Requested template does not exist in the template directory."""
    pass
