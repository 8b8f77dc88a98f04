"""Exception taxonomy for the lookup pipeline.

``ValidationError`` rejects a request before any pipeline work. Every other
kind is caught per (vendor, description) by the orchestrator and turned into
a degraded ``"N/A"`` result.
"""

from __future__ import annotations

from typing import Optional


class PartLookupError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(PartLookupError):
    """Malformed or missing request input."""


class UpstreamError(PartLookupError):
    """A collaborator service answered with a non-success status or was unreachable."""

    def __init__(self, message: str, service: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.service = service
        self.status_code = status_code


class RetryExhausted(UpstreamError):
    """The service kept rate-limiting until the retry policy ran out of attempts."""

    def __init__(self, message: str, service: str = "", attempts: int = 0):
        super().__init__(message, service=service, status_code=429)
        self.attempts = attempts


class MalformedSelection(PartLookupError):
    """The LLM did not return the forced tool call, or its arguments did not parse."""


class ScrapeFailure(PartLookupError):
    """The vendor's live search page could not be fetched or yielded no SKUs."""
