"""
Error taxonomy for the safety pipeline.

- RequestValidationFailure: malformed or out-of-range request parameters (HTTP 400)
- UpstreamError and subclasses: provider faults, always absorbed by a fetcher's
  fallback chain and never surfaced to the HTTP layer
- ComputationError: broken internal contract in the evaluator/scorer (HTTP 500)
"""
from typing import Optional


class SafetyError(Exception):
    """Base class for all SummitCast errors."""


class RequestValidationFailure(SafetyError):
    """Request parameters are missing, malformed, or out of range."""


class UpstreamError(SafetyError):
    """A third-party provider call failed."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class UpstreamTimeout(UpstreamError):
    """Provider did not answer within the per-call timeout."""


class UpstreamHTTPError(UpstreamError):
    """Provider answered with a non-success HTTP status."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, url)
        self.status_code = status_code


class UpstreamMalformed(UpstreamError):
    """Provider answered 2xx but the body could not be decoded or is missing required shape."""


class ComputationError(SafetyError):
    """An internal invariant was violated while evaluating or scoring."""
