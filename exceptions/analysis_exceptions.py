#!/usr/bin/env python3
"""
Exceptions raised by the LLM analysis client and the sync pipeline.

The heuristic engine (normalizer, categorizer, transcript analyzer) never
raises on noisy input; these errors belong to the parts of the system that
talk to external services and must fail loudly.
"""

from typing import List, Optional

# HTTP statuses worth another attempt
RETRYABLE_STATUS_CODES = {408, 409, 429}


class AnalysisError(Exception):
    """Base class for analysis and sync errors"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidInputError(AnalysisError):
    """Precondition violation by the caller, e.g. an empty conversation. Never retried."""
    pass


class ParseError(AnalysisError):
    """The completion could not be turned into a JSON object"""

    def __init__(self, message: str, raw_text: Optional[str] = None):
        self.raw_text = raw_text
        super().__init__(message)


class SchemaError(ParseError):
    """The completion was valid JSON but lacked required fields"""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 raw_text: Optional[str] = None):
        self.missing_fields = list(missing_fields or [])
        super().__init__(message, raw_text=raw_text)


class UpstreamError(AnalysisError):
    """Non-2xx (or no) response from the completion service"""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        if self.status_code is None:
            return True
        return self.status_code in RETRYABLE_STATUS_CODES or self.status_code >= 500

    def __str__(self) -> str:
        if self.status_code:
            return f"Upstream Error ({self.status_code}): {self.message}"
        return f"Upstream Error: {self.message}"


class LLMTimeoutError(UpstreamError):
    """The completion call did not finish within its timeout"""
    pass


class SourceError(AnalysisError):
    """The external record source failed (authentication, HTTP, unreadable export)"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class PipelineFault(AnalysisError):
    """
    Fatal pipeline-level failure: storage or source unreachable, window
    cannot be determined. Carries the phase that failed and the partial
    run statistics so the operator summary can still be reported.
    """

    def __init__(self, message: str, phase: Optional[str] = None, stats=None):
        self.phase = phase
        self.stats = stats
        super().__init__(message)

    def __str__(self) -> str:
        if self.phase:
            return f"Pipeline fault during {self.phase}: {self.message}"
        return f"Pipeline fault: {self.message}"
