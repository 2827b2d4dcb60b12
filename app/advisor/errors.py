"""
PropLedger — Advisor Error Types
=================================
    AdvisorError
      ├── AdvisorValidationError   → 400, caller must fix the request
      ├── ProviderError            → 500, an external call failed
      │     ├── EmbeddingError
      │     ├── RetrievalError
      │     └── CompletionError
      ├── MidStreamFailure         → logged only, partial answer already sent
      └── PropertyNotFoundError    → 404, embedding refresh for an unknown id

Messages on these exceptions are shown to the caller, so they never embed
provider response bodies or credentials.
"""

from __future__ import annotations


class AdvisorError(Exception):
    """Base class for every failure raised by the advisor pipeline."""

    status_code: int = 500

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.message = message
        self.stage = stage


class AdvisorValidationError(AdvisorError):
    status_code = 400


class ProviderError(AdvisorError):
    status_code = 500


class EmbeddingError(ProviderError):
    pass


class RetrievalError(ProviderError):
    pass


class CompletionError(ProviderError):
    pass


class MidStreamFailure(AdvisorError):
    """The completion stream broke after part of the answer was delivered."""

    def __init__(self, message: str, bytes_sent: int, stage: str | None = "STREAMING"):
        super().__init__(message, stage=stage)
        self.bytes_sent = bytes_sent


class PropertyNotFoundError(AdvisorError):
    status_code = 404
