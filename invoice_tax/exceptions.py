"""
Typed errors raised by the tax engine.

Every error derives from TaxEngineError so callers can catch the whole
family in one place (the CLI does).
"""

from __future__ import annotations

from typing import Optional


class TaxEngineError(Exception):
    """Base exception for tax engine errors."""


class ValidationError(TaxEngineError):
    """Raised when a calculation request is missing required data."""

    def __init__(self, message: str, missing_fields: Optional[list[str]] = None):
        super().__init__(message)
        self.missing_fields = list(missing_fields or [])


class ProviderError(TaxEngineError):
    """Raised when a tax provider call fails (network, auth, bad payload)."""

    def __init__(
        self,
        provider: str,
        message: str,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.cause = cause


class StateError(TaxEngineError):
    """Raised by the invoice workflow on a disallowed status transition."""

    def __init__(self, message: str, current_status: str = "", action: str = ""):
        super().__init__(message)
        self.current_status = current_status
        self.action = action


__all__ = [
    "TaxEngineError",
    "ValidationError",
    "ProviderError",
    "StateError",
]
