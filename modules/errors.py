"""
Error taxonomy for the forage analysis pipeline.

Every error carries a message that can be shown to the user as-is.
"""

from __future__ import annotations


class ForageAnalysisError(Exception):
    """Base class — ``str(exc)`` is the display message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotReadyError(ForageAnalysisError):
    """Capture attempted without a ready map surface or for an unknown site."""


class AnalysisCancelledError(ForageAnalysisError):
    """Operation was superseded or explicitly aborted. Never shown as a failure."""


class AnalysisTimeoutError(ForageAnalysisError):
    """No response arrived within the bounded wait."""


class QuotaExceededError(ForageAnalysisError):
    """Daily ceiling of successful analyses reached."""


class UpstreamError(ForageAnalysisError):
    """The model or proxy call failed for any other reason."""


class ParseError(ForageAnalysisError):
    """Analysis text could not be decomposed. Only used inside the formatter."""
