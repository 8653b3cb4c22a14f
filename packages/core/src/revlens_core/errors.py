"""Error taxonomy for the review engine.

Analysis errors describe what went wrong talking to the analysis provider;
the orchestrator uses the concrete type to decide whether a retry is worth
it. Persistence errors come from revlens_store and are re-exported here so
engine code has one place to import from.
"""

from __future__ import annotations

from revlens_store.errors import InvalidTransition, IssueNotFound, PersistenceFailure, RevlensError

__all__ = [
    "AnalysisError",
    "AnalysisMalformed",
    "AnalysisRequestFailed",
    "AnalysisUnavailable",
    "FileSourceError",
    "InvalidTransition",
    "IssueNotFound",
    "PersistenceFailure",
    "RevlensError",
]


class AnalysisError(RevlensError):
    """Base class for failures of the external analysis capability."""


class AnalysisUnavailable(AnalysisError):
    """The provider could not be reached (connection refused, DNS, timeout)."""


class AnalysisMalformed(AnalysisError):
    """The provider answered, but not with the JSON shape we asked for."""


class AnalysisRequestFailed(AnalysisError):
    """The provider rejected the request (non-2xx status, SDK API error)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class FileSourceError(RevlensError):
    """The list of changed files could not be produced."""
