"""Exceptions raised by the store layer.

RevlensError is the root of every exception the project raises on purpose;
revlens_core builds its analysis errors on top of it.
"""

from __future__ import annotations


class RevlensError(Exception):
    """Base class for all revlens errors."""


class PersistenceFailure(RevlensError):
    """A ledger or history read/write failed."""


class IssueNotFound(PersistenceFailure):
    def __init__(self, issue_id: str):
        super().__init__(f"Issue {issue_id!r} not found.")
        self.issue_id = issue_id


class InvalidTransition(RevlensError):
    """An issue lifecycle change that is not allowed from its current status."""

    def __init__(self, issue_id: str, current: str, target: str):
        super().__init__(f"Issue {issue_id!r} is {current}; cannot mark it {target}.")
        self.issue_id = issue_id
        self.current = current
        self.target = target
