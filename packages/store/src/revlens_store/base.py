"""Abstract store interfaces.

The review engine depends on IssueLedger and HistoryRecorder, not on a
concrete backend, so backends are swappable without touching engine code.
A single class may implement both (SQLiteStore and MemoryStore do).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from revlens_store.errors import InvalidTransition
from revlens_store.models import IssueStatus, utc_now

if TYPE_CHECKING:
    from revlens_store.models import Issue, IssueFilter, ReviewConfiguration, ReviewHistoryEntry, ReviewStats


class IssueLedger(ABC):
    """Persistent issue ledger keyed by project.

    Every backend failure must surface as PersistenceFailure so callers can
    isolate it; unknown issue ids raise IssueNotFound.
    """

    # ------------------------------------------------------------------ #
    # Issues                                                              #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def find_active_issues(self, project_id: str) -> list[Issue]:
        """Return every active issue of a project, most severe first."""

    @abstractmethod
    def find_resolved_issue(self, project_id: str, file_path: str, line_number: int, rule_id: str) -> Issue | None:
        """Return the most recently resolved issue with this key, or None."""

    @abstractmethod
    def insert_issue(self, issue: Issue) -> Issue:
        """Persist a new issue row and return it."""

    @abstractmethod
    def get_issue(self, issue_id: str) -> Issue:
        """Return one issue or raise IssueNotFound."""

    @abstractmethod
    def list_issues(self, filters: IssueFilter) -> list[Issue]:
        """Return issues matching the filter, most severe first, then by line."""

    @abstractmethod
    def update_issue(self, issue_id: str, **fields) -> Issue:
        """Apply manual edits (see EDITABLE_ISSUE_FIELDS) and return the row."""

    @abstractmethod
    def delete_issue(self, issue_id: str) -> None:
        """Remove an issue row. Raises IssueNotFound for unknown ids."""

    @abstractmethod
    def touch_last_seen(self, issue_id: str) -> None:
        """Bump last_seen_at on an issue that was observed again."""

    @abstractmethod
    def _set_status(self, issue_id: str, status: IssueStatus, resolved_by: str | None, at: str) -> Issue:
        """Write a status change. Callers have already validated the transition."""

    def mark_resolved(self, issue_id: str, user_id: str) -> Issue:
        """active → resolved. Records who resolved it and when."""
        issue = self.get_issue(issue_id)
        if issue.status != IssueStatus.ACTIVE:
            raise InvalidTransition(issue_id, issue.status.value, IssueStatus.RESOLVED.value)
        return self._set_status(issue_id, IssueStatus.RESOLVED, user_id, utc_now())

    def mark_dismissed(self, issue_id: str) -> Issue:
        """active → dismissed. Terminal; reappearance is matched on resolved rows only."""
        issue = self.get_issue(issue_id)
        if issue.status != IssueStatus.ACTIVE:
            raise InvalidTransition(issue_id, issue.status.value, IssueStatus.DISMISSED.value)
        return self._set_status(issue_id, IssueStatus.DISMISSED, None, utc_now())

    # ------------------------------------------------------------------ #
    # Configuration                                                       #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def save_config(self, config: ReviewConfiguration) -> ReviewConfiguration:
        """Insert or overwrite the project's configuration."""

    @abstractmethod
    def get_config(self, project_id: str) -> ReviewConfiguration | None:
        """Return the project's configuration, or None if never saved."""

    @abstractmethod
    def delete_config(self, project_id: str) -> None:
        """Forget the project's configuration. No-op if absent."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional. Subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """


class HistoryRecorder(ABC):
    """Append-only log of orchestration runs."""

    @abstractmethod
    def record(self, entry: ReviewHistoryEntry) -> None:
        """Persist one run summary."""

    @abstractmethod
    def list_history(self, project_id: str, limit: int = 10) -> list[ReviewHistoryEntry]:
        """Return the most recent runs for a project, newest first."""

    @abstractmethod
    def get_review_stats(self, project_id: str) -> ReviewStats:
        """Aggregate counts across every recorded run of a project."""
