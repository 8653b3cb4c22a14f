"""In-process store; nothing survives the interpreter.

Useful as a throwaway ledger when embedding the orchestrator, and in tests.
Records are copied on the way in and out so callers can never mutate stored
state behind the store's back, matching what a real database gives you.
"""

from __future__ import annotations

import dataclasses
import threading

from revlens_store.base import HistoryRecorder, IssueLedger
from revlens_store.errors import IssueNotFound
from revlens_store.models import (
    EDITABLE_ISSUE_FIELDS,
    Category,
    Issue,
    IssueFilter,
    IssueStatus,
    ReviewConfiguration,
    ReviewHistoryEntry,
    ReviewStats,
    Severity,
    sort_issues,
    utc_now,
)


class MemoryStore(IssueLedger, HistoryRecorder):
    def __init__(self):
        self._lock = threading.Lock()
        self._issues: dict[str, Issue] = {}
        self._configs: dict[str, ReviewConfiguration] = {}
        self._history: list[ReviewHistoryEntry] = []

    def find_active_issues(self, project_id: str) -> list[Issue]:
        return self.list_issues(IssueFilter(project_id=project_id, status=IssueStatus.ACTIVE))

    def find_resolved_issue(self, project_id: str, file_path: str, line_number: int, rule_id: str) -> Issue | None:
        key = (project_id, file_path, line_number, rule_id)
        with self._lock:
            matches = [
                i for i in self._issues.values() if i.status == IssueStatus.RESOLVED and i.match_key == key
            ]
        if not matches:
            return None
        # Insertion order breaks ties between identical timestamps.
        latest = max(enumerate(matches), key=lambda pair: (pair[1].resolved_at or "", pair[0]))[1]
        return dataclasses.replace(latest)

    def insert_issue(self, issue: Issue) -> Issue:
        with self._lock:
            self._issues[issue.id] = dataclasses.replace(issue)
        return issue

    def get_issue(self, issue_id: str) -> Issue:
        with self._lock:
            issue = self._issues.get(issue_id)
        if issue is None:
            raise IssueNotFound(issue_id)
        return dataclasses.replace(issue)

    def list_issues(self, filters: IssueFilter) -> list[Issue]:
        with self._lock:
            found = [dataclasses.replace(i) for i in self._issues.values() if filters.matches(i)]
        return sort_issues(found)

    def update_issue(self, issue_id: str, **fields) -> Issue:
        unknown = set(fields) - EDITABLE_ISSUE_FIELDS
        if unknown:
            raise ValueError(f"Cannot edit issue field(s): {', '.join(sorted(unknown))}")
        if "severity" in fields:
            fields["severity"] = Severity(fields["severity"])
        if "category" in fields:
            fields["category"] = Category(fields["category"])
        with self._lock:
            if issue_id not in self._issues:
                raise IssueNotFound(issue_id)
            self._issues[issue_id] = dataclasses.replace(self._issues[issue_id], updated_at=utc_now(), **fields)
        return self.get_issue(issue_id)

    def delete_issue(self, issue_id: str) -> None:
        with self._lock:
            if self._issues.pop(issue_id, None) is None:
                raise IssueNotFound(issue_id)

    def touch_last_seen(self, issue_id: str) -> None:
        now = utc_now()
        with self._lock:
            if issue_id not in self._issues:
                raise IssueNotFound(issue_id)
            self._issues[issue_id] = dataclasses.replace(self._issues[issue_id], last_seen_at=now, updated_at=now)

    def _set_status(self, issue_id: str, status: IssueStatus, resolved_by: str | None, at: str) -> Issue:
        changes = {"status": status, "updated_at": at}
        if status == IssueStatus.RESOLVED:
            changes.update(resolved_at=at, resolved_by=resolved_by)
        with self._lock:
            self._issues[issue_id] = dataclasses.replace(self._issues[issue_id], **changes)
        return self.get_issue(issue_id)

    def save_config(self, config: ReviewConfiguration) -> ReviewConfiguration:
        now = utc_now()
        with self._lock:
            previous = self._configs.get(config.project_id)
            created = previous.created_at if previous else now
            self._configs[config.project_id] = dataclasses.replace(config, created_at=created, updated_at=now)
        return self.get_config(config.project_id)

    def get_config(self, project_id: str) -> ReviewConfiguration | None:
        with self._lock:
            config = self._configs.get(project_id)
        return dataclasses.replace(config) if config else None

    def delete_config(self, project_id: str) -> None:
        with self._lock:
            self._configs.pop(project_id, None)

    def record(self, entry: ReviewHistoryEntry) -> None:
        with self._lock:
            self._history.append(entry)

    def list_history(self, project_id: str, limit: int = 10) -> list[ReviewHistoryEntry]:
        with self._lock:
            entries = [e for e in self._history if e.project_id == project_id]
        return list(reversed(entries))[:limit]

    def get_review_stats(self, project_id: str) -> ReviewStats:
        with self._lock:
            entries = [e for e in self._history if e.project_id == project_id]
        if not entries:
            return ReviewStats()
        return ReviewStats(
            total_reviews=len(entries),
            total_issues_found=sum(e.total_issues for e in entries),
            average_duration_ms=sum(e.review_duration_ms for e in entries) / len(entries),
            last_review_at=max(e.created_at for e in entries),
        )
