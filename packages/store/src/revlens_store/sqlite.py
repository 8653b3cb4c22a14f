"""SQLiteStore: local file-based issue ledger and review history.

Schema:
  issues          one row per detected or manual issue; resolved rows are
                  kept forever so reappearances can be matched against them.
  review_configs  one row per project (guideline/dimension lists as JSON).
  review_history  one row per orchestration run (file list as JSON).

One connection is shared between worker threads and every statement runs
under a lock.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager

from revlens_store.base import HistoryRecorder, IssueLedger
from revlens_store.errors import IssueNotFound, PersistenceFailure
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
    utc_now,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS issues (
    id                  TEXT PRIMARY KEY,
    project_id          TEXT NOT NULL,
    user_id             TEXT,
    file_path           TEXT NOT NULL,
    line_number         INTEGER NOT NULL,
    column_number       INTEGER,
    end_line_number     INTEGER,
    end_column_number   INTEGER,
    severity            TEXT NOT NULL CHECK (severity IN ('error', 'warning', 'info')),
    category            TEXT NOT NULL,
    rule_id             TEXT NOT NULL,
    title               TEXT NOT NULL,
    description         TEXT NOT NULL,
    suggestion          TEXT,
    code_snippet        TEXT,
    suggested_fix       TEXT,
    status              TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'resolved', 'dismissed')),
    is_manual           INTEGER NOT NULL DEFAULT 0,
    was_resolved_before INTEGER NOT NULL DEFAULT 0,
    resolution_count    INTEGER NOT NULL DEFAULT 0,
    first_detected_at   TEXT,
    last_seen_at        TEXT,
    resolved_at         TEXT,
    resolved_by         TEXT,
    created_at          TEXT,
    updated_at          TEXT
);
CREATE INDEX IF NOT EXISTS idx_issues_project     ON issues (project_id, status);
CREATE INDEX IF NOT EXISTS idx_issues_match       ON issues (project_id, file_path, rule_id, status);

CREATE TABLE IF NOT EXISTS review_configs (
    project_id          TEXT PRIMARY KEY,
    user_id             TEXT,
    enabled_guidelines  TEXT DEFAULT '[]',
    enabled_dimensions  TEXT DEFAULT '[]',
    custom_instructions TEXT,
    model_name          TEXT,
    created_at          TEXT,
    updated_at          TEXT
);

CREATE TABLE IF NOT EXISTS review_history (
    id                  TEXT PRIMARY KEY,
    project_id          TEXT NOT NULL,
    user_id             TEXT,
    files_reviewed      TEXT DEFAULT '[]',
    files_count         INTEGER DEFAULT 0,
    total_issues        INTEGER DEFAULT 0,
    new_issues          INTEGER DEFAULT 0,
    reappeared_issues   INTEGER DEFAULT 0,
    review_duration_ms  INTEGER DEFAULT 0,
    model_used          TEXT,
    created_at          TEXT
);
CREATE INDEX IF NOT EXISTS idx_history_project ON review_history (project_id, created_at);
"""

_SEVERITY_ORDER = "CASE severity WHEN 'error' THEN 0 WHEN 'warning' THEN 1 ELSE 2 END"


class SQLiteStore(IssueLedger, HistoryRecorder):
    """Issue ledger and review history in a local SQLite database file.

    The database file path defaults to `.revlens.db` in the current working
    directory. Configure via .revlens.yml: `store_path: /path/to/revlens.db`.
    """

    def __init__(self, db_path: str = ".revlens.db"):
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Could not open store at {db_path}: {e}") from e

    @contextmanager
    def _cursor(self):
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                logger.error("SQLite error: %s", e)
                raise PersistenceFailure(str(e)) from e

    # ------------------------------------------------------------------ #
    # Issues                                                              #
    # ------------------------------------------------------------------ #

    def find_active_issues(self, project_id: str) -> list[Issue]:
        return self.list_issues(IssueFilter(project_id=project_id, status=IssueStatus.ACTIVE))

    def find_resolved_issue(self, project_id: str, file_path: str, line_number: int, rule_id: str) -> Issue | None:
        with self._cursor() as conn:
            row = conn.execute(
                """
                SELECT * FROM issues
                WHERE project_id=? AND file_path=? AND line_number=? AND rule_id=? AND status='resolved'
                ORDER BY resolved_at DESC, rowid DESC
                LIMIT 1
                """,
                (project_id, file_path, line_number, rule_id),
            ).fetchone()
        return self._row_to_issue(row) if row else None

    def insert_issue(self, issue: Issue) -> Issue:
        with self._cursor() as conn:
            conn.execute(
                """
                INSERT INTO issues
                  (id, project_id, user_id, file_path, line_number, column_number,
                   end_line_number, end_column_number, severity, category, rule_id,
                   title, description, suggestion, code_snippet, suggested_fix,
                   status, is_manual, was_resolved_before, resolution_count,
                   first_detected_at, last_seen_at, resolved_at, resolved_by,
                   created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    issue.id,
                    issue.project_id,
                    issue.user_id,
                    issue.file_path,
                    issue.line_number,
                    issue.column_number,
                    issue.end_line_number,
                    issue.end_column_number,
                    issue.severity.value,
                    issue.category.value,
                    issue.rule_id,
                    issue.title,
                    issue.description,
                    issue.suggestion,
                    issue.code_snippet,
                    issue.suggested_fix,
                    issue.status.value,
                    int(issue.is_manual),
                    int(issue.was_resolved_before),
                    issue.resolution_count,
                    issue.first_detected_at,
                    issue.last_seen_at,
                    issue.resolved_at,
                    issue.resolved_by,
                    issue.created_at,
                    issue.updated_at,
                ),
            )
        return issue

    def get_issue(self, issue_id: str) -> Issue:
        with self._cursor() as conn:
            row = conn.execute("SELECT * FROM issues WHERE id=?", (issue_id,)).fetchone()
        if row is None:
            raise IssueNotFound(issue_id)
        return self._row_to_issue(row)

    def list_issues(self, filters: IssueFilter) -> list[Issue]:
        query = "SELECT * FROM issues WHERE project_id=?"
        params: list = [filters.project_id]
        if filters.status is not None:
            query += " AND status=?"
            params.append(filters.status.value)
        if filters.severity is not None:
            query += " AND severity=?"
            params.append(filters.severity.value)
        if filters.category is not None:
            query += " AND category=?"
            params.append(filters.category.value)
        if filters.file_path is not None:
            query += " AND file_path=?"
            params.append(filters.file_path)
        query += f" ORDER BY {_SEVERITY_ORDER}, line_number"

        with self._cursor() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_issue(r) for r in rows]

    def update_issue(self, issue_id: str, **fields) -> Issue:
        unknown = set(fields) - EDITABLE_ISSUE_FIELDS
        if unknown:
            raise ValueError(f"Cannot edit issue field(s): {', '.join(sorted(unknown))}")
        if "severity" in fields:
            fields["severity"] = Severity(fields["severity"]).value
        if "category" in fields:
            fields["category"] = Category(fields["category"]).value

        self.get_issue(issue_id)
        if fields:
            assignments = ", ".join(f"{name}=?" for name in fields)
            with self._cursor() as conn:
                conn.execute(
                    f"UPDATE issues SET {assignments}, updated_at=? WHERE id=?",
                    (*fields.values(), utc_now(), issue_id),
                )
        return self.get_issue(issue_id)

    def delete_issue(self, issue_id: str) -> None:
        with self._cursor() as conn:
            deleted = conn.execute("DELETE FROM issues WHERE id=?", (issue_id,)).rowcount
        if not deleted:
            raise IssueNotFound(issue_id)

    def touch_last_seen(self, issue_id: str) -> None:
        now = utc_now()
        with self._cursor() as conn:
            updated = conn.execute(
                "UPDATE issues SET last_seen_at=?, updated_at=? WHERE id=?", (now, now, issue_id)
            ).rowcount
        if not updated:
            raise IssueNotFound(issue_id)

    def _set_status(self, issue_id: str, status: IssueStatus, resolved_by: str | None, at: str) -> Issue:
        with self._cursor() as conn:
            if status == IssueStatus.RESOLVED:
                conn.execute(
                    "UPDATE issues SET status=?, resolved_at=?, resolved_by=?, updated_at=? WHERE id=?",
                    (status.value, at, resolved_by, at, issue_id),
                )
            else:
                conn.execute(
                    "UPDATE issues SET status=?, updated_at=? WHERE id=?",
                    (status.value, at, issue_id),
                )
        return self.get_issue(issue_id)

    # ------------------------------------------------------------------ #
    # Configuration                                                       #
    # ------------------------------------------------------------------ #

    def save_config(self, config: ReviewConfiguration) -> ReviewConfiguration:
        now = utc_now()
        with self._cursor() as conn:
            conn.execute(
                """
                INSERT INTO review_configs
                  (project_id, user_id, enabled_guidelines, enabled_dimensions,
                   custom_instructions, model_name, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (project_id) DO UPDATE SET
                  user_id=excluded.user_id,
                  enabled_guidelines=excluded.enabled_guidelines,
                  enabled_dimensions=excluded.enabled_dimensions,
                  custom_instructions=excluded.custom_instructions,
                  model_name=excluded.model_name,
                  updated_at=excluded.updated_at
                """,
                (
                    config.project_id,
                    config.user_id,
                    json.dumps(list(config.enabled_guidelines)),
                    json.dumps(list(config.enabled_dimensions)),
                    config.custom_instructions or None,
                    config.model_name,
                    now,
                    now,
                ),
            )
        return self.get_config(config.project_id)

    def get_config(self, project_id: str) -> ReviewConfiguration | None:
        with self._cursor() as conn:
            row = conn.execute("SELECT * FROM review_configs WHERE project_id=?", (project_id,)).fetchone()
        if row is None:
            return None
        return ReviewConfiguration(
            project_id=row["project_id"],
            user_id=row["user_id"] or "",
            enabled_guidelines=json.loads(row["enabled_guidelines"] or "[]"),
            enabled_dimensions=json.loads(row["enabled_dimensions"] or "[]"),
            custom_instructions=row["custom_instructions"],
            model_name=row["model_name"] or "",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def delete_config(self, project_id: str) -> None:
        with self._cursor() as conn:
            conn.execute("DELETE FROM review_configs WHERE project_id=?", (project_id,))

    # ------------------------------------------------------------------ #
    # History                                                             #
    # ------------------------------------------------------------------ #

    def record(self, entry: ReviewHistoryEntry) -> None:
        with self._cursor() as conn:
            conn.execute(
                """
                INSERT INTO review_history
                  (id, project_id, user_id, files_reviewed, files_count, total_issues,
                   new_issues, reappeared_issues, review_duration_ms, model_used, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.project_id,
                    entry.user_id,
                    json.dumps(list(entry.files_reviewed)),
                    entry.files_count,
                    entry.total_issues,
                    entry.new_issues,
                    entry.reappeared_issues,
                    entry.review_duration_ms,
                    entry.model_used,
                    entry.created_at,
                ),
            )

    def list_history(self, project_id: str, limit: int = 10) -> list[ReviewHistoryEntry]:
        with self._cursor() as conn:
            rows = conn.execute(
                "SELECT * FROM review_history WHERE project_id=? ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (project_id, limit),
            ).fetchall()
        return [self._row_to_entry(r) for r in rows]

    def get_review_stats(self, project_id: str) -> ReviewStats:
        with self._cursor() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*)                              AS total_reviews,
                       COALESCE(SUM(total_issues), 0)        AS total_issues_found,
                       COALESCE(AVG(review_duration_ms), 0)  AS average_duration_ms,
                       MAX(created_at)                       AS last_review_at
                FROM review_history WHERE project_id=?
                """,
                (project_id,),
            ).fetchone()
        return ReviewStats(
            total_reviews=row["total_reviews"],
            total_issues_found=row["total_issues_found"],
            average_duration_ms=float(row["average_duration_ms"]),
            last_review_at=row["last_review_at"],
        )

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_issue(row: sqlite3.Row) -> Issue:
        return Issue(
            id=row["id"],
            project_id=row["project_id"],
            user_id=row["user_id"] or "",
            file_path=row["file_path"],
            line_number=row["line_number"],
            column_number=row["column_number"],
            end_line_number=row["end_line_number"],
            end_column_number=row["end_column_number"],
            severity=Severity(row["severity"]),
            category=Category(row["category"]),
            rule_id=row["rule_id"],
            title=row["title"],
            description=row["description"],
            suggestion=row["suggestion"],
            code_snippet=row["code_snippet"],
            suggested_fix=row["suggested_fix"],
            status=IssueStatus(row["status"]),
            is_manual=bool(row["is_manual"]),
            was_resolved_before=bool(row["was_resolved_before"]),
            resolution_count=row["resolution_count"],
            first_detected_at=row["first_detected_at"],
            last_seen_at=row["last_seen_at"],
            resolved_at=row["resolved_at"],
            resolved_by=row["resolved_by"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> ReviewHistoryEntry:
        return ReviewHistoryEntry(
            id=row["id"],
            project_id=row["project_id"],
            user_id=row["user_id"] or "",
            files_reviewed=tuple(json.loads(row["files_reviewed"] or "[]")),
            files_count=row["files_count"],
            total_issues=row["total_issues"],
            new_issues=row["new_issues"],
            reappeared_issues=row["reappeared_issues"],
            review_duration_ms=row["review_duration_ms"],
            model_used=row["model_used"] or "",
            created_at=row["created_at"],
        )
