"""Issue ledger and review history data models.

Decoupled from revlens_core so the store layer can be used on its own; the
engine imports these records, never the other way round.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Category(str, Enum):
    SECURITY = "security"
    ARCHITECTURE = "architecture"
    LINTING = "linting"
    TESTING = "testing"
    PERFORMANCE = "performance"
    DOCUMENTATION = "documentation"


class IssueStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


# Used for "most severe first" ordering in list queries.
SEVERITY_RANK = {Severity.ERROR: 2, Severity.WARNING: 1, Severity.INFO: 0}

DEFAULT_GUIDELINES = ("eslint", "pep8")
DEFAULT_DIMENSIONS = ("security", "linting", "architecture")
DEFAULT_MODEL = "gpt-oss:120b-cloud"


@dataclass
class Issue:
    """A persisted code issue.

    Rows are never flipped back to active: a resolved issue that shows up
    again is stored as a new row with ``was_resolved_before`` set, and the
    old row stays behind as history.
    """

    project_id: str
    file_path: str
    line_number: int
    severity: Severity
    category: Category
    rule_id: str
    title: str
    description: str
    user_id: str = ""
    column_number: int | None = None
    end_line_number: int | None = None
    end_column_number: int | None = None
    suggestion: str | None = None
    code_snippet: str | None = None
    suggested_fix: str | None = None
    status: IssueStatus = IssueStatus.ACTIVE
    is_manual: bool = False
    was_resolved_before: bool = False
    resolution_count: int = 0
    id: str = field(default_factory=new_id)
    first_detected_at: str = field(default_factory=utc_now)
    last_seen_at: str = field(default_factory=utc_now)
    resolved_at: str | None = None
    resolved_by: str | None = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    @property
    def match_key(self) -> tuple[str, str, int, str]:
        return (self.project_id, self.file_path, self.line_number, self.rule_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "userId": self.user_id,
            "filePath": self.file_path,
            "lineNumber": self.line_number,
            "columnNumber": self.column_number,
            "endLineNumber": self.end_line_number,
            "endColumnNumber": self.end_column_number,
            "severity": self.severity.value,
            "category": self.category.value,
            "ruleId": self.rule_id,
            "title": self.title,
            "description": self.description,
            "suggestion": self.suggestion,
            "codeSnippet": self.code_snippet,
            "suggestedFix": self.suggested_fix,
            "status": self.status.value,
            "isManual": self.is_manual,
            "wasResolvedBefore": self.was_resolved_before,
            "resolutionCount": self.resolution_count,
            "firstDetectedAt": self.first_detected_at,
            "lastSeenAt": self.last_seen_at,
            "resolvedAt": self.resolved_at,
            "resolvedBy": self.resolved_by,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class ReviewConfiguration:
    """Per-project review settings. One per project, last write wins."""

    project_id: str
    user_id: str = ""
    enabled_guidelines: tuple[str, ...] = DEFAULT_GUIDELINES
    enabled_dimensions: tuple[str, ...] = DEFAULT_DIMENSIONS
    custom_instructions: str | None = None
    model_name: str = DEFAULT_MODEL
    created_at: str | None = None
    updated_at: str | None = None

    def __post_init__(self):
        # Accept any iterable from callers (lists from YAML/JSON, sets from the CLI).
        self.enabled_guidelines = tuple(self.enabled_guidelines)
        self.enabled_dimensions = tuple(self.enabled_dimensions)


@dataclass(frozen=True)
class ReviewHistoryEntry:
    """Summary of one orchestration run. Written once, never updated."""

    project_id: str
    user_id: str
    files_reviewed: tuple[str, ...]
    files_count: int
    total_issues: int
    new_issues: int
    reappeared_issues: int
    review_duration_ms: int
    model_used: str
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)


@dataclass
class ReviewStats:
    total_reviews: int = 0
    total_issues_found: int = 0
    average_duration_ms: float = 0.0
    last_review_at: str | None = None


@dataclass
class IssueFilter:
    """Optional filters for IssueLedger.list_issues()."""

    project_id: str
    status: IssueStatus | None = None
    severity: Severity | None = None
    category: Category | None = None
    file_path: str | None = None

    def matches(self, issue: Issue) -> bool:
        if issue.project_id != self.project_id:
            return False
        if self.status is not None and issue.status != self.status:
            return False
        if self.severity is not None and issue.severity != self.severity:
            return False
        if self.category is not None and issue.category != self.category:
            return False
        if self.file_path is not None and issue.file_path != self.file_path:
            return False
        return True


# Fields a human may change on an existing issue.
EDITABLE_ISSUE_FIELDS = frozenset({"title", "description", "suggestion", "suggested_fix", "severity", "category"})


def sort_issues(issues: list[Issue]) -> list[Issue]:
    """Most severe first, then by line."""
    return sorted(issues, key=lambda i: (-SEVERITY_RANK[i.severity], i.line_number))
