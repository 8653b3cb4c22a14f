"""Engine-side records: analysis input/output and the run result.

Persistent records (Issue, ReviewConfiguration, ...) live in revlens_store;
everything here is ephemeral and exists only for the length of one run.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from revlens_store.models import Category, Issue, Severity


@dataclass(frozen=True)
class ModifiedFile:
    """A changed file as handed over by a file source."""

    file_path: str
    current_content: str
    original_content: str = ""


@dataclass(frozen=True)
class Directive:
    """The composed instruction text sent to the analysis provider for one file."""

    file_path: str
    language: str
    text: str


@dataclass(frozen=True)
class CandidateIssue:
    """An unpersisted issue proposal returned by the analysis provider."""

    line_number: int
    severity: Severity
    category: Category
    rule_id: str
    title: str
    description: str
    column_number: int | None = None
    end_line_number: int | None = None
    end_column_number: int | None = None
    suggestion: str | None = None
    code_snippet: str | None = None
    suggested_fix: str | None = None


@dataclass
class ReviewMetadata:
    """Aggregated counts for one run.

    files_reviewed lists only files whose analysis call succeeded; files that
    failed or were never started because of the run timeout are listed in
    files_failed / files_skipped instead.
    """

    files_reviewed: list[str] = field(default_factory=list)
    files_count: int = 0
    total_issues: int = 0
    new_issues: int = 0
    reappeared_issues: int = 0
    review_duration_ms: int = 0
    model_used: str = ""
    files_failed: list[str] = field(default_factory=list)
    files_skipped: list[str] = field(default_factory=list)
    timed_out: bool = False


@dataclass
class ReviewResult:
    """What orchestrate_review() hands back. It never raises; failures land in ``error``."""

    success: bool
    issues: list[Issue] = field(default_factory=list)
    metadata: ReviewMetadata = field(default_factory=ReviewMetadata)
    error: str | None = None

    def to_dict(self) -> dict:
        result = {
            "success": self.success,
            "issues": [i.to_dict() for i in self.issues],
            "metadata": {
                "filesReviewed": list(self.metadata.files_reviewed),
                "filesCount": self.metadata.files_count,
                "totalIssues": self.metadata.total_issues,
                "newIssues": self.metadata.new_issues,
                "reappearedIssues": self.metadata.reappeared_issues,
                "reviewDurationMs": self.metadata.review_duration_ms,
                "modelUsed": self.metadata.model_used,
                "filesFailed": list(self.metadata.files_failed),
                "filesSkipped": list(self.metadata.files_skipped),
                "timedOut": self.metadata.timed_out,
            },
        }
        if self.error is not None:
            result["error"] = self.error
        return result
