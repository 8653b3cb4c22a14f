"""Issue reconciliation: turns one candidate into one persisted issue.

The reconciler's only matching job is reappearance detection against
*resolved* issues. Suppressing duplicates of still-active issues happens
upstream, by listing them in the directive. That suppression is advisory
because the analysis provider is probabilistic, while the reappearance check
here is exact and authoritative.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from revlens_store.models import Issue, IssueStatus

if TYPE_CHECKING:
    from revlens_core.models import CandidateIssue
    from revlens_store.base import IssueLedger

logger = logging.getLogger(__name__)


class IssueReconciler:
    def __init__(self, ledger: IssueLedger):
        self._ledger = ledger

    def reconcile(self, candidate: CandidateIssue, project_id: str, file_path: str, user_id: str = "") -> Issue:
        """Persist ``candidate`` as a new active issue and return it.

        If a resolved issue with the same (project, file, line, rule) exists,
        the new row is marked ``was_resolved_before`` and its
        ``resolution_count`` continues from the previous one. The resolved
        row itself is left untouched.

        Never drops the candidate silently: ledger errors propagate as
        PersistenceFailure.
        """
        previous = self._ledger.find_resolved_issue(project_id, file_path, candidate.line_number, candidate.rule_id)

        issue = Issue(
            project_id=project_id,
            user_id=user_id,
            file_path=file_path,
            line_number=candidate.line_number,
            column_number=candidate.column_number,
            end_line_number=candidate.end_line_number,
            end_column_number=candidate.end_column_number,
            severity=candidate.severity,
            category=candidate.category,
            rule_id=candidate.rule_id,
            title=candidate.title,
            description=candidate.description,
            suggestion=candidate.suggestion,
            code_snippet=candidate.code_snippet,
            suggested_fix=candidate.suggested_fix,
            status=IssueStatus.ACTIVE,
            is_manual=False,
            was_resolved_before=previous is not None,
            resolution_count=previous.resolution_count + 1 if previous is not None else 0,
        )

        if previous is not None:
            logger.info(
                "Reappeared: %s at %s:%d (previously resolved %d time(s))",
                candidate.rule_id,
                file_path,
                candidate.line_number,
                issue.resolution_count,
            )
        return self._ledger.insert_issue(issue)
