"""Review orchestration: one run over a project's changed files."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape

from revlens_core.directive import compose
from revlens_core.errors import AnalysisRequestFailed, AnalysisUnavailable
from revlens_core.models import ModifiedFile, ReviewMetadata, ReviewResult
from revlens_core.providers.anthropic import AnthropicAnalyzer
from revlens_core.providers.ollama import OllamaAnalyzer
from revlens_core.providers.openai import OpenAIAnalyzer
from revlens_core.reconciler import IssueReconciler
from revlens_store.models import Issue, ReviewHistoryEntry, ReviewStats

if TYPE_CHECKING:
    from revlens_core.providers.base import BaseAnalyzer
    from revlens_core.sources import FileSource
    from revlens_store.base import HistoryRecorder, IssueLedger
    from revlens_store.models import ReviewConfiguration

console = Console(stderr=True)
logger = logging.getLogger(__name__)

_RETRYABLE = (AnalysisUnavailable, AnalysisRequestFailed)

_REVIEWED = "reviewed"
_FAILED = "failed"
_SKIPPED = "skipped"


class _RetryCutShort(Exception):
    """A retryable analysis failure whose retry would overrun the run deadline."""

    def __init__(self, cause: Exception):
        super().__init__(str(cause))
        self.cause = cause


_PROVIDERS = {"ollama": OllamaAnalyzer, "openai": OpenAIAnalyzer, "anthropic": AnthropicAnalyzer}


def get_analyzer(config: dict) -> BaseAnalyzer:
    provider = config.get("provider", "ollama")
    if provider == "ollama":
        return OllamaAnalyzer(base_url=config.get("ollama_url"))
    if provider == "openai":
        return OpenAIAnalyzer(api_key=config.get("openai_api_key"))
    if provider == "anthropic":
        return AnthropicAnalyzer(api_key=config.get("anthropic_api_key"))
    raise ValueError(f"Unknown analysis provider: {provider!r}. Choose 'ollama', 'openai' or 'anthropic'.")


def default_model(config: dict) -> str:
    """The model the configured provider uses when none is named, without building a client."""
    provider = config.get("provider", "ollama")
    if provider not in _PROVIDERS:
        raise ValueError(f"Unknown analysis provider: {provider!r}. Choose 'ollama', 'openai' or 'anthropic'.")
    return _PROVIDERS[provider].DEFAULT_MODEL


@dataclass
class ReviewOptions:
    """Run-level knobs that are not part of the per-project configuration."""

    max_chars_per_file: int = 20000
    max_workers: int = 1
    max_retries: int = 3
    timeout_seconds: float | None = None

    @classmethod
    def from_config(cls, config: dict) -> ReviewOptions:
        defaults = cls()
        return cls(
            max_chars_per_file=config.get("max_chars_per_file") or defaults.max_chars_per_file,
            max_workers=max(1, int(config.get("max_workers") or defaults.max_workers)),
            max_retries=max(1, int(config.get("max_retries") or defaults.max_retries)),
            timeout_seconds=config.get("timeout_seconds"),
        )


@dataclass
class _FileOutcome:
    file_path: str
    status: str
    issues: list[Issue] = field(default_factory=list)
    timed_out: bool = False


class ReviewOrchestrator:
    def __init__(
        self,
        file_source: FileSource,
        ledger: IssueLedger,
        history: HistoryRecorder,
        analyzer: BaseAnalyzer,
        options: ReviewOptions | None = None,
    ):
        self.file_source = file_source
        self.ledger = ledger
        self.history = history
        self.analyzer = analyzer
        self.options = options or ReviewOptions()
        self.reconciler = IssueReconciler(ledger)

    def orchestrate_review(self, project_id: str, user_id: str, config: ReviewConfiguration) -> ReviewResult:
        """Review every modified file of ``project_id`` and persist what is found.

        Files are analyzed independently: one file failing (or one candidate
        failing to persist) never aborts the run. Only failures to load the
        inputs, save the configuration or record history make the run fail,
        and then the result carries ``success=False`` with zero counts.

        Never raises.
        """
        start = time.monotonic()
        model = config.model_name or self.analyzer.DEFAULT_MODEL

        try:
            files = sorted(self.file_source.list_modified_files(project_id), key=lambda f: f.file_path)
        except Exception as e:
            return self._failure("Failed to load modified files", e, model)

        if not files:
            console.print("[yellow]No modified files to review.[/yellow]")
            return ReviewResult(success=True, metadata=ReviewMetadata(model_used=model))

        try:
            active_issues = self.ledger.find_active_issues(project_id)
            self.ledger.save_config(config)
        except Exception as e:
            return self._failure("Failed to prepare review", e, model)

        console.print(
            f"Reviewing {len(files)} file(s) for [bold]{escape(project_id)}[/bold] with [cyan]{escape(model)}[/cyan]"
        )

        deadline = start + self.options.timeout_seconds if self.options.timeout_seconds else None
        known_by_file: dict[str, list[Issue]] = {}
        for issue in active_issues:
            known_by_file.setdefault(issue.file_path, []).append(issue)

        def task(file: ModifiedFile) -> _FileOutcome:
            return self._review_file(
                file, project_id, user_id, config, model, known_by_file.get(file.file_path, []), deadline
            )

        with ThreadPoolExecutor(max_workers=self.options.max_workers) as executor:
            outcomes = list(executor.map(task, files))

        issues: list[Issue] = []
        metadata = ReviewMetadata(model_used=model)
        for outcome in outcomes:
            if outcome.status == _REVIEWED:
                metadata.files_reviewed.append(outcome.file_path)
                issues.extend(outcome.issues)
            elif outcome.status == _FAILED:
                metadata.files_failed.append(outcome.file_path)
            else:
                metadata.files_skipped.append(outcome.file_path)

        metadata.files_count = len(metadata.files_reviewed)
        metadata.total_issues = len(issues)
        metadata.reappeared_issues = sum(1 for i in issues if i.was_resolved_before)
        metadata.new_issues = metadata.total_issues - metadata.reappeared_issues
        metadata.timed_out = bool(metadata.files_skipped) or any(o.timed_out for o in outcomes)
        metadata.review_duration_ms = int((time.monotonic() - start) * 1000)

        if metadata.timed_out:
            logger.warning(
                "Review of %s ran out of time after %ss; %d file(s) not started",
                project_id,
                self.options.timeout_seconds,
                len(metadata.files_skipped),
            )

        try:
            self.history.record(
                ReviewHistoryEntry(
                    project_id=project_id,
                    user_id=user_id,
                    files_reviewed=tuple(metadata.files_reviewed),
                    files_count=metadata.files_count,
                    total_issues=metadata.total_issues,
                    new_issues=metadata.new_issues,
                    reappeared_issues=metadata.reappeared_issues,
                    review_duration_ms=metadata.review_duration_ms,
                    model_used=model,
                )
            )
        except Exception as e:
            return self._failure("Failed to record review history", e, model)

        return ReviewResult(success=True, issues=issues, metadata=metadata)

    def check_health(self, model: str | None = None) -> dict[str, bool]:
        model = model or self.analyzer.DEFAULT_MODEL
        available = self.analyzer.check_availability()
        model_available = self.analyzer.check_model_availability(model) if available else False
        return {"analysis_available": available, "model_available": model_available}

    def get_review_statistics(self, project_id: str) -> ReviewStats:
        return self.history.get_review_stats(project_id)

    # ------------------------------------------------------------------ #

    def _review_file(
        self,
        file: ModifiedFile,
        project_id: str,
        user_id: str,
        config: ReviewConfiguration,
        model: str,
        known_issues: list[Issue],
        deadline: float | None,
    ) -> _FileOutcome:
        path = file.file_path
        if deadline is not None and time.monotonic() >= deadline:
            console.print(f"  [yellow]Skipping (timeout): {escape(path)}[/yellow]")
            return _FileOutcome(path, _SKIPPED)

        content = file.current_content
        max_chars = self.options.max_chars_per_file
        if len(content) > max_chars:
            content = content[:max_chars] + "\n... [file truncated]"

        try:
            directive = compose(path, config, known_issues)
            candidates = self._analyze_with_retry(path, content, directive, model, deadline)
        except _RetryCutShort as e:
            logger.error("Analysis of %s failed and the run deadline leaves no time to retry: %s", path, e.cause)
            console.print(f"  [red]Failed (timeout): {escape(path)}: {escape(str(e.cause))}[/red]")
            return _FileOutcome(path, _FAILED, timed_out=True)
        except Exception as e:
            logger.error("Analysis of %s failed: %s", path, e)
            console.print(f"  [red]Failed: {escape(path)}: {escape(str(e))}[/red]")
            return _FileOutcome(path, _FAILED)

        issues = []
        for candidate in candidates:
            try:
                issues.append(self.reconciler.reconcile(candidate, project_id, path, user_id))
            except Exception as e:
                logger.error("Could not record %s at %s:%d: %s", candidate.rule_id, path, candidate.line_number, e)
        console.print(f"  {escape(path)}: {len(issues)} issue(s)")
        return _FileOutcome(path, _REVIEWED, issues)

    def _analyze_with_retry(self, path, content, directive, model, deadline):
        attempts = max(1, self.options.max_retries)
        for attempt in range(attempts):
            try:
                return self.analyzer.analyze(path, content, directive, model=model)
            except _RETRYABLE as e:
                wait = 2**attempt
                if attempt == attempts - 1:
                    raise
                if deadline is not None and time.monotonic() + wait >= deadline:
                    raise _RetryCutShort(e) from e
                logger.warning(
                    "Analysis of %s failed (attempt %d/%d), retrying in %ds: %s", path, attempt + 1, attempts, wait, e
                )
                time.sleep(wait)

    @staticmethod
    def _failure(message: str, exc: Exception, model: str) -> ReviewResult:
        logger.error("%s: %s", message, exc)
        return ReviewResult(success=False, metadata=ReviewMetadata(model_used=model), error=f"{message}: {exc}")
