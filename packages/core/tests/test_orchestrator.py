"""Tests for the review orchestrator: run-level flow, isolation, retries and timeout."""

from time import sleep as real_sleep
from unittest.mock import MagicMock

import pytest

from revlens_core.catalog import GUIDELINES
from revlens_core.errors import (
    AnalysisMalformed,
    AnalysisRequestFailed,
    AnalysisUnavailable,
    FileSourceError,
    PersistenceFailure,
)
from revlens_core.models import CandidateIssue, ModifiedFile
from revlens_core.orchestrator import ReviewOptions, ReviewOrchestrator, default_model, get_analyzer
from revlens_core.providers.base import BaseAnalyzer
from revlens_core.providers.anthropic import AnthropicAnalyzer
from revlens_core.providers.ollama import OllamaAnalyzer
from revlens_core.providers.openai import OpenAIAnalyzer
from revlens_core.sources import FileSource
from revlens_store.memory import MemoryStore
from revlens_store.models import Category, IssueStatus, ReviewConfiguration, ReviewStats, Severity


class StubSource(FileSource):
    def __init__(self, files=(), error=None):
        self.files = [ModifiedFile(path, content) for path, content in files]
        self.error = error

    def list_modified_files(self, project_id):
        if self.error is not None:
            raise self.error
        return list(self.files)


class StubAnalyzer:
    """Returns canned candidates per file path.

    A value in ``results`` may be a list of candidates, an exception (raised
    on every call) or a tuple of exceptions/lists consumed one per call.
    """

    DEFAULT_MODEL = "stub-model"

    def __init__(self, results=None, honor_known_issues=False):
        self.results = results or {}
        self.honor_known_issues = honor_known_issues
        self.calls = []

    def analyze(self, file_path, file_content, directive, model=None):
        self.calls.append({"path": file_path, "content": file_content, "directive": directive, "model": model})
        result = self.results.get(file_path, [])
        if isinstance(result, Exception):
            raise result
        if isinstance(result, tuple):
            step = result[min(self._attempts(file_path) - 1, len(result) - 1)]
            if isinstance(step, Exception):
                raise step
            result = step
        if self.honor_known_issues:
            result = [c for c in result if f"Rule: {c.rule_id} |" not in directive.text]
        return list(result)

    def _attempts(self, file_path):
        return sum(1 for c in self.calls if c["path"] == file_path)

    def calls_for(self, file_path):
        return [c for c in self.calls if c["path"] == file_path]


def _candidate(line=10, rule_id="SQL-INJECTION", category=Category.SECURITY, severity=Severity.ERROR):
    return CandidateIssue(
        line_number=line,
        severity=severity,
        category=category,
        rule_id=rule_id,
        title=f"{rule_id} problem",
        description="Something is wrong here.",
    )


def _config(**kwargs):
    fields = dict(
        project_id="proj",
        user_id="alice",
        enabled_guidelines=["eslint"],
        enabled_dimensions=["security"],
        model_name="stub-model",
    )
    fields.update(kwargs)
    return ReviewConfiguration(**fields)


def _orchestrator(source, analyzer, store=None, **options):
    store = store if store is not None else MemoryStore()
    return ReviewOrchestrator(source, store, store, analyzer, ReviewOptions(**options)), store


@pytest.fixture(autouse=True)
def no_backoff(mocker):
    return mocker.patch("revlens_core.orchestrator.time.sleep")


# ---------------------------------------------------------------------------
# Run-level flow
# ---------------------------------------------------------------------------


class TestEmptyInput:
    def test_no_files_short_circuits(self):
        store = MagicMock()
        analyzer = StubAnalyzer()
        orchestrator = ReviewOrchestrator(StubSource(), store, store, analyzer)

        result = orchestrator.orchestrate_review("proj", "alice", _config())

        assert result.success is True
        assert result.error is None
        assert result.issues == []
        assert result.metadata.files_reviewed == []
        assert result.metadata.files_count == 0
        assert result.metadata.total_issues == 0
        assert analyzer.calls == []
        store.save_config.assert_not_called()
        store.record.assert_not_called()
        store.find_active_issues.assert_not_called()


class TestSecurityScenario:
    """eslint + security on a.ts, with a SQL injection at line 10."""

    def test_first_run_reports_new_issue(self):
        analyzer = StubAnalyzer({"a.ts": [_candidate()]})
        orchestrator, store = _orchestrator(StubSource([("a.ts", "db.query('SELECT ' + id)")]), analyzer)

        result = orchestrator.orchestrate_review("proj", "alice", _config())

        assert result.success is True
        [issue] = result.issues
        assert (issue.file_path, issue.line_number, issue.rule_id) == ("a.ts", 10, "SQL-INJECTION")
        assert issue.category == Category.SECURITY
        assert issue.status == IssueStatus.ACTIVE
        assert issue.was_resolved_before is False
        meta = result.metadata
        assert meta.files_reviewed == ["a.ts"]
        assert meta.files_count == 1
        assert (meta.total_issues, meta.new_issues, meta.reappeared_issues) == (1, 1, 0)
        assert meta.model_used == "stub-model"

        directive = analyzer.calls[0]["directive"]
        assert "## ESLint" in directive.text
        assert "## Security" in directive.text
        assert GUIDELINES["pep8"] not in directive.text

        [entry] = store.list_history("proj")
        assert entry.files_reviewed == ("a.ts",)
        assert (entry.total_issues, entry.new_issues, entry.reappeared_issues) == (1, 1, 0)
        assert entry.user_id == "alice"
        assert store.get_config("proj").enabled_guidelines == ("eslint",)

    def test_resolved_issue_reappears(self):
        analyzer = StubAnalyzer({"a.ts": [_candidate()]})
        orchestrator, store = _orchestrator(StubSource([("a.ts", "code")]), analyzer)
        first = orchestrator.orchestrate_review("proj", "alice", _config()).issues[0]
        store.mark_resolved(first.id, "alice")

        result = orchestrator.orchestrate_review("proj", "alice", _config())

        [issue] = result.issues
        assert issue.id != first.id
        assert issue.was_resolved_before is True
        assert issue.resolution_count == 1
        assert (result.metadata.total_issues, result.metadata.new_issues, result.metadata.reappeared_issues) == (
            1,
            0,
            1,
        )
        assert store.get_issue(first.id).status == IssueStatus.RESOLVED

    def test_active_issue_is_not_reported_twice(self):
        analyzer = StubAnalyzer({"a.ts": [_candidate()]}, honor_known_issues=True)
        orchestrator, store = _orchestrator(StubSource([("a.ts", "code")]), analyzer)
        orchestrator.orchestrate_review("proj", "alice", _config())

        second = orchestrator.orchestrate_review("proj", "alice", _config())

        assert second.success is True
        assert second.metadata.total_issues == 0
        assert second.metadata.files_reviewed == ["a.ts"]
        assert "Rule: SQL-INJECTION |" in analyzer.calls[1]["directive"].text
        assert len(store.find_active_issues("proj")) == 1


class TestDirectiveInputs:
    def test_known_issues_are_scoped_to_the_file(self):
        analyzer = StubAnalyzer({"a.ts": [_candidate(rule_id="A-RULE")], "b.ts": [_candidate(rule_id="B-RULE")]})
        orchestrator, _ = _orchestrator(StubSource([("a.ts", "a"), ("b.ts", "b")]), analyzer)
        orchestrator.orchestrate_review("proj", "alice", _config())
        analyzer.calls.clear()

        orchestrator.orchestrate_review("proj", "alice", _config())

        a_text = analyzer.calls_for("a.ts")[0]["directive"].text
        b_text = analyzer.calls_for("b.ts")[0]["directive"].text
        assert "A-RULE" in a_text and "B-RULE" not in a_text
        assert "B-RULE" in b_text and "A-RULE" not in b_text

    def test_config_model_is_requested(self):
        analyzer = StubAnalyzer()
        orchestrator, _ = _orchestrator(StubSource([("a.ts", "code")]), analyzer)
        result = orchestrator.orchestrate_review("proj", "alice", _config(model_name="llama3"))
        assert analyzer.calls[0]["model"] == "llama3"
        assert result.metadata.model_used == "llama3"

    def test_long_files_are_truncated(self):
        analyzer = StubAnalyzer()
        orchestrator, _ = _orchestrator(StubSource([("a.ts", "x" * 50)]), analyzer, max_chars_per_file=10)
        orchestrator.orchestrate_review("proj", "alice", _config())
        assert analyzer.calls[0]["content"] == "x" * 10 + "\n... [file truncated]"

    def test_files_processed_in_path_order(self):
        analyzer = StubAnalyzer()
        orchestrator, _ = _orchestrator(StubSource([("c.ts", "c"), ("a.ts", "a"), ("b.ts", "b")]), analyzer)
        result = orchestrator.orchestrate_review("proj", "alice", _config())
        assert [c["path"] for c in analyzer.calls] == ["a.ts", "b.ts", "c.ts"]
        assert result.metadata.files_reviewed == ["a.ts", "b.ts", "c.ts"]

    def test_parallel_run_reduces_in_path_order(self):
        results = {f"f{i}.ts": [_candidate(line=i + 1)] for i in range(8)}
        source = StubSource([(p, p) for p in reversed(results)])
        orchestrator, _ = _orchestrator(source, StubAnalyzer(results), max_workers=4)
        result = orchestrator.orchestrate_review("proj", "alice", _config())
        assert result.metadata.files_reviewed == sorted(results)
        assert [i.file_path for i in result.issues] == sorted(results)


# ---------------------------------------------------------------------------
# Failure isolation
# ---------------------------------------------------------------------------


class TestPartialFailure:
    def test_failed_file_is_skipped_and_others_continue(self):
        analyzer = StubAnalyzer(
            {"a.ts": [_candidate()], "b.ts": AnalysisMalformed("not json"), "c.ts": [_candidate(line=3)]}
        )
        orchestrator, store = _orchestrator(StubSource([("a.ts", "a"), ("b.ts", "b"), ("c.ts", "c")]), analyzer)

        result = orchestrator.orchestrate_review("proj", "alice", _config())

        assert result.success is True
        assert result.metadata.files_reviewed == ["a.ts", "c.ts"]
        assert result.metadata.files_failed == ["b.ts"]
        assert result.metadata.files_count == 2
        assert result.metadata.total_issues == 2
        assert store.list_history("proj")[0].files_reviewed == ("a.ts", "c.ts")

    def test_all_files_failing_still_succeeds(self):
        analyzer = StubAnalyzer({"a.ts": AnalysisMalformed("not json")})
        orchestrator, store = _orchestrator(StubSource([("a.ts", "a")]), analyzer)
        result = orchestrator.orchestrate_review("proj", "alice", _config())
        assert result.success is True
        assert result.metadata.files_reviewed == []
        assert result.metadata.files_failed == ["a.ts"]
        assert len(store.list_history("proj")) == 1

    def test_file_with_no_issues_counts_as_reviewed(self):
        orchestrator, _ = _orchestrator(StubSource([("a.ts", "a")]), StubAnalyzer({"a.ts": []}))
        result = orchestrator.orchestrate_review("proj", "alice", _config())
        assert result.metadata.files_reviewed == ["a.ts"]
        assert result.metadata.total_issues == 0

    def test_failing_candidate_does_not_drop_siblings(self):
        store = MemoryStore()
        real_insert = store.insert_issue

        def flaky_insert(issue):
            if issue.rule_id == "BROKEN":
                raise PersistenceFailure("constraint violated")
            return real_insert(issue)

        store.insert_issue = flaky_insert
        analyzer = StubAnalyzer(
            {"a.ts": [_candidate(line=1, rule_id="FIRST"), _candidate(line=2, rule_id="BROKEN"), _candidate(line=3)]}
        )
        orchestrator, _ = _orchestrator(StubSource([("a.ts", "a")]), analyzer, store=store)

        result = orchestrator.orchestrate_review("proj", "alice", _config())

        assert result.success is True
        assert [i.rule_id for i in result.issues] == ["FIRST", "SQL-INJECTION"]
        assert result.metadata.files_reviewed == ["a.ts"]
        assert result.metadata.total_issues == 2


class TestRunLevelFailure:
    def _assert_failed(self, result):
        assert result.success is False
        assert result.error
        assert result.issues == []
        assert result.metadata.files_count == 0
        assert result.metadata.total_issues == 0
        assert result.metadata.new_issues == 0
        assert result.metadata.reappeared_issues == 0

    def test_file_source_failure(self):
        orchestrator, store = _orchestrator(StubSource(error=FileSourceError("not a git repository")), StubAnalyzer())
        result = orchestrator.orchestrate_review("proj", "alice", _config())
        self._assert_failed(result)
        assert "not a git repository" in result.error
        assert store.list_history("proj") == []

    def test_loading_active_issues_fails(self):
        store = MagicMock()
        store.find_active_issues.side_effect = PersistenceFailure("db locked")
        analyzer = StubAnalyzer()
        orchestrator = ReviewOrchestrator(StubSource([("a.ts", "a")]), store, store, analyzer)
        self._assert_failed(orchestrator.orchestrate_review("proj", "alice", _config()))
        assert analyzer.calls == []

    def test_saving_config_fails(self):
        store = MemoryStore()
        store.save_config = MagicMock(side_effect=PersistenceFailure("read-only"))
        analyzer = StubAnalyzer()
        orchestrator, _ = _orchestrator(StubSource([("a.ts", "a")]), analyzer, store=store)
        self._assert_failed(orchestrator.orchestrate_review("proj", "alice", _config()))
        assert analyzer.calls == []

    def test_recording_history_fails(self):
        store = MemoryStore()
        store.record = MagicMock(side_effect=PersistenceFailure("disk full"))
        analyzer = StubAnalyzer({"a.ts": [_candidate()]})
        orchestrator, _ = _orchestrator(StubSource([("a.ts", "a")]), analyzer, store=store)
        result = orchestrator.orchestrate_review("proj", "alice", _config())
        self._assert_failed(result)
        assert "disk full" in result.error

    def test_unexpected_errors_do_not_escape(self):
        orchestrator, _ = _orchestrator(StubSource(error=RuntimeError("boom")), StubAnalyzer())
        self._assert_failed(orchestrator.orchestrate_review("proj", "alice", _config()))


# ---------------------------------------------------------------------------
# Retry policy and timeout
# ---------------------------------------------------------------------------


class TestRetry:
    def test_transient_failure_is_retried(self, no_backoff):
        analyzer = StubAnalyzer({"a.ts": (AnalysisUnavailable("down"), AnalysisRequestFailed("502"), [_candidate()])})
        orchestrator, _ = _orchestrator(StubSource([("a.ts", "a")]), analyzer, max_retries=3)

        result = orchestrator.orchestrate_review("proj", "alice", _config())

        assert result.metadata.files_reviewed == ["a.ts"]
        assert result.metadata.total_issues == 1
        assert len(analyzer.calls) == 3
        assert [c.args[0] for c in no_backoff.call_args_list] == [1, 2]

    def test_gives_up_after_max_retries(self, no_backoff):
        analyzer = StubAnalyzer({"a.ts": AnalysisUnavailable("down")})
        orchestrator, _ = _orchestrator(StubSource([("a.ts", "a")]), analyzer, max_retries=3)

        result = orchestrator.orchestrate_review("proj", "alice", _config())

        assert result.success is True
        assert result.metadata.files_failed == ["a.ts"]
        assert len(analyzer.calls) == 3
        assert no_backoff.call_count == 2

    def test_malformed_response_is_not_retried(self, no_backoff):
        analyzer = StubAnalyzer({"a.ts": AnalysisMalformed("prose")})
        orchestrator, _ = _orchestrator(StubSource([("a.ts", "a")]), analyzer, max_retries=3)
        orchestrator.orchestrate_review("proj", "alice", _config())
        assert len(analyzer.calls) == 1
        no_backoff.assert_not_called()


class TestTimeout:
    def test_files_not_started_before_deadline_are_skipped(self):
        class SlowAnalyzer(StubAnalyzer):
            def analyze(self, file_path, file_content, directive, model=None):
                real_sleep(0.3)
                return super().analyze(file_path, file_content, directive, model)

        analyzer = SlowAnalyzer({"a.ts": [_candidate()], "b.ts": [_candidate()]})
        orchestrator, store = _orchestrator(StubSource([("a.ts", "a"), ("b.ts", "b")]), analyzer, timeout_seconds=0.1)

        result = orchestrator.orchestrate_review("proj", "alice", _config())

        assert result.success is True
        assert result.metadata.timed_out is True
        assert result.metadata.files_reviewed == ["a.ts"]
        assert result.metadata.files_skipped == ["b.ts"]
        assert result.metadata.total_issues == 1
        assert store.list_history("proj")[0].files_reviewed == ("a.ts",)

    def test_retry_that_would_overrun_deadline_is_abandoned(self, no_backoff):
        analyzer = StubAnalyzer({"a.ts": AnalysisUnavailable("down")})
        orchestrator, _ = _orchestrator(StubSource([("a.ts", "a")]), analyzer, max_retries=3, timeout_seconds=0.5)

        result = orchestrator.orchestrate_review("proj", "alice", _config())

        assert result.success is True
        assert result.metadata.files_failed == ["a.ts"]
        assert result.metadata.files_skipped == []
        assert result.metadata.timed_out is True
        assert len(analyzer.calls) == 1
        no_backoff.assert_not_called()

    def test_plain_failure_is_not_a_timeout(self, no_backoff):
        analyzer = StubAnalyzer({"a.ts": AnalysisMalformed("prose")})
        orchestrator, _ = _orchestrator(StubSource([("a.ts", "a")]), analyzer, timeout_seconds=60)

        result = orchestrator.orchestrate_review("proj", "alice", _config())

        assert result.metadata.files_failed == ["a.ts"]
        assert result.metadata.timed_out is False


class TestUntrustedText:
    class ChattyAnalyzer(BaseAnalyzer):
        DEFAULT_MODEL = "chatty"

        def _call_api(self, model, system_prompt, user_prompt):
            return "Sure! Here is the review [/INST]"

        def _list_models(self):
            return ["chatty"]

    def test_bracketed_model_reply_does_not_escape_the_run(self):
        source = StubSource([("a.ts", "a"), ("b.ts", "b")])
        orchestrator, _ = _orchestrator(source, self.ChattyAnalyzer())

        result = orchestrator.orchestrate_review("proj", "alice", _config())

        assert result.success is True
        assert result.metadata.files_failed == ["a.ts", "b.ts"]

    def test_bracketed_paths_and_titles_are_printed_verbatim(self, capsys):
        candidate = CandidateIssue(
            line_number=3,
            severity=Severity.INFO,
            category=Category.LINTING,
            rule_id="[/x]",
            title="Use [/b] carefully",
            description="[red]",
        )
        analyzer = StubAnalyzer({"[/weird].ts": [candidate]})
        orchestrator, _ = _orchestrator(StubSource([("[/weird].ts", "a")]), analyzer)

        result = orchestrator.orchestrate_review("[/proj]", "alice", _config(project_id="[/proj]"))

        assert result.success is True
        assert result.metadata.files_reviewed == ["[/weird].ts"]
        assert "[/weird].ts: 1 issue(s)" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# Health, statistics and provider selection
# ---------------------------------------------------------------------------


class TestHealthAndStats:
    def test_health_when_reachable(self):
        analyzer = MagicMock(DEFAULT_MODEL="gpt-oss:120b-cloud")
        analyzer.check_availability.return_value = True
        analyzer.check_model_availability.return_value = True
        orchestrator, _ = _orchestrator(StubSource(), analyzer)
        assert orchestrator.check_health() == {"analysis_available": True, "model_available": True}
        analyzer.check_model_availability.assert_called_once_with("gpt-oss:120b-cloud")

    def test_model_not_checked_when_unreachable(self):
        analyzer = MagicMock(DEFAULT_MODEL="m")
        analyzer.check_availability.return_value = False
        orchestrator, _ = _orchestrator(StubSource(), analyzer)
        assert orchestrator.check_health() == {"analysis_available": False, "model_available": False}
        analyzer.check_model_availability.assert_not_called()

    def test_review_statistics(self):
        orchestrator, _ = _orchestrator(StubSource([("a.ts", "a")]), StubAnalyzer({"a.ts": [_candidate()]}))
        orchestrator.orchestrate_review("proj", "alice", _config())
        orchestrator.orchestrate_review("proj", "alice", _config())
        stats = orchestrator.get_review_statistics("proj")
        assert isinstance(stats, ReviewStats)
        assert stats.total_reviews == 2
        assert stats.total_issues_found == 2


class TestGetAnalyzer:
    def test_ollama_is_default(self, mocker):
        mocker.patch("revlens_core.providers.openai.OpenAI")
        assert isinstance(get_analyzer({"ollama_url": None}), OllamaAnalyzer)

    def test_openai(self, mocker):
        mocker.patch("revlens_core.providers.openai.OpenAI")
        analyzer = get_analyzer({"provider": "openai", "openai_api_key": "sk"})
        assert type(analyzer) is OpenAIAnalyzer

    def test_anthropic(self, mocker):
        mocker.patch("anthropic.Anthropic")
        assert isinstance(get_analyzer({"provider": "anthropic", "anthropic_api_key": "k"}), AnthropicAnalyzer)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown analysis provider"):
            get_analyzer({"provider": "gemini"})

    @pytest.mark.parametrize(
        "provider, expected",
        [
            ("ollama", OllamaAnalyzer.DEFAULT_MODEL),
            ("openai", "gpt-4o"),
            ("anthropic", AnthropicAnalyzer.DEFAULT_MODEL),
        ],
    )
    def test_default_model_follows_provider(self, provider, expected):
        assert default_model({"provider": provider}) == expected

    def test_default_model_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown analysis provider"):
            default_model({"provider": "gemini"})


class TestReviewOptions:
    def test_from_config(self):
        options = ReviewOptions.from_config(
            {"max_chars_per_file": 500, "max_workers": 4, "max_retries": 2, "timeout_seconds": 30}
        )
        assert options == ReviewOptions(max_chars_per_file=500, max_workers=4, max_retries=2, timeout_seconds=30)

    def test_from_config_defaults(self):
        assert ReviewOptions.from_config({}) == ReviewOptions()


def test_result_to_dict_uses_wire_keys():
    orchestrator, _ = _orchestrator(StubSource([("a.ts", "a")]), StubAnalyzer({"a.ts": [_candidate()]}))
    payload = orchestrator.orchestrate_review("proj", "alice", _config()).to_dict()
    assert payload["success"] is True
    assert "error" not in payload
    assert payload["metadata"]["filesReviewed"] == ["a.ts"]
    assert payload["metadata"]["newIssues"] == 1
    assert payload["issues"][0]["ruleId"] == "SQL-INJECTION"
    assert payload["issues"][0]["wasResolvedBefore"] is False
