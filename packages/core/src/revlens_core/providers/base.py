"""Base analyzer implementing the Template Method pattern.

All providers share the same analysis algorithm:
    analyze() → _build_user_prompt()
              → _call_api()            ← only this differs per provider
              → _parse()

Subclasses implement three things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response
  - _list_models: return the model ids the endpoint serves

plus, optionally, _translate_error to map SDK exceptions onto the
AnalysisUnavailable / AnalysisRequestFailed split.

There is deliberately no retry loop here: one analyze() call is one request.
The orchestrator owns the retry policy because it knows the run budget.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from revlens_core.errors import AnalysisError, AnalysisMalformed, AnalysisRequestFailed
from revlens_core.models import CandidateIssue
from revlens_store.models import Category, Severity

if TYPE_CHECKING:
    from revlens_core.models import Directive

logger = logging.getLogger(__name__)

_MAX_TOKENS = 4096


def _optional_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


def _optional_text(value) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


class BaseAnalyzer(ABC):
    DEFAULT_MODEL: str = ""
    TEMPERATURE: float = 0.3
    MAX_TOKENS: int = _MAX_TOKENS

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def analyze(
        self,
        file_path: str,
        file_content: str,
        directive: Directive,
        model: str | None = None,
    ) -> list[CandidateIssue]:
        """Analyze one file and return the candidate issues found.

        Raises AnalysisUnavailable, AnalysisRequestFailed or AnalysisMalformed.
        """
        user = self._build_user_prompt(file_path, file_content)
        try:
            raw = self._call_api(model or self.DEFAULT_MODEL, directive.text, user)
        except AnalysisError:
            raise
        except Exception as e:
            raise self._translate_error(e) from e
        return self._parse(raw)

    def check_availability(self) -> bool:
        """True when the provider endpoint answers. Never raises."""
        try:
            self._list_models()
        except Exception as e:
            logger.warning("%s availability check failed: %s", self.__class__.__name__, e)
            return False
        return True

    def check_model_availability(self, model_id: str) -> bool:
        """True when the endpoint serves ``model_id``. Never raises."""
        try:
            return model_id in self._list_models()
        except Exception as e:
            logger.warning("%s model check for %r failed: %s", self.__class__.__name__, model_id, e)
            return False

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, model: str, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response.

        It should raise on failure; analyze() maps the exception through
        _translate_error.
        """

    @abstractmethod
    def _list_models(self) -> list[str]:
        """Return the ids of the models the endpoint serves."""

    def _translate_error(self, exc: Exception) -> AnalysisError:
        return AnalysisRequestFailed(f"{self.__class__.__name__} request failed: {exc}")

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _build_user_prompt(self, file_path: str, file_content: str) -> str:
        return f"""Please review the following code.

File: {file_path}

Code:
```
{file_content}
```

Analyze the code according to the guidelines and dimensions in the system prompt.
Return a JSON object with all identified issues, ordered by severity."""

    def _parse(self, raw: str) -> list[CandidateIssue]:
        """Parse the model's raw text into candidate issues.

        The whole response must be JSON, either ``{"issues": [...]}`` or a
        bare list. Otherwise AnalysisMalformed is raised. Individual items
        that cannot be used are dropped with a warning rather than failing
        the file.
        """
        # Strip only the outer ```json ... ``` fence that some models wrap
        # the response in, NOT backticks inside string values.
        cleaned = re.sub(r"^```(?:json)?\s*", "", (raw or "").strip())
        cleaned = re.sub(r"\s*```$", "", cleaned.strip())
        try:
            payload = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise AnalysisMalformed(f"Response is not valid JSON: {raw[:200]!r}") from e

        if isinstance(payload, dict):
            items = payload.get("issues", [])
        else:
            items = payload
        if not isinstance(items, list):
            raise AnalysisMalformed(f"Expected a list of issues, got {type(items).__name__}.")

        candidates = []
        for item in items:
            candidate = self._to_candidate(item)
            if candidate is None:
                logger.warning("%s: dropping unusable issue entry: %.200r", self.__class__.__name__, item)
                continue
            candidates.append(candidate)
        return candidates

    @staticmethod
    def _to_candidate(item) -> CandidateIssue | None:
        if not isinstance(item, dict):
            return None
        line = _optional_int(item.get("line_number"))
        rule_id = _optional_text(item.get("rule_id"))
        title = _optional_text(item.get("title"))
        if line is None or line < 1 or rule_id is None or title is None:
            return None
        try:
            category = Category(str(item.get("category", "")).lower())
        except ValueError:
            return None
        try:
            severity = Severity(str(item.get("severity", "")).lower())
        except ValueError:
            severity = Severity.INFO

        return CandidateIssue(
            line_number=line,
            severity=severity,
            category=category,
            rule_id=rule_id.strip(),
            title=title.strip(),
            description=_optional_text(item.get("description")) or "",
            column_number=_optional_int(item.get("column_number")),
            end_line_number=_optional_int(item.get("end_line_number")),
            end_column_number=_optional_int(item.get("end_column_number")),
            suggestion=_optional_text(item.get("suggestion")),
            code_snippet=_optional_text(item.get("code_snippet")),
            suggested_fix=_optional_text(item.get("suggested_fix")),
        )
