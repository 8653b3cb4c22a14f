"""Directive composition: turns a project's review configuration into the
instruction text sent to the analysis provider for one file.

compose() is a pure function of its inputs. Section order is fixed:

    base instructions → language context → guideline blocks → dimension
    blocks → custom project rules → known active issues → output format

Guideline and dimension blocks are emitted in catalog order, not in the order
the configuration lists them, and unknown ids are skipped without error,
so the same inputs always produce byte-identical text.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from revlens_core.catalog import DIMENSION_IDS, DIMENSIONS, GUIDELINE_IDS, GUIDELINES, language_for
from revlens_core.models import Directive

if TYPE_CHECKING:
    from revlens_store.models import Issue, ReviewConfiguration

BASE_INSTRUCTIONS = """You are an expert code reviewer with deep knowledge of software engineering best practices,
security vulnerabilities and clean code principles.

Your task is to review one file and report the issues you find across the dimensions enabled below.

## Responsibilities:
1. Check the code against the enabled coding guidelines.
2. Identify security vulnerabilities.
3. Detect architectural problems and code smells.
4. Flag performance issues.
5. Point out missing or weak tests and error handling.

## Approach:
- Be specific: point to exact lines.
- Be actionable: say how to fix each issue.
- Be practical: report issues that matter, not pedantic nitpicks.
- Prioritise: security first, then architecture, then style.

## Issue write-up:
- description: what the problem is, why it matters (risk, impact) and any relevant context,
  in 4-6 sentences.
- suggestion: how to fix it and why the fix works, in 3-5 sentences.
- Cite the relevant standard (OWASP, PEP 8, Google Style Guide, MDN) where it helps.
"""

OUTPUT_FORMAT = """
## Output Format:
Respond with **only** a JSON object of this exact shape:

{
  "issues": [
    {
      "line_number": 42,
      "column_number": 10,
      "end_line_number": 45,
      "end_column_number": 20,
      "severity": "error",
      "category": "security",
      "rule_id": "SQL-INJECTION",
      "title": "SQL injection vulnerability",
      "description": "User input is concatenated into a SQL query ...",
      "suggestion": "Use parameterized queries ...",
      "code_snippet": "query = 'SELECT * FROM users WHERE id = ' + user_id",
      "suggested_fix": "cursor.execute('SELECT * FROM users WHERE id = ?', (user_id,))"
    }
  ]
}

Severity levels:
- error: security vulnerabilities, bugs that will cause failures
- warning: code smells, performance and maintainability problems
- info: style violations, minor improvements, documentation gaps

Categories: security, architecture, linting, testing, performance, documentation.

rule_id must be a stable UPPER-KEBAB-CASE identifier for the kind of problem
(the same problem always gets the same rule_id).

If there are no issues, return: {"issues": []}
Do not return any text outside the JSON object.
"""


def _selected(catalog_ids: tuple[str, ...], enabled) -> list[str]:
    wanted = set(enabled or ())
    return [block_id for block_id in catalog_ids if block_id in wanted]


def render_known_issues(issues: list[Issue]) -> str:
    """Render the issues already tracked for a file, with a do-not-repeat instruction."""
    entries = "\n".join(
        f"{idx}. **{issue.title}** (Line {issue.line_number})\n"
        f"   - Rule: {issue.rule_id} | Severity: {issue.severity.value}\n"
        f"   - Description: {issue.description}"
        for idx, issue in enumerate(issues, 1)
    )
    return (
        f"\n\n## Currently Tracked Issues ({len(issues)} total)\n\n"
        "**DO NOT report these issues again in your output.**\n\n"
        f"{entries}\n\n"
        "Report ONLY new issues that are not in the list above.\n"
    )


def compose(file_path: str, config: ReviewConfiguration, known_active_issues: list[Issue]) -> Directive:
    """Build the analysis directive for one file."""
    language = language_for(file_path)
    parts = [BASE_INSTRUCTIONS]
    parts.append(f"\n\n## Language Context:\nYou are reviewing {language} code from file: {file_path}\n")

    guidelines = _selected(GUIDELINE_IDS, config.enabled_guidelines)
    if guidelines:
        parts.append("\n## Coding Guidelines to Check:\n")
        parts.extend(GUIDELINES[g] for g in guidelines)

    dimensions = _selected(DIMENSION_IDS, config.enabled_dimensions)
    if dimensions:
        parts.append("\n## Analysis Dimensions:\n")
        parts.extend(DIMENSIONS[d] for d in dimensions)

    if config.custom_instructions:
        parts.append(f"\n\n## Custom Project Rules:\n{config.custom_instructions}\n")

    if known_active_issues:
        parts.append(render_known_issues(known_active_issues))

    parts.append(OUTPUT_FORMAT)
    return Directive(file_path=file_path, language=language, text="".join(parts))
