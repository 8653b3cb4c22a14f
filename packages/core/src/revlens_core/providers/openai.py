from __future__ import annotations

import openai
from openai import OpenAI

from revlens_core.errors import AnalysisError, AnalysisRequestFailed, AnalysisUnavailable
from revlens_core.providers.base import BaseAnalyzer


class OpenAIAnalyzer(BaseAnalyzer):
    DEFAULT_MODEL = "gpt-4o"
    # temperature=0.2 for OpenAI leans toward deterministic, structured
    # JSON output from GPT-4o.
    TEMPERATURE = 0.2

    def __init__(self, api_key: str | None, base_url: str | None = None, timeout: float = 120.0):
        # max_retries=0: the SDK retries by default, but retry policy belongs
        # to the orchestrator.
        self.client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    def _call_api(self, model: str, system_prompt: str, user_prompt: str) -> str:
        response = self.client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""

    def _list_models(self) -> list[str]:
        return [m.id for m in self.client.models.list()]

    def _translate_error(self, exc: Exception) -> AnalysisError:
        name = self.__class__.__name__
        # APITimeoutError is a subclass of APIConnectionError.
        if isinstance(exc, openai.APIConnectionError):
            return AnalysisUnavailable(f"{name} endpoint unreachable: {exc}")
        if isinstance(exc, openai.APIStatusError):
            return AnalysisRequestFailed(f"{name} API error {exc.status_code}: {exc}", status_code=exc.status_code)
        return super()._translate_error(exc)
