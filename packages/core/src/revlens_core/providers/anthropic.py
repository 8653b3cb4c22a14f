from __future__ import annotations

from revlens_core.errors import AnalysisError, AnalysisRequestFailed, AnalysisUnavailable
from revlens_core.providers.base import BaseAnalyzer


class AnthropicAnalyzer(BaseAnalyzer):
    DEFAULT_MODEL = "claude-sonnet-4-20250514"
    TEMPERATURE = 0.3

    def __init__(self, api_key: str | None, timeout: float = 120.0):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'revlens[anthropic]'"
            )
        self.client = Anthropic(api_key=api_key, timeout=timeout, max_retries=0)

    def _call_api(self, model: str, system_prompt: str, user_prompt: str) -> str:
        # Optional dependency; __init__ has already checked it imports.
        from anthropic.types import TextBlock

        response = self.client.messages.create(
            model=model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()

    def _list_models(self) -> list[str]:
        return [m.id for m in self.client.models.list()]

    def _translate_error(self, exc: Exception) -> AnalysisError:
        import anthropic

        name = self.__class__.__name__
        if isinstance(exc, anthropic.APIConnectionError):
            return AnalysisUnavailable(f"{name} endpoint unreachable: {exc}")
        if isinstance(exc, anthropic.APIStatusError):
            return AnalysisRequestFailed(f"{name} API error {exc.status_code}: {exc}", status_code=exc.status_code)
        return super()._translate_error(exc)
