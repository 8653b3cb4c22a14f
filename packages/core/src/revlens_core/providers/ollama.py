"""Ollama provider: the default analysis backend.

Talks to Ollama's OpenAI-compatible endpoint (``/v1``) through the openai
SDK, so request handling and error mapping are inherited from
OpenAIAnalyzer. Older configurations point OLLAMA_API_URL at the native
``/api/chat`` route; those URLs are rewritten to the compatible base.
"""

from __future__ import annotations

from revlens_core.providers.openai import OpenAIAnalyzer

DEFAULT_OLLAMA_URL = "http://localhost:11434/v1"

# Ollama ignores the key, but the SDK refuses to build a client without one.
_PLACEHOLDER_KEY = "ollama"


def normalize_base_url(url: str | None) -> str:
    if not url:
        return DEFAULT_OLLAMA_URL
    url = url.rstrip("/")
    for native_suffix in ("/api/chat", "/api/generate", "/api/tags", "/api"):
        if url.endswith(native_suffix):
            return url[: -len(native_suffix)] + "/v1"
    if not url.endswith("/v1"):
        url += "/v1"
    return url


class OllamaAnalyzer(OpenAIAnalyzer):
    DEFAULT_MODEL = "gpt-oss:120b-cloud"
    # Slightly higher than OpenAI's 0.2; open-weight models produce stiff,
    # repetitive descriptions at very low temperatures.
    TEMPERATURE = 0.3

    def __init__(self, base_url: str | None = None, timeout: float = 300.0):
        self.base_url = normalize_base_url(base_url)
        super().__init__(api_key=_PLACEHOLDER_KEY, base_url=self.base_url, timeout=timeout)
