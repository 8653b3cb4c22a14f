import os
from pathlib import Path
from typing import Optional

import yaml

from revlens_store.models import DEFAULT_DIMENSIONS, DEFAULT_GUIDELINES, DEFAULT_MODEL, ReviewConfiguration

DEFAULT_CONFIG: dict = {
    "provider": "ollama",  # ollama | openai | anthropic
    "model_name": None,  # None = the provider's default model
    "ollama_url": None,  # None = OLLAMA_API_URL or http://localhost:11434/v1
    "guidelines": list(DEFAULT_GUIDELINES),
    "dimensions": list(DEFAULT_DIMENSIONS),
    "custom_instructions": None,
    "max_chars_per_file": 20000,
    "max_workers": 1,
    "max_retries": 3,
    "timeout_seconds": None,  # None = no run budget
    "exclude": [],  # fnmatch patterns or directory names to skip (e.g. "migrations/", "*.min.js")
    "store_path": ".revlens.db",
}

_LIST_KEYS = ("guidelines", "dimensions", "exclude")


def load_config(config_path: str = ".revlens.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .revlens.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, **{key: list(DEFAULT_CONFIG[key]) for key in _LIST_KEYS}}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ValueError(f"{config_path} must contain a YAML mapping, got {type(file_config).__name__}.")
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials and endpoints from environment variables
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    if not config.get("ollama_url"):
        config["ollama_url"] = os.environ.get("OLLAMA_API_URL")

    return config


def review_configuration(
    config: dict,
    project_id: str,
    user_id: str = "",
    stored: Optional[ReviewConfiguration] = None,
    default_model: str = DEFAULT_MODEL,
) -> ReviewConfiguration:
    """
    Build the per-project ReviewConfiguration for a run.

    A configuration previously saved for the project wins over the YAML
    defaults, except for keys explicitly overridden on the command line
    (passed in ``config["_explicit"]``).
    """
    explicit = set(config.get("_explicit", ()))
    base = stored or ReviewConfiguration(
        project_id=project_id,
        enabled_guidelines=config["guidelines"],
        enabled_dimensions=config["dimensions"],
        custom_instructions=config.get("custom_instructions"),
        model_name=config.get("model_name") or default_model,
    )

    def pick(key, current):
        return config[key] if key in explicit and config.get(key) is not None else current

    return ReviewConfiguration(
        project_id=project_id,
        user_id=user_id,
        enabled_guidelines=pick("guidelines", base.enabled_guidelines),
        enabled_dimensions=pick("dimensions", base.enabled_dimensions),
        custom_instructions=pick("custom_instructions", base.custom_instructions),
        model_name=pick("model_name", base.model_name) or default_model,
    )
