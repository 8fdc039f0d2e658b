import os
from pathlib import Path
from typing import Optional

import yaml

from mrlens_core.prompts import CODE_REVIEW_GUIDELINES

DEFAULT_CONFIG: dict = {
    "model": "openai",
    "model_name": None,  # None = provider default
    "max_tokens": 2048,
    "max_files_per_chunk": 10,
    "max_lines_per_chunk": 1000,
    "retry_attempts": 3,
    "retry_delay": 1.0,  # seconds; base delay for the retry policy
    "request_timeout": 30.0,  # seconds, per remote call
    "job_retention_days": 7,
    "max_concurrent_jobs": 5,
    "guidelines": None,  # None = use built-in default; set to a path string to override
    "exclude": [],  # fnmatch patterns or directory names to skip (e.g. "migrations/", "*.min.js")
    "gitlab_base_url": None,  # None = use the host of the merge request URL
}

_POSITIVE_INTS = ("max_tokens", "max_files_per_chunk", "max_lines_per_chunk", "retry_attempts", "max_concurrent_jobs")
_POSITIVE_NUMBERS = ("request_timeout",)
_NON_NEGATIVE_NUMBERS = ("retry_delay", "job_retention_days")


def load_config(config_path: str = ".mrlens.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .mrlens.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "exclude": list(DEFAULT_CONFIG["exclude"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["gitlab_token"] = os.environ.get("GITLAB_TOKEN")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    if not config.get("gitlab_base_url"):
        config["gitlab_base_url"] = os.environ.get("GITLAB_BASE_URL")

    _validate(config)
    return config


def _validate(config: dict) -> None:
    for key in _POSITIVE_INTS:
        value = config[key]
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValueError(f"{key} must be a positive integer, got {value!r}")
    for key in _POSITIVE_NUMBERS:
        value = config[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ValueError(f"{key} must be a positive number, got {value!r}")
    for key in _NON_NEGATIVE_NUMBERS:
        value = config[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise ValueError(f"{key} must be a non-negative number, got {value!r}")
    # an empty `exclude:` key loads as None
    if config["exclude"] is None:
        config["exclude"] = []
    exclude = config["exclude"]
    if not isinstance(exclude, list) or not all(isinstance(p, str) for p in exclude):
        raise ValueError(f"exclude must be a list of patterns, got {exclude!r}")


def load_guidelines(config: dict) -> str:
    """
    Load review guidelines.

    If ``guidelines`` is set in config, loads from that path (relative to cwd).
    Otherwise falls back to the built-in default.
    """
    custom_path = config.get("guidelines")
    if custom_path:
        p = Path(custom_path)
        if not p.exists():
            raise FileNotFoundError(f"Guidelines file not found: {custom_path}")
        return p.read_text()

    return CODE_REVIEW_GUIDELINES
