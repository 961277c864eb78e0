"""YAML configuration loader with environment variable overrides.

Configuration is layered (later layers win):

  1. config/config.yaml  -- static defaults checked into the repo
  2. .env file           -- local developer overrides
  3. environment vars    -- set at deploy time

``load_config()`` reads the YAML file and deep-merges the env-based
:class:`Settings` values on top.
"""

from pathlib import Path

import yaml

from bookmind.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings instance to overlay; a fresh one is built when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "llm": {
            "provider_order": settings.get_provider_order(),
            "available_providers": settings.get_available_llm_providers(),
            "temperature": settings.generation_temperature,
            "max_tokens": settings.generation_max_tokens,
        },
        "queue": {
            "enabled": settings.queue_enabled,
            "concurrency": settings.queue_concurrency,
            "max_attempts": settings.job_max_attempts,
            "backoff_base_seconds": settings.job_backoff_base_seconds,
        },
        "retrieval": {
            "chat_min_similarity": settings.chat_min_similarity,
            "max_context_chunks": settings.max_context_chunks,
            "full_content_max_chars": settings.full_content_max_chars,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
