"""Settings and YAML config loading for bookmind."""

from bookmind.config.loader import load_config
from bookmind.config.settings import Settings

__all__ = ["Settings", "load_config"]
