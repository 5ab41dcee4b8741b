"""Configuration loading"""

from mealmind.infrastructure.config.config_manager import ConfigManager, ConfigurationError

__all__ = ["ConfigManager", "ConfigurationError"]
