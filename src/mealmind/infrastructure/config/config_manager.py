"""Configuration manager for loading and validating .mealmind.yml"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from mealmind.domain.config import AppConfig, ClassificationConfig, LLMConfig, RetryConfig

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".mealmind.yml"


class ConfigurationError(Exception):
    """Configuration validation error."""

    pass


class ConfigManager:
    """Manages configuration from .mealmind.yml and environment variables

    Configuration priority:
    1. Default values (defined in Pydantic models)
    2. .mealmind.yml file (searched from current directory upwards)
    3. Environment variables (MEALMIND_*, GEMINI_MODEL)
    4. CLI arguments (handled by CLI layer)
    """

    DEFAULT_CONFIG = {
        "llm": {
            "provider": "mock",
            "model": None,
            "timeout_ms": None,
            "temperature": None,
        },
        "retry": {
            "max_attempts": 2,
            "base_delay_ms": 500,
            "max_delay_ms": 2000,
            "jitter_ratio": 0.2,
        },
        "classification": {
            "statuses": None,
            "codes": None,
            "message_includes": None,
        },
    }

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize config manager

        Args:
            config_path: Path to .mealmind.yml (searches from current dir if None)

        Raises:
            ConfigurationError: If configuration validation fails
        """
        if isinstance(config_path, str):
            config_path = Path(config_path)
        self.config_path = config_path or self._find_config_file()
        try:
            self.config: AppConfig = self._load_config()
        except ValidationError as e:
            errors = []
            for error in e.errors():
                field = ".".join(str(x) for x in error["loc"])
                errors.append(f"  - {field}: {error['msg']}")
            raise ConfigurationError(
                "Configuration validation failed:\n" + "\n".join(errors)
            ) from e

    def _find_config_file(self) -> Optional[Path]:
        current = Path.cwd()
        for parent in [current] + list(current.parents):
            config_file = parent / CONFIG_FILE_NAME
            if config_file.exists():
                logger.info(f"Found config file: {config_file}")
                return config_file
        logger.debug(f"No {CONFIG_FILE_NAME} found, using defaults")
        return None

    def _load_config(self) -> AppConfig:
        """Load configuration from file and validate with Pydantic

        Returns:
            Validated AppConfig instance

        Raises:
            ValidationError: If configuration is invalid
            ConfigurationError: If the file is not a YAML mapping
        """
        config_dict = copy.deepcopy(self.DEFAULT_CONFIG)

        if self.config_path and self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    file_config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load config from {self.config_path}: {e}")
                logger.info("Using default configuration")
                file_config = {}
            if not isinstance(file_config, dict):
                raise ConfigurationError(f"{self.config_path} must contain a YAML mapping")
            config_dict = self._merge_config(config_dict, file_config)
            logger.info(f"Loaded configuration from {self.config_path}")

        config_dict = self._apply_env_overrides(config_dict)
        return AppConfig(**config_dict)

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge configuration dictionaries"""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        if os.getenv("MEALMIND_LLM_PROVIDER"):
            config["llm"]["provider"] = os.getenv("MEALMIND_LLM_PROVIDER")

        if os.getenv("MEALMIND_LLM_MODEL"):
            config["llm"]["model"] = os.getenv("MEALMIND_LLM_MODEL")
        elif os.getenv("GEMINI_MODEL") and config["llm"].get("provider") == "gemini" and not config["llm"].get("model"):
            config["llm"]["model"] = os.getenv("GEMINI_MODEL")

        # pydantic coerces the string
        if os.getenv("MEALMIND_RETRY_MAX_ATTEMPTS"):
            config["retry"]["max_attempts"] = os.getenv("MEALMIND_RETRY_MAX_ATTEMPTS")

        # API keys are handled by providers themselves
        return config

    def get_llm_config(self) -> LLMConfig:
        return self.config.llm

    def get_retry_config(self) -> RetryConfig:
        return self.config.retry

    def get_classification_config(self) -> ClassificationConfig:
        return self.config.classification

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key (supports dot notation)

        Args:
            key: Configuration key (e.g., "retry.max_attempts" or "llm")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self.config.model_dump()
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value
