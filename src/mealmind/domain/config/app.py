"""Main application configuration model."""

from pydantic import BaseModel, ConfigDict, Field

from mealmind.domain.config.classification import ClassificationConfig
from mealmind.domain.config.llm import LLMConfig
from mealmind.domain.config.retry import RetryConfig


class AppConfig(BaseModel):
    """Main application configuration.

    Root model aggregating all configuration sections. Validation is performed
    at load time to fail fast on configuration errors.

    Attributes:
        llm: LLM provider configuration
        retry: Retry policy configuration
        classification: Retryable error table overrides
    """

    llm: LLMConfig = Field(default_factory=LLMConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    classification: ClassificationConfig = Field(default_factory=ClassificationConfig)

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",
        json_schema_extra={
            "example": {
                "llm": {
                    "provider": "gemini",
                    "model": "gemini-3-flash-preview",
                    "timeout_ms": 25000,
                },
                "retry": {
                    "max_attempts": 2,
                    "base_delay_ms": 500,
                    "max_delay_ms": 2000,
                    "jitter_ratio": 0.2,
                },
                "classification": {
                    "statuses": [408, 429, 500, 502, 503, 504],
                },
            }
        },
    )
