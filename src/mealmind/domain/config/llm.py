"""LLM configuration model."""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """Configuration for LLM provider.

    Attributes:
        provider: LLM provider name
        model: Model identifier (provider default when None)
        timeout_ms: Per-attempt request timeout in milliseconds (provider default when None)
        temperature: Sampling temperature (0.0-2.0), provider default when None
    """

    provider: Literal["mock", "openai", "gemini"] = "mock"
    model: Optional[str] = None
    timeout_ms: Optional[int] = Field(None, gt=0)
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0)
