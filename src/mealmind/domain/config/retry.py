"""Retry configuration model."""

from pydantic import BaseModel, Field


class RetryConfig(BaseModel):
    """Configuration for retry logic.

    Attributes:
        max_attempts: Total number of attempts, the first one included
        base_delay_ms: Delay before the second attempt, in milliseconds
        max_delay_ms: Upper bound on the exponential delay, in milliseconds
        jitter_ratio: Random jitter factor (0.0-1.0)
    """

    max_attempts: int = Field(2, ge=1, le=10)
    base_delay_ms: int = Field(500, ge=0)  # Allow 0 for tests
    max_delay_ms: int = Field(2000, ge=0)
    jitter_ratio: float = Field(0.2, ge=0.0, le=1.0)
