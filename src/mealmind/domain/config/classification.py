"""Retryable-error classification overrides."""

from typing import List, Optional

from pydantic import BaseModel


class ClassificationConfig(BaseModel):
    """Overrides for the retryable error tables.

    A section left as None keeps the built-in defaults.

    Attributes:
        statuses: HTTP status codes worth retrying
        codes: Transport error codes worth retrying (e.g. ECONNRESET)
        message_includes: Lower-case message fragments worth retrying
    """

    statuses: Optional[List[int]] = None
    codes: Optional[List[str]] = None
    message_includes: Optional[List[str]] = None
