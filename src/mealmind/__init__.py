"""mealmind - LLM helper functions with retry and backoff"""

__version__ = "0.1.0"
