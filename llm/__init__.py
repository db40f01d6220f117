"""
LLM Library - OpenRouter access for Helm.

Two entry points:
- call_continuation_model: raw completion from a base model
- call_assistant_model: system + user chat used for structured decisions

Each call is a single attempt that raises LLMRequestError on failure;
wrap calls in with_retry for exponential backoff.

Usage:
    from llm import LLMClient, ModelSettings, with_retry

    client = LLMClient()
    text = await with_retry(
        lambda: client.call_assistant_model(system, user, settings.assistant)
    )
"""

from .src.client import LLMClient, LLMRequestError, RateLimiter
from .src.models import ModelSettings, ContinuationSettings
from .src.retry import with_retry

__all__ = [
    "LLMClient",
    "LLMRequestError",
    "RateLimiter",
    "ModelSettings",
    "ContinuationSettings",
    "with_retry",
]

__version__ = "0.1.0"
