"""
Model settings for LLM calls.
"""

from dataclasses import dataclass, asdict
from typing import Any


@dataclass
class ModelSettings:
    """Sampling settings for one model."""
    model_name: str
    temperature: float = 1.0
    top_p: float = 1.0
    max_tokens: int = 2000

    def to_request(self) -> dict[str, Any]:
        """OpenRouter request fields for these settings."""
        return {
            "model": self.model_name,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "max_tokens": self.max_tokens,
        }

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict, defaults: "ModelSettings") -> "ModelSettings":
        return cls(
            model_name=data.get("model_name", defaults.model_name),
            temperature=float(data.get("temperature", defaults.temperature)),
            top_p=float(data.get("top_p", defaults.top_p)),
            max_tokens=int(data.get("max_tokens", defaults.max_tokens)),
        )


@dataclass
class ContinuationSettings(ModelSettings):
    """Settings for the base model that writes continuations."""
    branching_factor: int = 2

    @classmethod
    def from_dict(cls, data: dict, defaults: "ContinuationSettings") -> "ContinuationSettings":
        return cls(
            model_name=data.get("model_name", defaults.model_name),
            temperature=float(data.get("temperature", defaults.temperature)),
            top_p=float(data.get("top_p", defaults.top_p)),
            max_tokens=int(data.get("max_tokens", defaults.max_tokens)),
            branching_factor=int(data.get("branching_factor", defaults.branching_factor)),
        )


DEFAULT_CONTINUATION_SETTINGS = ContinuationSettings(
    model_name="meta-llama/llama-3.1-405b",
    temperature=1.0,
    top_p=1.0,
    max_tokens=100,
    branching_factor=2,
)

DEFAULT_ASSISTANT_SETTINGS = ModelSettings(
    model_name="openai/gpt-oss-20b",
    temperature=1.0,
    top_p=1.0,
    max_tokens=2000,
)
