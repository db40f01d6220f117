"""Tests for LLM model settings."""

from llm.src.models import (
    ContinuationSettings,
    DEFAULT_ASSISTANT_SETTINGS,
    DEFAULT_CONTINUATION_SETTINGS,
    ModelSettings,
)


class TestModelSettings:
    """Tests for ModelSettings."""

    def test_to_request_uses_openrouter_field_names(self):
        settings = ModelSettings(model_name="m", temperature=0.3, top_p=0.8, max_tokens=12)
        assert settings.to_request() == {
            "model": "m",
            "temperature": 0.3,
            "top_p": 0.8,
            "max_tokens": 12,
        }

    def test_from_dict_fills_missing_from_defaults(self):
        settings = ModelSettings.from_dict({"temperature": 0.2}, DEFAULT_ASSISTANT_SETTINGS)
        assert settings.model_name == "openai/gpt-oss-20b"
        assert settings.temperature == 0.2
        assert settings.max_tokens == 2000


class TestContinuationSettings:
    """Tests for ContinuationSettings."""

    def test_defaults(self):
        assert DEFAULT_CONTINUATION_SETTINGS.model_name == "meta-llama/llama-3.1-405b"
        assert DEFAULT_CONTINUATION_SETTINGS.max_tokens == 100
        assert DEFAULT_CONTINUATION_SETTINGS.branching_factor == 2

    def test_branching_factor_not_sent_to_api(self):
        request = DEFAULT_CONTINUATION_SETTINGS.to_request()
        assert "branching_factor" not in request

    def test_from_dict(self):
        settings = ContinuationSettings.from_dict(
            {"model_name": "x/y", "branching_factor": "4"},
            DEFAULT_CONTINUATION_SETTINGS,
        )
        assert settings.model_name == "x/y"
        assert settings.branching_factor == 4
        assert settings.top_p == 1.0
