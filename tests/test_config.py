import pytest

from townsfolk.config import Config
from townsfolk.llm_utils import LLMTextGenerator


def test_cloud_provider_requires_key(monkeypatch):
    monkeypatch.setattr(Config, "LLM_PROVIDER", "anthropic")
    monkeypatch.setattr(Config, "ANTHROPIC_API_KEY", None)
    with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
        Config.validate()

    monkeypatch.setattr(Config, "ANTHROPIC_API_KEY", "sk-test")
    monkeypatch.setattr(Config, "SIM_SPEED", 3)
    Config.validate()


def test_ollama_needs_no_key(monkeypatch):
    monkeypatch.setattr(Config, "LLM_PROVIDER", "ollama")
    monkeypatch.setattr(Config, "OPENAI_API_KEY", None)
    monkeypatch.setattr(Config, "ANTHROPIC_API_KEY", None)
    Config.validate()


def test_speed_out_of_range(monkeypatch):
    monkeypatch.setattr(Config, "LLM_PROVIDER", "openai")
    monkeypatch.setattr(Config, "OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(Config, "SIM_SPEED", 15)
    with pytest.raises(ValueError, match="SIM_SPEED"):
        Config.validate()


def test_generator_from_config(monkeypatch):
    monkeypatch.setattr(Config, "LLM_PROVIDER", "ollama")
    monkeypatch.setattr(Config, "LLM_MODEL", "llama3.1")
    monkeypatch.setattr(Config, "LLM_MAX_CONCURRENT", 5)
    monkeypatch.setattr(Config, "LLM_MIN_INTERVAL_SECONDS", 0.5)
    monkeypatch.setattr(Config, "LLM_MAX_ATTEMPTS", 4)

    generator = LLMTextGenerator.from_config(Config)

    assert generator.uses_local_llm
    assert generator.llm_model == "llama3.1"
    assert generator.gate.max_concurrent == 5
    assert generator.gate.min_interval_seconds == 0.5
    assert generator.max_attempts == 4
    assert "Townsfolk Configuration" in Config.display()
