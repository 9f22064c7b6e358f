import pytest
from pydantic import ValidationError

from persona_core.config import HumanizerConfig, LearnerConfig, PersonaCoreConfig


def test_defaults():
    config = PersonaCoreConfig()

    assert config.embedding.dimensions == 256
    assert config.retrieval.limit == 10
    assert config.retrieval.weights.formula() == "semantic(0.4)+recency(0.3)+emotional(0.2)+frequency(0.1)"
    assert config.consolidation.merge_similarity_threshold == 0.9
    assert config.humanizer.relational_delay is False
    assert config.humanizer.imperfections is False
    assert config.pipeline.max_retries == 0


def test_from_env_overrides(monkeypatch):
    monkeypatch.setenv("PERSONA_CORE_EMBED_DIMENSIONS", "128")
    monkeypatch.setenv("PERSONA_CORE_WEIGHT_SEMANTIC", "0.7")
    monkeypatch.setenv("PERSONA_CORE_WEIGHT_RECENCY", "0.1")
    monkeypatch.setenv("PERSONA_CORE_WEIGHT_EMOTIONAL", "0.1")
    monkeypatch.setenv("PERSONA_CORE_WEIGHT_FREQUENCY", "0.1")
    monkeypatch.setenv("PERSONA_CORE_HUMANIZER_RELATIONAL_DELAY", "yes")
    monkeypatch.setenv("PERSONA_CORE_MAX_RETRIES", "2")
    monkeypatch.setenv("PERSONA_CORE_DECAY_AFTER_DAYS", " ")
    monkeypatch.setenv("PERSONA_CORE_HUMANIZER_IMPERFECTIONS", "on")
    monkeypatch.setenv("PERSONA_CORE_HUMANIZER_IMPERFECTION_PROFILE", "tired")

    config = PersonaCoreConfig.from_env()

    assert config.embedding.dimensions == 128
    assert config.retrieval.weights.semantic == 0.7
    assert config.humanizer.relational_delay is True
    assert config.pipeline.max_retries == 2
    assert config.consolidation.decay_after_days == 30.0
    assert config.humanizer.imperfections is True
    assert config.humanizer.imperfection_profile == "tired"
    assert config.humanizer.short_reply_followup == "🙂"


def test_invalid_env_weights_fail(monkeypatch):
    monkeypatch.setenv("PERSONA_CORE_WEIGHT_SEMANTIC", "0.9")
    with pytest.raises(ValidationError):
        PersonaCoreConfig.from_env()


def test_config_bounds():
    with pytest.raises(ValueError):
        HumanizerConfig(min_chunks=1)
    with pytest.raises(ValueError):
        HumanizerConfig(min_chunks=3, max_chunks=5)
    with pytest.raises(ValueError):
        HumanizerConfig(target_words_per_chunk=0)
    with pytest.raises(ValueError):
        LearnerConfig(reflection_every_n_messages=0)
    with pytest.raises(ValueError):
        HumanizerConfig(short_reply_followup="  ")
