"""Tests for settings and orchestrator config defaults."""

from legacy_bridge.config import Settings, settings
from legacy_bridge.pipeline import OrchestratorConfig


def test_settings_defaults() -> None:
    s = Settings()
    assert s.vector_dimension == 1536
    assert s.similarity_threshold == 0.7
    assert s.conversation_history_limit == 100
    assert s.confidence_threshold == 0.8
    assert s.max_retry_attempts == 3
    assert s.workflow_retention_seconds == 300
    assert s.batch_parallel_limit == 5


def test_settings_init_overrides() -> None:
    s = Settings(vector_dimension=8, log_level="DEBUG")
    assert s.vector_dimension == 8
    assert s.log_level == "DEBUG"


def test_orchestrator_config_seeded_from_settings() -> None:
    config = OrchestratorConfig()
    assert config.max_retries == settings.max_retry_attempts
    assert config.confidence_threshold == settings.confidence_threshold
    assert config.retention_seconds == settings.workflow_retention_seconds
    assert config.enable_self_healing is True
    assert config.interrupt_on_cancel is False
