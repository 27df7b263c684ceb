import pytest

from locator_xray.core.config import EngineConfig, RepairConfig
from locator_xray.core.errors import ConfigurationError


def test_engine_defaults():
    config = EngineConfig()

    assert config.soft_recovery_seconds == 1.0
    assert config.hard_recovery_seconds == 3.0
    assert config.debounce_windows == {"highlightsChanged": 0.100, "evaluationComplete": 0.050}
    assert config.default_debounce_seconds == 0.030
    assert config.redundant_update_seconds == 0.300


def test_engine_rejects_inverted_timeouts():
    with pytest.raises(ConfigurationError):
        EngineConfig(soft_recovery_seconds=2.0, hard_recovery_seconds=1.0)


def test_engine_from_env(monkeypatch):
    monkeypatch.setenv("XRAY_SOFT_RECOVERY_SECONDS", "0.5")
    monkeypatch.setenv("XRAY_DEBUG", "yes")

    config = EngineConfig.from_env()

    assert config.soft_recovery_seconds == 0.5
    assert config.hard_recovery_seconds == 3.0
    assert config.debug is True


def test_repair_defaults():
    config = RepairConfig()

    assert config.batch_size == 10
    assert config.max_retries == 3
    assert config.retry_base_delay == 1.0
    assert config.client_type == "auto"


def test_repair_from_env(monkeypatch):
    monkeypatch.setenv("XRAY_BATCH_SIZE", "5")
    monkeypatch.setenv("XRAY_REPAIR_CLIENT", "heuristic")
    monkeypatch.setenv("XRAY_REPAIR_MODEL", "gpt-4o-mini")

    config = RepairConfig.from_env()

    assert config.batch_size == 5
    assert config.client_type == "heuristic"
    assert config.model == "gpt-4o-mini"


@pytest.mark.parametrize("name,value", [
    ("XRAY_BATCH_SIZE", "ten"),
    ("XRAY_BATCH_SIZE", "0"),
    ("XRAY_MAX_RETRIES", "-1"),
    ("XRAY_RETRY_BASE_DELAY", "soon"),
])
def test_repair_from_env_rejects_bad_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError):
        RepairConfig.from_env()


def test_bad_boolean(monkeypatch):
    monkeypatch.setenv("XRAY_DEBUG", "maybe")

    with pytest.raises(ConfigurationError, match="XRAY_DEBUG"):
        EngineConfig.from_env()
