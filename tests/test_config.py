"""Tests for environment-based configuration."""

import pytest

from contract_workflow import main as cli
from contract_workflow.config import WorkflowConfig, load_config
from contract_workflow.error_handling import ConfigurationError


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ("GOOGLE_API_KEY", "REVIEWER_MODE", "HITL_TIMEOUT_SECONDS", "MAX_SUPERSTEPS", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path / "missing.env"


def test_defaults_to_rules_without_api_key(clean_env):
    config = load_config(env_file=str(clean_env))
    assert config.reviewer_mode == "rules"
    assert config.hitl_timeout_seconds == 300.0
    assert config.max_supersteps == 100


def test_defaults_to_gemini_with_api_key(clean_env, monkeypatch):
    monkeypatch.setenv("GOOGLE_API_KEY", "test-key")
    assert load_config(env_file=str(clean_env)).reviewer_mode == "gemini"


def test_numeric_settings_are_parsed(clean_env, monkeypatch):
    monkeypatch.setenv("HITL_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("MAX_SUPERSTEPS", "40")
    config = load_config(env_file=str(clean_env))
    assert config.hitl_timeout_seconds == 2.5
    assert config.max_supersteps == 40


def test_malformed_number_is_rejected(clean_env, monkeypatch):
    monkeypatch.setenv("HITL_TIMEOUT_SECONDS", "soon")
    with pytest.raises(ConfigurationError, match="HITL_TIMEOUT_SECONDS"):
        load_config(env_file=str(clean_env))


def test_gemini_mode_requires_api_key():
    with pytest.raises(ConfigurationError, match="GOOGLE_API_KEY"):
        WorkflowConfig(reviewer_mode="gemini").validate()


def test_unknown_reviewer_mode_is_rejected():
    with pytest.raises(ConfigurationError):
        WorkflowConfig(reviewer_mode="magic").validate()


def test_cli_loads_configuration_once(clean_env, monkeypatch, tmp_path, capsys):
    calls = []

    def counting_load_config(env_file=None):
        calls.append(env_file)
        return load_config(env_file=str(clean_env))

    monkeypatch.setattr(cli, "load_config", counting_load_config)

    exit_code = cli.main([
        "--sample", "low",
        "--reviewer-mode", "rules",
        "--auto-approve",
        "--log-dir", str(tmp_path / "logs"),
        "--log-level", "WARNING",
    ])

    assert exit_code == 0
    assert len(calls) == 1
    assert "Decision: Approved" in capsys.readouterr().out
