"""
Tests for configuration loading, env overrides and validation.
"""

import json

from ctfscore.config import CTFConfig
from ctfscore.database import DatabaseManager

from .conftest import ENV_OVERRIDES


def clear_env(monkeypatch):
    for var in ENV_OVERRIDES:
        monkeypatch.delenv(var, raising=False)


def test_missing_file_creates_defaults(tmp_path, monkeypatch):
    clear_env(monkeypatch)
    path = tmp_path / "ctf_config.json"

    config = CTFConfig(str(path))

    assert path.exists()
    assert config.ps_count == 6
    assert config.questions_per_ps == 12
    assert config.get("scoring", "first_blood_score") == 45
    assert config.get("scoring", "standard_score") == 30
    assert config.get("scoring", "wrong_answer_penalty") == -5
    assert config.get("submission", "max_answer_length") == 1000
    assert config.get("initial_settings", "allow_ps_access") is False
    # A per-process key is generated but never written back
    assert config.get("auth", "secret_key")
    assert json.loads(path.read_text())["auth"]["secret_key"] == ""


def test_file_values_merge_over_defaults(tmp_path, monkeypatch):
    clear_env(monkeypatch)
    path = tmp_path / "ctf_config.json"
    path.write_text(json.dumps({"scoring": {"standard_score": 25}}))

    config = CTFConfig(str(path))

    assert config.get("scoring", "standard_score") == 25
    assert config.get("scoring", "first_blood_score") == 45
    assert CTFConfig.DEFAULT_CONFIG["scoring"]["standard_score"] == 30


def test_env_overrides(tmp_path, monkeypatch):
    clear_env(monkeypatch)
    monkeypatch.setenv("FIRST_BLOOD_SCORE", "50")
    monkeypatch.setenv("WRONG_ANSWER_PENALTY", "-10")
    monkeypatch.setenv("PENALTY_ENABLED", "false")
    monkeypatch.setenv("DB_BUSY_TIMEOUT", "2.5")
    monkeypatch.setenv("SECRET_KEY", "from-env")

    config = CTFConfig(str(tmp_path / "ctf_config.json"))

    assert config.get("scoring", "first_blood_score") == 50
    assert config.get("scoring", "wrong_answer_penalty") == -10
    assert not config.is_feature_enabled("wrong_answer_penalty")
    assert config.get("database", "busy_timeout") == 2.5
    assert config.get("auth", "secret_key") == "from-env"


def test_invalid_values_fall_back_to_defaults(tmp_path, monkeypatch):
    clear_env(monkeypatch)
    path = tmp_path / "ctf_config.json"
    path.write_text(
        json.dumps(
            {
                "competition": {"problem_statement_count": 0},
                "scoring": {"wrong_answer_penalty": 5, "first_blood_score": 10},
                "submission": {"max_answer_length": -1},
            }
        )
    )

    config = CTFConfig(str(path))

    assert config.ps_count == 6
    assert config.get("scoring", "wrong_answer_penalty") == -5
    assert config.get("scoring", "first_blood_score") == 45
    assert config.get("submission", "max_answer_length") == 1000


def test_broken_file_uses_defaults(tmp_path, monkeypatch):
    clear_env(monkeypatch)
    path = tmp_path / "ctf_config.json"
    path.write_text("{not json")

    config = CTFConfig(str(path))

    assert config.get("ctf_name") == "SOC Challenge"


def test_get_missing_key_returns_none(config):
    assert config.get("scoring", "nope") is None
    assert config.get("ctf_name", "deeper") is None


def test_non_numeric_env_values_fall_back_to_defaults(tmp_path, monkeypatch):
    clear_env(monkeypatch)
    monkeypatch.setenv("TOKEN_MAX_AGE", "one-day")
    monkeypatch.setenv("DB_BUSY_TIMEOUT", "slow")
    monkeypatch.setenv("BCRYPT_ROUNDS", "high")

    config = CTFConfig(str(tmp_path / "ctf_config.json"))

    assert config.get("auth", "token_max_age") == 86400
    assert config.get("database", "busy_timeout") == 5.0
    assert config.get("auth", "bcrypt_rounds") == 12
    assert DatabaseManager(str(tmp_path / "ctf.db"), config).busy_timeout == 5.0
