#!/usr/bin/env python3
"""Tests for configuration loading and validation."""
from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from remotepush.config import AuthConfig, Config, RemoteWriteConfig, SourceConfig, load_config

CONFIG_DIR = Path(__file__).parent.parent / "configs"

MINIMAL = """
remote_write:
  url: http://localhost:9090/api/v1/write
  job: health
  instance: host1
sources:
  - name: fixed
    type: static
    values:
      - name: up
        value: 1
"""


@pytest.fixture
def clean_env(monkeypatch):
    for var in ("REMOTE_WRITE_URL", "REMOTE_WRITE_USERNAME", "REMOTE_WRITE_PASSWORD",
                "REMOTE_WRITE_BEARER_TOKEN", "LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


@pytest.mark.parametrize("name", ["health.yaml", "productivity.yaml"])
def test_example_configs_load(clean_env, name):
    config = load_config(str(CONFIG_DIR / name))
    assert isinstance(config, Config)
    assert config.remote_write.job
    assert len(config.sources) > 0


def test_defaults(clean_env, tmp_path):
    path = tmp_path / "push.yaml"
    path.write_text(MINIMAL)
    config = load_config(str(path))

    assert config.global_.log_level == "INFO"
    assert config.remote_write.timeout_s == 30.0
    assert config.remote_write.freshness_window_s == 3600
    assert config.remote_write.auth.mode is None
    assert config.sources[0].values[0].value == 1.0


def test_instance_defaults_to_hostname():
    config = RemoteWriteConfig(url="http://x/api/v1/write", job="health")
    assert config.instance


def test_env_overrides(clean_env, tmp_path):
    path = tmp_path / "push.yaml"
    path.write_text(MINIMAL)
    clean_env.setenv("REMOTE_WRITE_URL", "https://other/api/v1/write")
    clean_env.setenv("REMOTE_WRITE_BEARER_TOKEN", "tok")
    clean_env.setenv("LOG_LEVEL", "DEBUG")

    config = load_config(str(path))

    assert config.remote_write.url == "https://other/api/v1/write"
    assert config.remote_write.auth.bearer_token == "tok"
    assert config.global_.log_level == "DEBUG"


def test_basic_auth_from_env(clean_env, tmp_path):
    path = tmp_path / "push.yaml"
    path.write_text(MINIMAL)
    clean_env.setenv("REMOTE_WRITE_USERNAME", "u")
    clean_env.setenv("REMOTE_WRITE_PASSWORD", "p")

    auth = load_config(str(path)).remote_write.auth
    assert auth.mode == "basic"
    assert (auth.basic.username, auth.basic.password) == ("u", "p")


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config("/nonexistent/push.yaml")


def test_invalid_config_raises_value_error(clean_env, tmp_path):
    path = tmp_path / "push.yaml"
    path.write_text("remote_write:\n  url: ftp://nope\n  job: health\n")
    with pytest.raises(ValueError, match="Configuration validation failed"):
        load_config(str(path))


def test_only_one_auth_mode():
    with pytest.raises(PydanticValidationError, match="Only one auth mode"):
        AuthConfig(basic={"username": "u", "password": "p"}, bearer_token="t")


def test_bearer_mode():
    assert AuthConfig(bearer_token_file="/run/token").mode == "bearer"


def test_source_requires_path():
    with pytest.raises(PydanticValidationError, match="requires 'path'"):
        SourceConfig(name="f", type="stats_file")


def test_static_requires_values():
    with pytest.raises(PydanticValidationError, match="requires 'values'"):
        SourceConfig(name="s", type="static")


def test_duplicate_source_names():
    with pytest.raises(PydanticValidationError, match="unique"):
        Config(
            remote_write={"url": "http://x/w", "job": "j", "instance": "i"},
            sources=[{"name": "a", "type": "system"}, {"name": "a", "type": "system"}],
        )


@pytest.mark.parametrize("field,value", [("timeout_s", 0), ("freshness_window_s", -1), ("job", "")])
def test_remote_write_bounds(field, value):
    data = {"url": "http://x/w", "job": "j", "instance": "i", field: value}
    with pytest.raises(PydanticValidationError):
        RemoteWriteConfig(**data)


@pytest.mark.parametrize("url", ["http://", "https:///api/v1/write"])
def test_url_requires_host(url):
    with pytest.raises(PydanticValidationError, match="no host"):
        RemoteWriteConfig(url=url, job="health", instance="host1")
