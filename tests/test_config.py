"""
Tests for config loading.
Run with: pytest tests/test_config.py
"""

import pytest

import deskline.config as config
from deskline.config import load_config, resolve_api_url


@pytest.fixture(autouse=True)
def fresh_cache(monkeypatch):
    monkeypatch.setattr(config, "_config", None)


def test_load_config_resolves_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DESKLINE_TEST_URL", "http://10.0.0.5:3000")
    path = tmp_path / "config.yaml"
    path.write_text("api:\n  url: ${DESKLINE_TEST_URL}\n  timeout: 5\n")

    cfg = load_config(path)
    assert cfg["api"]["url"] == "http://10.0.0.5:3000"
    assert cfg["api"]["timeout"] == 5


def test_unset_env_resolves_empty(tmp_path, monkeypatch):
    monkeypatch.delenv("DESKLINE_MISSING_VAR", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text("api:\n  url: ${DESKLINE_MISSING_VAR}\n")
    assert load_config(path)["api"]["url"] == ""


def test_missing_config_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_get_config_caches(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("polling:\n  interval_seconds: 3\n")
    cfg = load_config(path)
    assert config.get_config() is cfg


def test_resolve_api_url():
    assert resolve_api_url({"api": {"url": "http://host:3000/"}}) == "http://host:3000"
    assert resolve_api_url({"api": {"url": "", "default_url": "http://fallback:3000"}}) == "http://fallback:3000"
    assert resolve_api_url({}) == "http://localhost:3000"


def test_repo_config_loads():
    """The shipped config.yaml parses and carries the expected sections."""
    cfg = load_config()
    for section in ("api", "polling", "storage", "session", "logging"):
        assert section in cfg
    assert cfg["polling"]["interval_seconds"] == 3
