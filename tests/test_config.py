"""Tests for runtime configuration."""
from pathlib import Path

from vulntarget.core.config import VTConfig, get_config, set_config


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ("VT_HOME", "VT_TEMPLATES_DIR", "VT_WAIT_HEALTHY", "VT_LOCK_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)

    config = VTConfig.from_env()

    assert config.home_dir == Path.home() / ".vt"
    assert config.templates_dir == tmp_path / "templates"
    assert config.db_path == config.home_dir / "deployments.db"
    assert config.lock_dir == config.home_dir / "locks"
    assert config.wait_healthy is True
    assert config.lock_timeout == 300


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("VT_HOME", str(tmp_path / "vt-home"))
    monkeypatch.setenv("VT_TEMPLATES_DIR", str(tmp_path / "catalog"))
    monkeypatch.setenv("VT_WAIT_HEALTHY", "no")
    monkeypatch.setenv("VT_REMOVE_VOLUMES", "false")
    monkeypatch.setenv("VT_STATUS_TIMEOUT", "7")
    monkeypatch.setenv("VT_WATCH_INTERVAL", "0.5")

    config = VTConfig.from_env()

    assert config.home_dir == tmp_path / "vt-home"
    assert config.templates_dir == tmp_path / "catalog"
    assert config.wait_healthy is False
    assert config.remove_volumes is False
    assert config.status_timeout == 7
    assert config.watch_interval == 0.5


def test_global_config_override(tmp_path):
    config = VTConfig(home_dir=tmp_path)
    set_config(config)
    assert get_config() is config
    set_config(None)
    assert get_config() is not config
