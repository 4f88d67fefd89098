"""Tests for configuration loading."""

from __future__ import annotations

from senseshift.config import (
    SenseShiftConfig,
    create_default_config,
    get_config_path,
    load_config,
    save_config,
)


def test_defaults_without_file(tmp_path):
    config = load_config(tmp_path / "missing.yaml")
    assert config.sample_interval == 10.0
    assert config.tab_switch_threshold == 9.5
    assert config.focus_alert_threshold == 0.6
    assert config.notification_cooldown == 60.0
    assert config.firebase_api_key is None


def test_values_from_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "sample_interval: 5\n"
        "notification_cooldown: 30\n"
        "health_export_path: /tmp/export.xml\n"
        "log_level: debug\n"
    )
    config = load_config(path)
    assert config.sample_interval == 5.0
    assert config.notification_cooldown == 30.0
    assert config.health_export_path == "/tmp/export.xml"
    assert config.log_level == "DEBUG"
    # untouched keys keep their defaults
    assert config.drift_interval == 4.5


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("firebase_api_key: from-file\nfirebase_project_id: proj\n")
    monkeypatch.setenv("SENSESHIFT_FIREBASE_API_KEY", "from-env")

    config = load_config(path)
    assert config.firebase_api_key == "from-env"
    assert config.firebase_project_id == "proj"


def test_broken_file_falls_back(tmp_path, capsys):
    path = tmp_path / "config.yaml"
    path.write_text("sample_interval: [not, a, number]\n")
    config = load_config(path)
    assert config == SenseShiftConfig()
    assert "Error loading config" in capsys.readouterr().out


def test_save_and_reload(tmp_path):
    path = tmp_path / "nested" / "config.yaml"
    config = SenseShiftConfig(sample_interval=2.0, webhook_url="https://hooks.example/x")
    save_config(config, path)
    assert load_config(path) == config


def test_create_default_config_is_loadable(_isolated_home):
    create_default_config()
    path = get_config_path()
    assert path.parent == _isolated_home
    assert load_config(path) == SenseShiftConfig()
