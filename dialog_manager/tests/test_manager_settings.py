from __future__ import annotations

import json

import pytest

from dialog_manager.settings import SETTINGS_FILE, VERBOSE_ENV_VAR, ManagerSettings


@pytest.fixture(autouse=True)
def _clear_verbose_env(monkeypatch):
    monkeypatch.delenv(VERBOSE_ENV_VAR, raising=False)


def test_defaults_without_settings_dir():
    settings = ManagerSettings()

    assert settings.track_all_windows is True
    assert settings.targeted_titles == []
    assert settings.max_json_length == 7500
    assert settings.path is None
    settings.save()  # no-op without a directory


def test_save_and_reload(tmp_path):
    settings = ManagerSettings(tmp_path)
    settings.track_all_windows = False
    settings.targeted_titles = ["Log", "Objects"]
    settings.excluded_ids = ["Scratch"]
    settings.verbose_logging = True
    settings.save()

    reloaded = ManagerSettings(tmp_path)

    assert reloaded.track_all_windows is False
    assert reloaded.targeted_titles == ["Log", "Objects"]
    assert reloaded.excluded_ids == ["Scratch"]
    assert reloaded.verbose_logging is True


def test_load_coerces_and_clamps(tmp_path):
    payload = {
        "targeted_titles": ["Log", " Log ", "", 7, "Objects"],
        "excluded_ids": "not-a-list",
        "max_json_length": 99999,
        "log_retention": 0,
    }
    (tmp_path / SETTINGS_FILE).write_text(json.dumps(payload), encoding="utf-8")

    settings = ManagerSettings(tmp_path)

    assert settings.targeted_titles == ["Log", "Objects"]
    assert settings.excluded_ids == []
    assert settings.max_json_length == 8000
    assert settings.log_retention == 1


def test_non_numeric_limits_fall_back_to_defaults(tmp_path):
    payload = {"max_json_length": "huge", "log_retention": None}
    (tmp_path / SETTINGS_FILE).write_text(json.dumps(payload), encoding="utf-8")

    settings = ManagerSettings(tmp_path)

    assert settings.max_json_length == 7500
    assert settings.log_retention == 5


def test_unreadable_file_keeps_defaults(tmp_path):
    (tmp_path / SETTINGS_FILE).write_text("{not json", encoding="utf-8")

    settings = ManagerSettings(tmp_path)

    assert settings.track_all_windows is True
    assert settings.targeted_titles == []


@pytest.mark.parametrize("value,expected", [("1", True), ("on", True), ("0", False), ("no", False)])
def test_env_override_for_verbose_logging(tmp_path, monkeypatch, value, expected):
    (tmp_path / SETTINGS_FILE).write_text(json.dumps({"verbose_logging": not expected}), encoding="utf-8")
    monkeypatch.setenv(VERBOSE_ENV_VAR, value)

    assert ManagerSettings(tmp_path).verbose_logging is expected


def test_unrecognised_env_value_is_ignored(monkeypatch):
    monkeypatch.setenv(VERBOSE_ENV_VAR, "maybe")

    assert ManagerSettings().verbose_logging is False
