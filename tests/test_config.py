"""Tests for the TOML-backed viewer configuration."""

import pytest
import toml

from sourcelens import config
from sourcelens.config_manager import (
    DEFAULT_VIEWER_CONFIG,
    ViewerSettings,
    load_full_config,
    load_viewer_config,
    reset_viewer_config,
    save_viewer_setting,
)


def test_defaults_without_config_file():
    assert load_viewer_config() == DEFAULT_VIEWER_CONFIG
    assert ViewerSettings.from_config() == ViewerSettings()
    assert ViewerSettings().max_call_depth == 10
    assert ViewerSettings().merge_tolerance == 2


def test_save_and_load_setting():
    assert save_viewer_setting("max_call_depth", "4")
    assert save_viewer_setting("focus_by_default", "no")

    settings = ViewerSettings.from_config()
    assert settings.max_call_depth == 4
    assert settings.focus_by_default is False


def test_other_sections_are_preserved():
    config.ensure_base_dirs()
    config.CONFIG_FILE.write_text(toml.dumps({"theme": {"name": "dark"}}), encoding="utf-8")

    save_viewer_setting("indent_size", "4")
    full = load_full_config()
    assert full["theme"] == {"name": "dark"}
    assert full["viewer"]["indent_size"] == 4

    reset_viewer_config()
    assert load_full_config() == {"theme": {"name": "dark"}}


def test_unknown_and_invalid_values_fall_back():
    config.ensure_base_dirs()
    config.CONFIG_FILE.write_text(
        '[viewer]\nmax_call_depth = "deep"\nmerge_tolerance = 5\ncolour = "red"\n',
        encoding="utf-8",
    )
    loaded = load_viewer_config()
    assert loaded["max_call_depth"] == 10
    assert loaded["merge_tolerance"] == 5
    assert "colour" not in loaded


def test_corrupt_config_is_ignored():
    config.ensure_base_dirs()
    config.CONFIG_FILE.write_text("[viewer\nbroken", encoding="utf-8")
    assert load_viewer_config() == DEFAULT_VIEWER_CONFIG


def test_unknown_key_raises():
    with pytest.raises(KeyError):
        save_viewer_setting("colour", "red")


@pytest.mark.parametrize("key,value", [("merge_tolerance", "wide"), ("max_call_depth", "-1")])
def test_invalid_value_raises(key, value):
    with pytest.raises(ValueError):
        save_viewer_setting(key, value)


def test_negative_values_in_file_fall_back():
    config.ensure_base_dirs()
    config.CONFIG_FILE.write_text(
        "[viewer]\nmax_call_depth = -3\nmerge_tolerance = -1\nindent_size = 4\n",
        encoding="utf-8",
    )
    settings = ViewerSettings.from_config()
    assert settings.max_call_depth == 10
    assert settings.merge_tolerance == 2
    assert settings.indent_size == 4
