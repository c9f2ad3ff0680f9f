"""Tests for configuration loading and saving."""

from pathlib import Path

import pytest

from quoth.config import (
    CONFIG_FILENAME,
    StoreConfig,
    get_config_dir,
    get_default_store_path,
    load_config,
    load_or_create_config,
    save_config,
)


class TestConfigFile:

    def test_create_on_first_use(self, tmp_path):
        config = load_or_create_config(tmp_path / "cfg")
        assert config.exists()
        assert config.strict_decode is True
        assert config.store_path is None

    def test_round_trip(self, tmp_path):
        config = StoreConfig(path=tmp_path, store_path=tmp_path / "data", strict_decode=False)
        save_config(config)
        loaded = load_config(tmp_path)
        assert loaded.store_path == tmp_path / "data"
        assert loaded.strict_decode is False
        assert loaded.created == config.created

    def test_existing_config_is_loaded(self, tmp_path):
        save_config(StoreConfig(path=tmp_path, strict_decode=False))
        assert load_or_create_config(tmp_path).strict_decode is False

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path)

    def test_newer_version_rejected(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("[store]\nversion = 99\n")
        with pytest.raises(ValueError):
            load_config(tmp_path)

    def test_strict_decode_must_be_bool(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text('[index]\nstrict_decode = "no"\n')
        with pytest.raises(ValueError):
            load_config(tmp_path)

    def test_minimal_file(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("")
        config = load_config(tmp_path)
        assert config.version == 1
        assert config.strict_decode is True


class TestLocations:

    def test_config_dir_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("QUOTH_CONFIG_DIR", str(tmp_path))
        assert get_config_dir() == tmp_path.resolve()

    def test_config_dir_default(self, monkeypatch):
        monkeypatch.delenv("QUOTH_CONFIG_DIR", raising=False)
        assert get_config_dir() == Path.home() / ".quoth"

    def test_store_path_priority(self, tmp_path, monkeypatch):
        monkeypatch.delenv("QUOTH_STORE_PATH", raising=False)
        config = StoreConfig(path=tmp_path / "cfg")
        assert get_default_store_path(config) == tmp_path / "cfg"

        config.store_path = tmp_path / "configured"
        assert get_default_store_path(config) == tmp_path / "configured"

        monkeypatch.setenv("QUOTH_STORE_PATH", str(tmp_path / "env"))
        assert get_default_store_path(config) == (tmp_path / "env").resolve()
