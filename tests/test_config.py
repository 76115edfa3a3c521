"""Tests for configuration loading."""

import json
import logging

from src.config import DEFAULT_API_URL, Config, setup_logging


class TestConfig:
    def test_defaults(self):
        config = Config()

        assert config.api_url == DEFAULT_API_URL
        assert config.timeout == 15
        assert config.keychain_service == "Stylio"
        assert config.push_platform

    def test_load_missing_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("STYLIO_API_URL", raising=False)

        config = Config.load(tmp_path / "config.json")

        assert config == Config()

    def test_save_and_load(self, tmp_path, monkeypatch):
        monkeypatch.delenv("STYLIO_API_URL", raising=False)
        config_file = tmp_path / "nested" / "config.json"

        Config(api_url="https://staging.stylio.test/api", timeout=5, push_platform="ios").save(config_file)
        loaded = Config.load(config_file)

        assert loaded.api_url == "https://staging.stylio.test/api"
        assert loaded.timeout == 5
        assert loaded.push_platform == "ios"

    def test_unknown_keys_ignored(self, tmp_path, monkeypatch):
        monkeypatch.delenv("STYLIO_API_URL", raising=False)
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"timeout": 30, "sync_interval": 60}))

        assert Config.load(config_file).timeout == 30

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("STYLIO_API_URL", raising=False)
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")

        assert Config.load(config_file) == Config()

    def test_stored_api_url_loaded_verbatim(self, tmp_path, monkeypatch):
        monkeypatch.delenv("STYLIO_API_URL", raising=False)
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"api_url": "http://localhost:5000"}))

        assert Config.load(config_file).api_url == "http://localhost:5000"

    def test_env_overrides_api_url(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STYLIO_API_URL", "http://10.0.2.2:5000/api")
        config_file = tmp_path / "config.json"
        Config(api_url="https://staging.stylio.test/api").save(config_file)

        assert Config.load(config_file).api_url == "http://10.0.2.2:5000/api"


class TestSetupLogging:
    def test_creates_log_file(self, tmp_path):
        root = logging.getLogger()
        saved, saved_level = list(root.handlers), root.level
        root.handlers = []
        try:
            setup_logging(debug=True, log_dir=tmp_path / "logs")

            assert (tmp_path / "logs" / "stylio-session.log").exists()
            assert root.level == logging.DEBUG
            assert logging.getLogger("urllib3").level == logging.WARNING
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers = saved
            root.setLevel(saved_level)
