"""Tests for configuration loading."""

from fnshortcut.config import ConfigManager, DEFAULTS


class TestConfigManager:
    """Test config.yaml and environment merging."""

    def test_defaults_without_file(self, tmp_path):
        config = ConfigManager(str(tmp_path), environ={}).load()
        assert config == DEFAULTS
        assert config is not DEFAULTS

    def test_partial_file_is_merged(self, tmp_path):
        (tmp_path / "config.yaml").write_text("web:\n  port: 9000\n", encoding="utf-8")
        config = ConfigManager(str(tmp_path), environ={}).load()
        assert config["web"] == {"host": "0.0.0.0", "port": 9000}
        assert config["paths"] == DEFAULTS["paths"]

    def test_corrupt_file_falls_back(self, tmp_path):
        (tmp_path / "config.yaml").write_text("web: [unclosed\n", encoding="utf-8")
        config = ConfigManager(str(tmp_path), environ={}).load()
        assert "_config_error" in config
        assert config["web"] == DEFAULTS["web"]

    def test_non_mapping_file_falls_back(self, tmp_path):
        (tmp_path / "config.yaml").write_text("- just\n- a list\n", encoding="utf-8")
        config = ConfigManager(str(tmp_path), environ={}).load()
        assert "_config_error" in config

    def test_environment_overrides(self, tmp_path):
        (tmp_path / "config.yaml").write_text("web:\n  port: 9000\n", encoding="utf-8")
        environ = {
            "FN_SHORTCUT_PORT": "9100",
            "FN_SHORTCUT_WEB_ROOT": "/srv/www",
            "FN_SHORTCUT_RESTART_COMMAND": "true",
        }
        config = ConfigManager(str(tmp_path), environ=environ).load()
        assert config["web"]["port"] == 9100
        assert config["paths"]["web_root"] == "/srv/www"
        assert config["service"]["restart_command"] == "true"

    def test_invalid_environment_value(self, tmp_path):
        config = ConfigManager(str(tmp_path), environ={"FN_SHORTCUT_PORT": "http"}).load()
        assert config["web"]["port"] == DEFAULTS["web"]["port"]
        assert "FN_SHORTCUT_PORT" in config["_config_error"]
