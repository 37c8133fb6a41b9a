"""
fn-shortcut - Configuration Manager
===================================
Handles loading of application configuration.

Two sources are merged on top of the built-in defaults:

1. config.yaml  - Paths, service command, session and log settings
2. Environment  - FN_SHORTCUT_* variables (usually loaded from .env by app.py)

Environment variables win over config.yaml, which wins over DEFAULTS.

Usage:
    config = ConfigManager(project_dir="/path/to/fn-shortcut")
    settings = config.load()  # Returns merged config dict
"""

import os
import yaml
from typing import Any


# Default configuration values used when config.yaml is missing or incomplete.
# Paths match the layout of the fnOS appliance.
DEFAULTS = {
    "web": {
        "host": "0.0.0.0",
        "port": 15778,
    },
    "paths": {
        "web_root": "/usr/trim/www",
        "resource_dir": "/usr/trim/share/.restore",
        "assets_dir": "/var/apps/fn.shortcut/target/server/filedata",
        "data_dir": "/var/apps/fn.shortcut/var",
    },
    "service": {
        "restart_command": "systemctl restart trim_nginx",
        "restart_timeout": 120,
    },
    "auth": {
        "session_hours": 24,
        "min_password_length": 6,
        "kdf_rounds": 64,
    },
    "logs": {
        "max_lines": 100,
        "timezone": "Asia/Shanghai",
        "subscriber_queue": 1000,
    },
}

# Environment variable -> (section, key, type) overrides.
ENV_OVERRIDES = {
    "FN_SHORTCUT_HOST": ("web", "host", str),
    "FN_SHORTCUT_PORT": ("web", "port", int),
    "FN_SHORTCUT_WEB_ROOT": ("paths", "web_root", str),
    "FN_SHORTCUT_RESOURCE_DIR": ("paths", "resource_dir", str),
    "FN_SHORTCUT_ASSETS_DIR": ("paths", "assets_dir", str),
    "FN_SHORTCUT_DATA_DIR": ("paths", "data_dir", str),
    "FN_SHORTCUT_RESTART_COMMAND": ("service", "restart_command", str),
}


class ConfigManager:
    """
    Configuration manager for fn-shortcut.

    Attributes:
        project_dir: Root directory of the fn-shortcut project.
        config_path: Full path to config.yaml.
    """

    def __init__(self, project_dir: str, environ: dict[str, str] | None = None):
        """
        Initialize the config manager.

        Args:
            project_dir: Absolute path to the project root directory.
            environ:     Environment mapping used for overrides (defaults to os.environ).
        """
        self.project_dir = project_dir
        self.config_path = os.path.join(project_dir, "config.yaml")
        self.environ = os.environ if environ is None else environ

    def load(self) -> dict:
        """
        Load and merge configuration from config.yaml and the environment.

        Missing values are filled from DEFAULTS so the application always has
        a complete configuration even if the YAML file is partial.

        Returns:
            A dictionary containing the full configuration.
        """
        config = _deep_copy(DEFAULTS)

        if os.path.exists(self.config_path):
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    user_config = yaml.safe_load(f) or {}
                if not isinstance(user_config, dict):
                    raise yaml.YAMLError("config.yaml must contain a mapping")
                _deep_merge(config, user_config)
            except (yaml.YAMLError, OSError) as e:
                # Corrupted file: keep the defaults, caller decides what to report
                config["_config_error"] = str(e)

        _apply_env(config, self.environ)
        return config


# -- Helper Functions ---------------------------------------------------------

def _deep_copy(d: dict) -> dict:
    """Create a deep copy of a nested dictionary."""
    result = {}
    for key, value in d.items():
        if isinstance(value, dict):
            result[key] = _deep_copy(value)
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _deep_merge(base: dict, override: dict) -> None:
    """
    Recursively merge 'override' into 'base' (in-place).

    For nested dicts, values are merged recursively.
    For all other types, override replaces base.
    """
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def _apply_env(config: dict, environ: Any) -> None:
    """Apply FN_SHORTCUT_* environment overrides in-place."""
    for name, (section, key, cast) in ENV_OVERRIDES.items():
        raw = environ.get(name)
        if raw is None or raw == "":
            continue
        try:
            config.setdefault(section, {})[key] = cast(raw)
        except ValueError:
            config["_config_error"] = f"Invalid value for {name}: {raw!r}"
