"""Pytest configuration and shared fixtures."""

import copy
import os

import pytest
from fastapi.testclient import TestClient

from fnshortcut import files
from fnshortcut.config import DEFAULTS
from fnshortcut.installer import InstallManager
from fnshortcut.logs import LogBroadcaster
from fnshortcut.main import create_app


ORIGINAL_INDEX = (
    "<!DOCTYPE html>\n"
    "<html lang=\"zh-CN\">\n"
    "<head>\n"
    "    <meta charset=\"UTF-8\">\n"
    "    <title>fnOS</title>\n"
    "</head>\n"
    "<body>\n"
    "    <div id=\"root\"></div>\n"
    "    <script src=\"./assets/index.js\"></script>\n"
    "</body>\n"
    "</html>\n"
)


class MirrorRestarter:
    """
    Stands in for `systemctl restart trim_nginx`.

    Like the appliance, it publishes the staging copy (when there is one)
    as the live web root.
    """

    def __init__(self, staging_dir, web_root):
        self.staging_dir = staging_dir
        self.web_root = web_root
        self.calls = 0

    def __call__(self, log):
        self.calls += 1
        if os.path.isdir(self.staging_dir):
            files.copy_tree(self.staging_dir, self.web_root)
        log("Desktop service restarted")
        return True


@pytest.fixture
def appliance(tmp_path):
    """A fake fnOS layout: web root, resource dir, asset bundle and data dir."""
    web_root = tmp_path / "www"
    (web_root / "assets").mkdir(parents=True)
    (web_root / "index.html").write_text(ORIGINAL_INDEX, encoding="utf-8")
    (web_root / "assets" / "index.js").write_text("console.log('desktop');\n")

    assets_dir = tmp_path / "app" / "filedata"
    (assets_dir / "css").mkdir(parents=True)
    (assets_dir / "FileManagerEnhancer.js").write_text("/* enhancer */\n")
    (assets_dir / "css" / "preview.css").write_text(".preview {}\n")

    resource_dir = tmp_path / "share" / ".restore"
    resource_dir.mkdir(parents=True)

    return {
        "web_root": str(web_root),
        "resource_dir": str(resource_dir),
        "assets_dir": str(assets_dir),
        "data_dir": str(tmp_path / "var"),
    }


@pytest.fixture
def restarter(appliance):
    return MirrorRestarter(
        os.path.join(appliance["resource_dir"], "fncs-tow"),
        appliance["web_root"],
    )


@pytest.fixture
def broadcaster():
    return LogBroadcaster(echo=False)


@pytest.fixture
def installer(broadcaster, appliance, restarter):
    return InstallManager(
        broadcaster,
        web_root=appliance["web_root"],
        resource_dir=appliance["resource_dir"],
        assets_dir=appliance["assets_dir"],
        restart=restarter,
    )


@pytest.fixture
def app_config(appliance):
    config = copy.deepcopy(DEFAULTS)
    config["paths"].update(appliance)
    config["logs"]["timezone"] = ""
    config["auth"]["kdf_rounds"] = 50
    return config


@pytest.fixture
def app(app_config, restarter):
    return create_app(config=app_config, restart=restarter)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def logged_in(client):
    """Client that already registered the admin password."""
    response = client.post("/register", data={"password": "abc123"})
    assert response.status_code == 200
    return client


@pytest.fixture
def original_index():
    return ORIGINAL_INDEX
