#!/usr/bin/env python3
"""
fn-shortcut - Entry Point
=========================
One-command startup for the fn-shortcut installer console.

Usage:
    python app.py                    # Start with default settings
    python app.py --port 9000        # Start on custom port
    python app.py --reset-password   # Forget the admin password and exit

This script:
    1. Creates config.yaml from config.yaml.example on first run
    2. Loads environment variables from .env (FN_SHORTCUT_* overrides)
    3. Creates the FastAPI web application
    4. Starts the uvicorn server

After starting, open the printed URL in a browser to access the console.
"""

import os
import sys
import shutil
import argparse
import uvicorn
from dotenv import load_dotenv


def main():
    """Parse arguments, load config, and start the web server."""

    # -- Parse command-line arguments ------------------------------------------
    parser = argparse.ArgumentParser(
        description="fn-shortcut - desktop file manager enhancer installer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--port", type=int, default=None,
        help="Port number for the web console (overrides config.yaml)",
    )
    parser.add_argument(
        "--host", type=str, default=None,
        help="Host binding address (overrides config.yaml)",
    )
    parser.add_argument(
        "--reset-password", action="store_true",
        help="Delete the stored admin password so the next visit shows registration",
    )
    args = parser.parse_args()

    # -- Resolve project directory ---------------------------------------------
    project_dir = os.path.dirname(os.path.abspath(__file__))

    # -- Ensure configuration file exists --------------------------------------
    config_path = os.path.join(project_dir, "config.yaml")
    config_example = os.path.join(project_dir, "config.yaml.example")
    if not os.path.exists(config_path) and os.path.exists(config_example):
        shutil.copy2(config_example, config_path)
        print(f"[INIT] Created config.yaml from template")

    # -- Load environment variables from .env ----------------------------------
    env_path = os.path.join(project_dir, ".env")
    if os.path.exists(env_path):
        load_dotenv(env_path)

    # Command-line args override config file (picked up by the app factory)
    if args.host:
        os.environ["FN_SHORTCUT_HOST"] = args.host
    if args.port:
        os.environ["FN_SHORTCUT_PORT"] = str(args.port)

    # -- Load configuration to get web server settings -------------------------
    from fnshortcut.config import ConfigManager
    config = ConfigManager(project_dir).load()
    if "_config_error" in config:
        print(f"[WARN] config.yaml ignored: {config['_config_error']}")

    if args.reset_password:
        from fnshortcut.auth import CredentialStore
        store = CredentialStore(config["paths"]["data_dir"])
        if store.reset():
            print(f"[INIT] Removed {store.password_file}")
        else:
            print("[INIT] No password was set")
        sys.exit(0)

    host = config["web"]["host"]
    port = config["web"]["port"]

    # -- Print startup banner --------------------------------------------------
    print()
    print(f"  fn-shortcut")
    print(f"  Console : http://{host}:{port}")
    print(f"  Web root: {config['paths']['web_root']}")
    print()

    # -- Start the web server --------------------------------------------------
    uvicorn.run(
        "fnshortcut.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    main()
