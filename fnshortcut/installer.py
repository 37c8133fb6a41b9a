"""
fn-shortcut - Install/Restore Engine
====================================
Applies or reverts the FileManagerEnhancer.js graft on the desktop web root.

States:
    - "absent"    : Web root untouched (or reverted)
    - "installed" : Script copied and referenced from the live index.html

Both procedures are best-effort: every step checks that its inputs exist,
logs what it did, and a failing step is reported through the log without
stopping the run. There is no rollback; each step is safe to repeat.

Paths (see config.yaml "paths"):
    web_root      /usr/trim/www               live desktop front end
    resource_dir  /usr/trim/share/.restore    staging copy and archives
        fncs-tow/                             staging copy of web_root
        www.zip                               primary archive
        www.bak                               rotated (previous) archive
    assets_dir    .../server/filedata         script bundle to graft

Usage:
    manager = InstallManager(broadcaster, paths, restart=CommandRestarter(...))
    ticket = manager.claim("install")
    if ticket:
        background_tasks.add_task(manager.run, "install", ticket)
    manager.check_ready()
"""

import itertools
import os
import shlex
import shutil
import subprocess
import threading
import zipfile
from typing import Callable

from fnshortcut import files, patcher
from fnshortcut.logs import LogBroadcaster


STAGING_DIRNAME = "fncs-tow"
PRIMARY_ARCHIVE = "www.zip"
ROTATED_ARCHIVE = "www.bak"

ACTIONS = ("install", "restore")

# Step-level failures the engine reports and moves past
STEP_ERRORS = (OSError, ValueError, shutil.Error, zipfile.BadZipFile)


class CommandRestarter:
    """
    Restarts the front-end web server by running an external command.

    The outcome (success, exit status, timeout, missing executable) is only
    logged; nothing is raised to the caller.
    """

    def __init__(self, command: str, timeout: float | None = 120):
        self.command = command
        self.timeout = timeout

    def __call__(self, log: Callable[[str], object]) -> bool:
        log("Restarting desktop service...")
        try:
            result = subprocess.run(
                shlex.split(self.command),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            log(f"Desktop service restart timed out after {self.timeout}s")
            return False
        except OSError as e:
            log(f"Failed to restart desktop service: {e}")
            return False

        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            message = f"Failed to restart desktop service: exit status {result.returncode}"
            log(f"{message}: {detail}" if detail else message)
            return False

        log("Desktop service restarted")
        return True


class InstallManager:
    """
    Runs install and restore against the web root.

    At most one procedure runs at a time: callers claim() the manager
    before dispatching run() to a worker, and run() releases it.

    Attributes:
        log:          Log broadcaster receiving progress lines.
        web_root:     Live desktop web root.
        resource_dir: Directory holding the staging copy and archives.
        assets_dir:   Script bundle copied into the web root.
        ready:        Last known readiness (set by the procedures and check_ready).
        current:      Name of the running action, or None.
    """

    def __init__(
        self,
        log: LogBroadcaster,
        web_root: str,
        resource_dir: str,
        assets_dir: str,
        restart: Callable[[Callable[[str], object]], object] | None = None,
    ):
        self.log = log
        self.web_root = web_root
        self.resource_dir = resource_dir
        self.assets_dir = assets_dir
        self.restart = restart or CommandRestarter("systemctl restart trim_nginx")
        self.ready = False
        self.current: str | None = None
        self._busy = threading.Lock()
        self._tickets = itertools.count(1)
        self._ticket: int | None = None
        self._status_error: str | None = None

    # -- Derived paths ---------------------------------------------------------

    @property
    def staging_dir(self) -> str:
        return os.path.join(self.resource_dir, STAGING_DIRNAME)

    @property
    def primary_archive(self) -> str:
        return os.path.join(self.resource_dir, PRIMARY_ARCHIVE)

    @property
    def rotated_archive(self) -> str:
        return os.path.join(self.resource_dir, ROTATED_ARCHIVE)

    @property
    def live_entry_html(self) -> str:
        return os.path.join(self.web_root, patcher.ENTRY_HTML)

    @property
    def live_script(self) -> str:
        return os.path.join(self.web_root, patcher.ASSET_DIRNAME, patcher.SCRIPT_NAME)

    # -- Status ----------------------------------------------------------------

    @property
    def is_busy(self) -> bool:
        return self._busy.locked()

    def check_ready(self) -> bool:
        """
        Recompute readiness from the filesystem.

        Ready means the script exists in the live web root and the live
        index.html references it. Never raises. A failure is logged once
        until it changes or clears, since the control page polls this.
        """
        ready = False
        try:
            if os.path.isfile(self.live_script) and os.path.isfile(self.live_entry_html):
                ready = patcher.has_reference(patcher.read_html(self.live_entry_html))
        except STEP_ERRORS as e:
            message = f"Error while checking status: {e}"
            if message != self._status_error:
                self.log.append(message)
            self._status_error = message
        else:
            self._status_error = None
        self.ready = ready
        return ready

    # -- Dispatch --------------------------------------------------------------

    def claim(self, action: str) -> int | None:
        """
        Reserve the manager for one action.

        Returns:
            A ticket to pass to run(), or None if another install/restore
            is still in flight.

        Raises:
            ValueError: If action is not "install" or "restore".
        """
        if action not in ACTIONS:
            raise ValueError(f"Unknown action: {action}")
        if not self._busy.acquire(blocking=False):
            return None
        self._ticket = next(self._tickets)
        self.current = action
        return self._ticket

    def run(self, action: str, ticket: int) -> None:
        """
        Execute a claimed action and release the claim afterwards.

        Raises:
            RuntimeError: If ticket does not hold the current claim for action.
        """
        if not self._busy.locked() or ticket != self._ticket or action != self.current:
            raise RuntimeError(f"{action} was not claimed with this ticket")
        try:
            if action == "install":
                self.install()
            else:
                self.restore()
        finally:
            self.current = None
            self._ticket = None
            self._busy.release()

    # -- Procedures ------------------------------------------------------------

    def install(self) -> None:
        """Apply the graft (absent -> installed)."""
        self.log.append("Starting service installation...")
        try:
            self._apply()
        except Exception as e:
            self.log.append(f"Error while applying configuration: {e}")
            self.log.append("Error recorded, continuing...")
        self.ready = True
        self.log.append("Service installation complete! Refresh the desktop page to use it")

    def restore(self) -> None:
        """Revert the graft (installed -> absent)."""
        self.log.append("Starting system restore...")
        try:
            self._revert()
        except Exception as e:
            self.log.append(f"Error while restoring configuration: {e}")
            self.log.append("Error recorded, continuing...")
        self.log.append("System restore complete!")

    def _apply(self) -> None:
        log = self.log.append
        staging = self.staging_dir
        log("Initializing configuration...")

        log("Checking directory structure...")
        self._step("Creating staging directory", self._ensure_staging)

        log("Copying files...")
        if os.path.isdir(self.web_root):
            log(f"Source directory: {self.web_root}")
            log(f"Target directory: {staging}")
            if self._step("Copying files", files.replace_tree, self.web_root, staging):
                log("File copy complete")
        else:
            log(f"Warning: source directory {self.web_root} does not exist")

        log("Checking backups...")
        self._step("Rotating backup", self._rotate_archive)

        log("Processing HTML file...")
        self._step("Patching HTML", self._patch_staging_html)

        log(f"Copying {patcher.ASSET_DIRNAME} directory...")
        self._step(f"Copying {patcher.ASSET_DIRNAME}", self._copy_assets)

        log("Creating archive...")
        if os.path.isdir(staging):
            if self._step("Creating archive", self._package):
                log(f"Backup created: {self.primary_archive}")
            self._step("Restarting desktop service", self.restart, log)
        else:
            log(f"Directory does not exist: {staging}")

        log("Configuration applied!")

    def _revert(self) -> None:
        log = self.log.append
        log("Restoring configuration...")

        self._step("Restoring backup", self._restore_archive)

        if os.path.isdir(self.staging_dir):
            if self._step("Removing staging directory", files.remove_path, self.staging_dir):
                log(f"Removed {STAGING_DIRNAME} directory")
        else:
            log(f"Directory does not exist: {self.staging_dir}")

        live_assets = os.path.join(self.web_root, patcher.ASSET_DIRNAME)
        if os.path.exists(live_assets):
            if self._step(f"Removing {patcher.ASSET_DIRNAME}", files.remove_path, live_assets):
                log(f"Removed {patcher.ASSET_DIRNAME} directory")
        else:
            log(f"Directory does not exist: {live_assets}")

        if os.path.isfile(self.live_entry_html):
            changed = self._step("Restoring index.html", patcher.unpatch_file, self.live_entry_html)
            if changed:
                log("Restored original index.html")
            elif changed is False:
                log("index.html has no script reference, nothing to remove")
        else:
            log(f"File does not exist: {self.live_entry_html}")

        self.ready = False
        self._step("Restarting desktop service", self.restart, log)
        log("Configuration restored!")

    # -- Steps -----------------------------------------------------------------

    def _step(self, label: str, func: Callable, *args):
        """Run one step; failures are logged and reported as None."""
        try:
            result = func(*args)
        except STEP_ERRORS as e:
            self.log.append(f"{label} failed: {e}")
            return None
        return True if result is None else result

    def _ensure_staging(self) -> None:
        if files.ensure_directory(self.staging_dir):
            self.log.append(f"Created directory: {self.staging_dir}")
        else:
            self.log.append(f"Directory exists: {self.staging_dir}")

    def _rotate_archive(self) -> None:
        primary, rotated = self.primary_archive, self.rotated_archive
        if os.path.exists(rotated):
            self.log.append(f"Backup already exists: {rotated}")
        elif os.path.exists(primary):
            os.rename(primary, rotated)
            self.log.append(f"Backed up: {primary} -> {rotated}")
        else:
            self.log.append(f"File does not exist: {primary}, nothing to back up")

    def _patch_staging_html(self) -> None:
        index = os.path.join(self.staging_dir, patcher.ENTRY_HTML)
        if not os.path.isfile(index):
            self.log.append(f"File does not exist: {index}")
            return
        self.log.append(f"Modifying file: {index}")
        result = patcher.patch_file(index)
        if result is patcher.PatchResult.NO_BODY_TAG:
            self.log.append(f"Modification failed, no <body> tag found: {index}")
            return
        if result is patcher.PatchResult.ALREADY_PRESENT:
            self.log.append(f"{patcher.SCRIPT_NAME} reference already present, skipping")
        files.chmod_if_exists(index, files.FILE_MODE)
        self.log.append(f"Modified successfully: {index}")

    def _copy_assets(self) -> None:
        if not os.path.isdir(self.assets_dir):
            self.log.append(f"Directory does not exist: {self.assets_dir}")
            return
        target = os.path.join(self.staging_dir, patcher.ASSET_DIRNAME)
        self.log.append(f"Copying: {self.assets_dir} -> {target}")
        files.copy_tree(self.assets_dir, target)
        for path in files.normalize_permissions(target):
            self.log.append(f"Could not set permissions: {path}")
        self.log.append(f"Copy complete: {target}")

    def _package(self) -> None:
        count = files.write_archive(self.staging_dir, self.primary_archive)
        files.chmod_if_exists(self.primary_archive, files.FILE_MODE)
        self.log.append(f"Archived {count} files")

    def _restore_archive(self) -> None:
        primary, rotated = self.primary_archive, self.rotated_archive
        if os.path.exists(rotated):
            self.log.append("Backup found, restoring...")
            if os.path.exists(primary):
                os.unlink(primary)
                self.log.append("Removed current archive")
            os.rename(rotated, primary)
            self.log.append("Backup restored")
        elif os.path.exists(primary):
            self.log.append("Primary archive found, using it as-is")
        else:
            self.log.append("No backup found, restore will be incomplete")
