"""
fn-shortcut - Filesystem Helpers
================================
Small building blocks used by the install/restore engine: directory
creation with explicit modes, full-tree replacement, permission
normalization and zip packaging.

These helpers raise OSError (or shutil.Error) on failure; the engine
decides how to report it.
"""

import os
import shutil
import tempfile
import zipfile


DIR_MODE = 0o755
FILE_MODE = 0o644
PRIVATE_DIR_MODE = 0o700


def ensure_directory(path: str, mode: int = DIR_MODE) -> bool:
    """
    Create a directory (and parents) if missing and set its mode.

    Returns:
        True if the directory was created, False if it already existed.
    """
    if os.path.isdir(path):
        return False
    os.makedirs(path, exist_ok=True)
    os.chmod(path, mode)
    return True


def chmod_if_exists(path: str, mode: int) -> bool:
    """Set the mode of an existing path. Returns False if the path is missing."""
    if not os.path.exists(path):
        return False
    os.chmod(path, mode)
    return True


def clear_directory(path: str) -> None:
    """Delete everything inside a directory, keeping the directory itself."""
    with os.scandir(path) as entries:
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                shutil.rmtree(entry.path)
            else:
                os.unlink(entry.path)


def copy_tree(src: str, dst: str) -> None:
    """Recursively copy src into dst, merging over existing files. Symlinks stay links."""
    shutil.copytree(src, dst, symlinks=True, dirs_exist_ok=True)


def replace_tree(src: str, dst: str) -> None:
    """Make dst an exact recursive copy of src (previous contents are discarded)."""
    if os.path.isdir(dst):
        clear_directory(dst)
    copy_tree(src, dst)


def normalize_permissions(
    root: str,
    dir_mode: int = DIR_MODE,
    file_mode: int = FILE_MODE,
) -> list[str]:
    """
    Recursively set directory and file modes below (and including) root.

    Symlinks are left alone. Individual failures do not stop the walk.

    Returns:
        Paths whose mode could not be changed.
    """
    failed = []
    os.chmod(root, dir_mode)
    for current, dirs, files in os.walk(root):
        for name in dirs:
            path = os.path.join(current, name)
            if os.path.islink(path):
                continue
            try:
                os.chmod(path, dir_mode)
            except OSError:
                failed.append(path)
        for name in files:
            path = os.path.join(current, name)
            if os.path.islink(path):
                continue
            try:
                os.chmod(path, file_mode)
            except OSError:
                failed.append(path)
    return failed


def write_archive(src_dir: str, archive_path: str) -> int:
    """
    Package a directory into a zip file.

    Entry names are relative to src_dir. The archive is written to a
    temporary file next to archive_path and moved into place, so an
    interrupted run never leaves a truncated archive behind.

    Returns:
        Number of files written.
    """
    directory = os.path.dirname(os.path.abspath(archive_path))
    fd, tmp_path = tempfile.mkstemp(prefix=".archive-", suffix=".tmp", dir=directory)
    os.close(fd)
    count = 0
    try:
        with zipfile.ZipFile(tmp_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for current, dirs, files in os.walk(src_dir):
                dirs.sort()
                rel_dir = os.path.relpath(current, src_dir)
                if rel_dir != "." and not files and not dirs:
                    zf.write(current, rel_dir.replace(os.sep, "/") + "/")
                for name in sorted(files):
                    path = os.path.join(current, name)
                    arcname = os.path.relpath(path, src_dir).replace(os.sep, "/")
                    zf.write(path, arcname)
                    count += 1
        os.replace(tmp_path, archive_path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
    return count


def remove_path(path: str) -> bool:
    """Delete a file or directory tree. Returns False if nothing was there."""
    if os.path.islink(path) or os.path.isfile(path):
        os.unlink(path)
        return True
    if os.path.isdir(path):
        shutil.rmtree(path)
        return True
    return False
