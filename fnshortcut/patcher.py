"""
fn-shortcut - Entry HTML Patcher
================================
Injects and removes the FileManagerEnhancer.js <script> reference in the
desktop's index.html.

The injected snippet is a newline, four spaces and the script tag, placed
right after the opening <body> tag:

    <body>
        <script src="./filedata/FileManagerEnhancer.js?v=1718000000000"></script>

Removing exactly that snippet gives back the original bytes.
Files are read and written with surrogateescape and no newline
translation so that nothing else in the document changes.
"""

import enum
import re
import time


SCRIPT_NAME = "FileManagerEnhancer.js"
ASSET_DIRNAME = "filedata"
ENTRY_HTML = "index.html"
SCRIPT_SRC = f"./{ASSET_DIRNAME}/{SCRIPT_NAME}"

_BODY_TAG = re.compile(r"<body\b[^>]*>", re.IGNORECASE)
_INJECTED = re.compile(
    r'\n    <script src="\./filedata/FileManagerEnhancer\.js\?v=\d*"></script>'
)
# Hand-edited documents: any whitespace around the tag, any query string
_LOOSE = re.compile(
    r'[ \t]*<script src="\./filedata/FileManagerEnhancer\.js[^"]*"></script>[ \t]*(\r?\n)?'
)


class PatchResult(enum.Enum):
    INJECTED = "injected"
    ALREADY_PRESENT = "already_present"
    NO_BODY_TAG = "no_body_tag"


def has_reference(content: str) -> bool:
    """True if the document already references the enhancer script."""
    return SCRIPT_NAME in content


def script_tag(version: int | None = None) -> str:
    """Build the <script> element; version busts browser caches (ms timestamp)."""
    if version is None:
        version = int(time.time() * 1000)
    return f'<script src="{SCRIPT_SRC}?v={version}"></script>'


def inject_reference(content: str, version: int | None = None) -> tuple[str, PatchResult]:
    """
    Insert the script reference after the first opening body tag.

    Returns:
        (new content, result). Content is unchanged unless result is INJECTED.
    """
    if has_reference(content):
        return content, PatchResult.ALREADY_PRESENT
    match = _BODY_TAG.search(content)
    if match is None:
        return content, PatchResult.NO_BODY_TAG
    end = match.end()
    patched = content[:end] + "\n    " + script_tag(version) + content[end:]
    return patched, PatchResult.INJECTED


def strip_reference(content: str) -> tuple[str, bool]:
    """
    Remove the injected script reference.

    Returns:
        (new content, changed).
    """
    stripped, count = _INJECTED.subn("", content, count=1)
    if count:
        return stripped, True
    stripped, count = _LOOSE.subn("", content, count=1)
    return stripped, bool(count)


def read_html(path: str) -> str:
    with open(path, "r", encoding="utf-8", errors="surrogateescape", newline="") as f:
        return f.read()


def write_html(path: str, content: str) -> None:
    with open(path, "w", encoding="utf-8", errors="surrogateescape", newline="") as f:
        f.write(content)


def patch_file(path: str, version: int | None = None) -> PatchResult:
    """Inject the reference into an HTML file in place (write only on change)."""
    content, result = inject_reference(read_html(path), version)
    if result is PatchResult.INJECTED:
        write_html(path, content)
    return result


def unpatch_file(path: str) -> bool:
    """Strip the reference from an HTML file in place. Returns True if it changed."""
    content, changed = strip_reference(read_html(path))
    if changed:
        write_html(path, content)
    return changed
