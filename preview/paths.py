"""Path normalization helpers for uploaded file names.

Every name that arrives from a browser, a zip archive or a raw request path
passes through here before it touches the filesystem or the site registry:

    canonicalize("/foo/bar.html")             -> "foo/bar.html"
    is_blacklisted_extension("movie.MP4")     -> True
    trim_common_directory_prefix(["myproj/a.html", "myproj/css/b.css"])
                                              -> ["a.html", "css/b.css"]

All functions are pure and never raise for odd input.
"""

from __future__ import annotations

import posixpath
from collections.abc import Sequence

# =============================================================================
# Constants
# =============================================================================

BLACKLISTED_EXTENSIONS: frozenset[str] = frozenset({
    "exe",
    "mp4",
    "avi",
    "flv",
    "mpg",
    "mpeg",
    "mov",
    "mkv",
    "wmv",
    "dll",
    "so",
})
"""Extensions (lower-case, no dot) that are silently dropped from uploads."""


# =============================================================================
# Functions
# =============================================================================


def get_ext(path: str) -> str:
    """Return the lower-cased extension without the dot ("foo.BaR" -> "bar")."""
    return posixpath.splitext(path.replace("\\", "/"))[1].lower().lstrip(".")


def is_zip_file(path: str) -> bool:
    """Check whether a name looks like a zip archive."""
    return get_ext(path) == "zip"


def is_blacklisted_extension(path: str) -> bool:
    """Check whether a file should be skipped because of its extension.

    Args:
        path: File name or path, any case.

    Returns:
        True for executables, videos and shared libraries.
    """
    return get_ext(path) in BLACKLISTED_EXTENSIONS


def canonicalize(path: str) -> str:
    """Convert a Windows or browser-supplied path to a relative unix path.

    Backslashes become forward slashes and a single leading slash is removed.
    """
    path = path.replace("\\", "/")
    if path.startswith("/"):
        path = path[1:]
    return path


def trim_common_directory_prefix(paths: Sequence[str]) -> list[str]:
    """Strip the directory prefix shared by every path.

    When a folder like ``myproj/`` is dragged into the uploader, every file
    name starts with ``myproj/``. Removing it makes the folder's contents the
    site root. The longest common character prefix is backed off to the last
    ``/`` it contains so a path component is never split.

    Args:
        paths: Slash-separated paths.

    Returns:
        New list with the prefix removed, or a copy of the input when there
        are fewer than two paths or no shared directory.
    """
    result = list(paths)
    if len(result) < 2:
        return result

    shortest = min(len(p) for p in result)
    common = 0
    while common < shortest and all(p[common] == result[0][common] for p in result):
        common += 1

    cut = result[0].rfind("/", 0, common) + 1
    if cut == 0:
        return result
    return [p[cut:] for p in result]


def is_safe_relative_path(path: str) -> bool:
    """Check that a canonical path stays inside the directory it is joined to.

    Rejects empty names, absolute paths and any ``..`` component.
    """
    if not path or path.startswith("/"):
        return False
    parts = path.split("/")
    return ".." not in parts and all(parts[:-1])
