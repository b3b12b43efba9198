"""Zip archive extraction into a site directory.

Archives are expanded entry by entry. A corrupt archive or a failing entry is
logged and recorded, and extraction carries on with the rest, so a partly
broken upload still produces whatever could be written.

Premium sites are re-uploaded into a staging directory next to the live one.
``swap_directory`` moves it into place with two renames once the whole upload
has succeeded, so a failed upload never touches the files being served.
"""

from __future__ import annotations

import logging
import shutil
import zipfile
import zlib
from collections.abc import Iterable
from pathlib import Path

from .paths import canonicalize, is_blacklisted_extension, is_safe_relative_path, trim_common_directory_prefix
from .sites import Site, SiteFile, generate_token

_LOG = logging.getLogger(__name__)


class UnsafeEntryError(ValueError):
    """An archive entry would be written outside the site directory."""


def _entry_names(zf: zipfile.ZipFile) -> list[str]:
    """Normalized names for every entry, in archive order."""
    names = [canonicalize(info.filename).lstrip("/") for info in zf.infolist()]
    return trim_common_directory_prefix(names)


def _extract_entry(zf: zipfile.ZipFile, info: zipfile.ZipInfo, dest: Path) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    with zf.open(info) as src, open(dest, "wb") as dst:
        shutil.copyfileobj(src, dst)


def unpack_zip_files(zip_paths: Iterable[Path], site: Site) -> list[Exception]:
    """Extract zip archives into a site's directory.

    Entry names are canonicalized and the directory prefix common to all
    entries of one archive is removed, so a zip holding ``site/index.html``
    serves ``index.html`` at the root. Directories and blacklisted
    extensions are skipped. Every written entry is added to ``site``.

    Args:
        zip_paths: Archives to extract, in order. Later entries overwrite
            earlier ones with the same path.
        site: Destination site. Must not be registered yet.

    Returns:
        Errors recorded along the way, oldest first. Empty on full success.
    """
    errors: list[Exception] = []
    for zip_path in zip_paths:
        _LOG.info("Unpacking %s into %s", zip_path, site.directory)
        try:
            zf = zipfile.ZipFile(zip_path)
        except (OSError, zipfile.BadZipFile) as e:
            _LOG.error("Cannot open archive %s: %s", zip_path, e)
            errors.append(e)
            continue

        n_unpacked = 0
        with zf:
            for info, path in zip(zf.infolist(), _entry_names(zf)):
                if info.is_dir() or not path:
                    continue
                if is_blacklisted_extension(path):
                    _LOG.info("Skipping blacklisted file %s in %s", info.filename, zip_path)
                    continue
                if not is_safe_relative_path(path):
                    _LOG.warning("Skipping unsafe entry %s in %s", info.filename, zip_path)
                    errors.append(UnsafeEntryError(info.filename))
                    continue

                dest = site.directory / path
                try:
                    _extract_entry(zf, info, dest)
                except (OSError, zipfile.BadZipFile, zlib.error, EOFError, RuntimeError) as e:
                    _LOG.error("Failed to extract %s from %s to %s: %s", info.filename, zip_path, dest, e)
                    errors.append(e)
                    continue
                site.add_file(SiteFile(path, info.file_size, dest))
                n_unpacked += 1

        _LOG.info("Unpacked %d files from %s", n_unpacked, zip_path)
    return errors


# =============================================================================
# Premium staging
# =============================================================================


def staging_dir_for(live_dir: Path) -> Path:
    """Return a fresh, unique sibling directory for a premium re-upload."""
    return live_dir.with_name(f"{live_dir.name}-tmp-{generate_token()}")


def swap_directory(staging: Path, live: Path) -> Path | None:
    """Move ``staging`` into place as ``live``.

    The current live directory is renamed aside first, so ``live`` is
    missing only between two renames.

    Returns:
        Where the previous live directory now is, for the caller to delete
        once it no longer holds the registry lock. None if there was none.
    """
    old = None
    if live.exists():
        old = live.with_name(f"{live.name}-old-{generate_token()}")
        live.rename(old)
    try:
        staging.rename(live)
    except OSError:
        if old is not None:
            old.rename(live)
        raise
    _LOG.info("Swapped %s into %s", staging, live)
    return old


def remove_tree(path: Path) -> None:
    """Delete a directory tree, logging instead of raising on failure."""
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError as e:
        _LOG.error("Failed to remove %s: %s", path, e)
