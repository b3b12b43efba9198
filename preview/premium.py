"""Premium site configuration.

Premium sites are declared out of band as ``name,password`` records, one per
line, in ``PREVIEW_PREMIUM_SITES`` and/or the secrets file::

    suma,hunter2
    docs,correct-horse

At startup each record becomes a registered premium site whose files are
found by scanning ``{premium_dir}/{name}/``. Malformed lines are logged and
skipped.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from .archive import remove_tree
from .config import TOKEN_LENGTH, Settings
from .sites import DuplicateNameError, Site, SiteFile, SiteStore

_LOG = logging.getLogger(__name__)

PREMIUM_NAME_PATTERN: re.Pattern = re.compile(r"^[a-z0-9][a-z0-9-]{0,61}[a-z0-9]$|^[a-z0-9]$")
"""A premium name is a single DNS label."""

RESERVED_NAMES: frozenset[str] = frozenset({"www"})

STALE_DIR_PATTERN: re.Pattern = re.compile(rf"^(.+)-(?:tmp|old)-[a-z0-9]{{{TOKEN_LENGTH}}}$")
"""Names ``staging_dir_for`` and ``swap_directory`` give to transient directories."""


@dataclass(frozen=True)
class PremiumConfig:
    """One ``name,password`` record."""

    name: str
    password: str


def parse_premium_records(text: str) -> list[PremiumConfig]:
    """Parse newline separated ``name,password`` records.

    CRLF and CR line endings are accepted. Blank lines are ignored; lines
    without a comma, with an invalid name or with an empty password are
    logged and skipped.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    configs = []
    for lineno, line in enumerate(text.split("\n"), start=1):
        line = line.strip()
        if not line:
            continue
        name, sep, password = line.partition(",")
        name = name.strip().lower()
        password = password.strip()
        if not sep or not password:
            _LOG.warning("Premium config line %d: expected 'name,password', got %r", lineno, line)
            continue
        if not PREMIUM_NAME_PATTERN.match(name) or name in RESERVED_NAMES:
            _LOG.warning("Premium config line %d: invalid site name %r", lineno, name)
            continue
        configs.append(PremiumConfig(name, password))
    return configs


def load_premium_configs(settings: Settings) -> list[PremiumConfig]:
    """Collect records from the environment value and the secrets file."""
    configs = parse_premium_records(settings.premium_sites)
    path = settings.secrets_file
    if path is not None and path.exists():
        try:
            configs.extend(parse_premium_records(path.read_text()))
        except OSError as e:
            _LOG.error("Failed to read premium secrets file %s: %s", path, e)
    return configs


def scan_site_files(directory: Path) -> list[SiteFile]:
    """List every regular file under ``directory`` as site files."""
    files = []
    for root, dirs, names in os.walk(directory):
        dirs.sort()
        for fname in sorted(names):
            location = Path(root) / fname
            path = location.relative_to(directory).as_posix()
            files.append(SiteFile(path, location.stat().st_size, location))
    return files


def remove_stale_staging(premium_dir: Path, names: Iterable[str]) -> list[Path]:
    """Delete staging and replaced directories left behind by interrupted uploads.

    Args:
        premium_dir: Parent of the premium site directories.
        names: Configured premium names; their directories are never removed.

    Returns:
        The directories that were removed.
    """
    if not premium_dir.is_dir():
        return []
    names = set(names)
    removed = []
    for entry in sorted(premium_dir.iterdir()):
        m = STALE_DIR_PATTERN.match(entry.name)
        if m is None or entry.name in names or m.group(1) not in names or not entry.is_dir():
            continue
        _LOG.warning("Removing leftover directory %s of premium site %s", entry, m.group(1))
        remove_tree(entry)
        removed.append(entry)
    return removed


def load_premium_sites(store: SiteStore, settings: Settings) -> list[Site]:
    """Register a premium site for every configured record.

    Leftover staging directories of the configured sites are removed first.

    Returns:
        The sites that were registered.
    """
    configs = load_premium_configs(settings)
    remove_stale_staging(settings.premium_dir, (c.name for c in configs))
    sites = []
    for config in configs:
        directory = settings.premium_dir / config.name
        directory.mkdir(parents=True, exist_ok=True)
        site = Site(
            name=config.name,
            directory=directory,
            created_at=directory.stat().st_mtime,
            is_premium=True,
            upload_password=config.password,
        )
        for sf in scan_site_files(directory):
            site.add_file(sf)
        try:
            store.register(site)
        except DuplicateNameError:
            _LOG.warning("Premium site %s configured more than once, keeping the first", config.name)
            continue
        sites.append(site)
    return sites
