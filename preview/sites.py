"""In-memory site registry.

A *site* is a named bundle of uploaded files served under ``/p/{name}/`` or,
for premium sites, under ``{name}.{domain}``. The registry is the only state
shared between request threads and the expiry sweeper, so every read or write
of the collection, or of a registered site's file list and SPA flag, goes
through ``SiteStore``'s single lock.

Usage:
    store = SiteStore(domain="instantpreview.dev")
    store.new_name() -> "k3x9qa"           # reserved until register/release
    store.register(site)                   # DuplicateNameError on clash
    store.find_by_name("abc123") -> Site | None
    store.find_by_path_token("/p/abc123/index.html") -> Site | None
    store.files_of(site) -> (files, is_spa)
    store.toggle_spa("abc123") -> bool | None
    store.replace_files(site, files, commit=swap)
    store.evict_expired(now, ttl) -> list[Site]
    store.snapshot() -> list[SiteSummary]
"""

from __future__ import annotations

import logging
import secrets
import string
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from .config import TOKEN_LENGTH

_LOG = logging.getLogger(__name__)

PATH_PREFIX: str = "/p/"
"""Request path prefix that selects a temporary site by token."""

_TOKEN_ALPHABET: str = string.ascii_lowercase + string.digits


# =============================================================================
# Errors
# =============================================================================


class PreviewError(Exception):
    """Base class for errors raised by the preview service."""


class DuplicateNameError(PreviewError):
    """A site with the same name is already registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"site '{name}' already exists")
        self.name = name


# =============================================================================
# Data Model
# =============================================================================


@dataclass(frozen=True)
class SiteFile:
    """One served file.

    Attributes:
        path: Logical path, slash separated, relative, no leading slash.
        size: Size in bytes.
        location: Absolute location on disk.
    """

    path: str
    size: int
    location: Path

    def rebased(self, directory: Path) -> SiteFile:
        """Return the same file relocated under another site directory."""
        return SiteFile(self.path, self.size, directory / self.path)


@dataclass
class Site:
    """One hosted bundle of files.

    ``name``, ``directory`` and ``is_premium`` never change once the site is
    created. ``files``, ``total_size`` and ``is_spa`` of a registered site are
    only changed through ``SiteStore``.
    """

    name: str
    directory: Path
    created_at: float = field(default_factory=time.time)
    files: list[SiteFile] = field(default_factory=list)
    total_size: int = 0
    is_spa: bool = False
    is_premium: bool = False
    upload_password: str | None = None
    _index: dict[str, int] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.is_premium and not self.upload_password:
            raise ValueError(f"premium site '{self.name}' needs an upload password")
        self._index = {f.path: i for i, f in enumerate(self.files)}

    def add_file(self, sf: SiteFile) -> None:
        """Append a file. A file with the same path is replaced in place."""
        i = self._index.get(sf.path)
        if i is None:
            self._index[sf.path] = len(self.files)
            self.files.append(sf)
        else:
            self.total_size -= self.files[i].size
            self.files[i] = sf
        self.total_size += sf.size

    def set_files(self, files: list[SiteFile]) -> None:
        """Replace the whole file set."""
        self.files = files
        self.total_size = sum(f.size for f in files)
        self._index = {f.path: i for i, f in enumerate(files)}


@dataclass(frozen=True)
class SiteSummary:
    """Read-only view of a site for reporting endpoints."""

    name: str
    file_count: int
    total_size: int
    is_spa: bool
    is_premium: bool
    url: str
    created_at: float


# =============================================================================
# Helpers
# =============================================================================


def generate_token(length: int = TOKEN_LENGTH) -> str:
    """Generate a random lowercase alphanumeric site name."""
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


def humanize_size(n: int) -> str:
    """Format a byte count for display ("1.50 MB", "12 kB", "7 B")."""
    kb = 1024
    mb = kb * 1024
    gb = mb * 1024
    tb = gb * 1024

    def fmt(d: int, unit: str) -> str:
        s = f"{n / d:.2f}"
        if s.endswith(".00"):
            s = s[:-3]
        return f"{s} {unit}"

    if n > tb:
        return fmt(tb, "TB")
    if n > gb:
        return fmt(gb, "GB")
    if n > mb:
        return fmt(mb, "MB")
    if n > kb:
        return fmt(kb, "kB")
    return f"{n} B"


# =============================================================================
# Registry
# =============================================================================


class SiteStore:
    """Thread-safe registry of all known sites.

    One lock guards the name -> site mapping and the mutable fields of every
    registered site. Filesystem work is never done while holding it, except
    for the directory renames passed to ``replace_files``.
    """

    def __init__(self, domain: str = "", token_length: int = TOKEN_LENGTH) -> None:
        """Initialize an empty registry.

        Args:
            domain: Apex domain, used to build site URLs in summaries.
            token_length: Length of temporary site names.
        """
        self.domain = domain
        self.token_length = token_length
        self._sites: dict[str, Site] = {}
        self._pending: set[str] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sites)

    def register(self, site: Site) -> None:
        """Add a site to the registry.

        Raises:
            DuplicateNameError: A site with this name is already registered.
        """
        with self._lock:
            if site.name in self._sites:
                raise DuplicateNameError(site.name)
            self._sites[site.name] = site
            self._pending.discard(site.name)
        _LOG.info(
            "Registered site %s (%d files, %s, premium=%s)",
            site.name, len(site.files), humanize_size(site.total_size), site.is_premium
        )

    def new_name(self) -> str:
        """Reserve a random token that is neither registered nor reserved.

        The reservation lasts until the name is registered or handed back
        with ``release``.
        """
        while True:
            name = generate_token(self.token_length)
            with self._lock:
                if name not in self._sites and name not in self._pending:
                    self._pending.add(name)
                    return name

    def release(self, name: str) -> None:
        """Drop the reservation of a name that will not be registered."""
        with self._lock:
            self._pending.discard(name)

    def find_by_name(self, name: str) -> Site | None:
        """Return the site with exactly this name, or None."""
        with self._lock:
            return self._sites.get(name)

    def find_by_path_token(self, path: str) -> Site | None:
        """Return the site selected by a ``/p/{token}/...`` request path."""
        if not path.startswith(PATH_PREFIX):
            return None
        token = path[len(PATH_PREFIX):len(PATH_PREFIX) + self.token_length]
        if len(token) != self.token_length:
            return None
        return self.find_by_name(token)

    def find_premium(self, name: str) -> Site | None:
        """Return the premium site with this name, or None."""
        site = self.find_by_name(name)
        if site is None or not site.is_premium:
            return None
        return site

    def files_of(self, site: Site) -> tuple[list[SiteFile], bool]:
        """Return a consistent copy of a site's files and its SPA flag."""
        with self._lock:
            return list(site.files), site.is_spa

    def toggle_spa(self, name: str) -> bool | None:
        """Flip the SPA flag of a site.

        Returns:
            The new flag value, or None if the site is not registered.
        """
        with self._lock:
            site = self._sites.get(name)
            if site is None:
                return None
            site.is_spa = not site.is_spa
            is_spa = site.is_spa
        _LOG.info("Site %s: SPA mode %s", name, "on" if is_spa else "off")
        return is_spa

    def replace_files(
        self,
        site: Site,
        files: Iterable[SiteFile],
        commit: Callable[[], None] | None = None,
    ) -> None:
        """Replace a site's whole file set in one step.

        Concurrent readers see either the old or the new set, never a mix.

        Args:
            site: Site to update (usually a premium site being re-uploaded).
            files: The new file set.
            commit: Optional callable run under the lock before the swap,
                used to move the new directory into place.
        """
        files = list(files)
        with self._lock:
            if commit is not None:
                commit()
            site.set_files(files)
            site.created_at = time.time()

    def evict_expired(self, now: float, ttl: float) -> list[Site]:
        """Drop temporary sites older than ``ttl`` seconds.

        A single pass builds the retained mapping, which then replaces the
        registry's. Premium sites are always kept.

        Returns:
            The evicted sites, whose directories the caller should remove.
        """
        expired: list[Site] = []
        with self._lock:
            kept: dict[str, Site] = {}
            for name, site in self._sites.items():
                if not site.is_premium and now - site.created_at > ttl:
                    expired.append(site)
                else:
                    kept[name] = site
            self._sites = kept
        return expired

    def url_for(self, site: Site) -> str:
        """Public URL of a site's root."""
        if site.is_premium:
            return f"https://{site.name}.{self.domain}/"
        return f"https://{self.domain}{PATH_PREFIX}{site.name}/"

    def snapshot(self) -> list[SiteSummary]:
        """Return summaries of every registered site, in registration order."""
        with self._lock:
            return [
                SiteSummary(
                    name=site.name,
                    file_count=len(site.files),
                    total_size=site.total_size,
                    is_spa=site.is_spa,
                    is_premium=site.is_premium,
                    url=self.url_for(site),
                    created_at=site.created_at,
                )
                for site in self._sites.values()
            ]
