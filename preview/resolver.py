"""Map an incoming request to a site and a file to serve.

Site selection:
    suma.instantpreview.dev/...      premium site "suma" (takes precedence)
    instantpreview.dev/p/abc123/...  temporary site "abc123"

File resolution, once the site prefix is stripped:
    ""                  redirect to the same URL with a trailing slash
    "_dir"              list the site's files
    "_spa"              toggle SPA mode, redirect back
    "foo"               foo, then foo.html, then foo/index.html
    unmatched           index.html (SPA sites), else 404.html, else a
                        "no such file" listing
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .sites import PATH_PREFIX, Site, SiteFile, SiteStore

_LOG = logging.getLogger(__name__)

LIST_FILES_PATH: str = "_dir"
"""Reserved path that shows the file listing of a site."""

TOGGLE_SPA_PATH: str = "_spa"
"""Reserved path that flips a site's SPA flag."""

INDEX_FILE: str = "index.html"
NOT_FOUND_FILE: str = "404.html"


def premium_name_from_host(host: str, domain: str) -> str | None:
    """Extract the premium site label from a request host.

    "suma.instantpreview.dev:443" -> "suma". Returns None for the apex
    domain, for ``www``, for nested labels and for foreign hosts.
    """
    host = host.split(":", 1)[0].lower().rstrip(".")
    if not domain or not host.endswith("." + domain):
        return None
    label = host[: -(len(domain) + 1)]
    if not label or "." in label or label == "www":
        return None
    return label


# =============================================================================
# Resolution results
# =============================================================================


@dataclass(frozen=True)
class Redirect:
    """Send the client to another URL (absolute path or relative reference)."""

    location: str


@dataclass(frozen=True)
class ListFiles:
    """Render the file listing page."""

    site: Site
    files: list[SiteFile]
    is_spa: bool


@dataclass(frozen=True)
class ServeFile:
    """Serve a file's bytes from disk."""

    file: SiteFile
    status_code: int = 200


@dataclass(frozen=True)
class NotFound:
    """Render the built-in "no such file" page with status 404."""

    site: Site
    path: str
    files: list[SiteFile]


Resolution = Redirect | ListFiles | ServeFile | NotFound


# =============================================================================
# Resolver
# =============================================================================


class SiteResolver:
    """Finds sites and files for GET requests."""

    def __init__(self, store: SiteStore, domain: str) -> None:
        self.store = store
        self.domain = domain

    def select_site(self, host: str, path: str) -> tuple[Site, str] | None:
        """Pick the site a request addresses.

        Args:
            host: Host header.
            path: Request path, starting with "/".

        Returns:
            The site and the path with the site prefix removed, or None.
        """
        label = premium_name_from_host(host, self.domain)
        if label is not None:
            site = self.store.find_premium(label)
            if site is not None:
                return site, path

        site = self.store.find_by_path_token(path)
        if site is None:
            return None
        rest = path[len(PATH_PREFIX) + len(site.name):]
        if rest and not rest.startswith("/"):
            return None
        return site, rest

    def resolve(self, site: Site, path: str, referer: str | None = None) -> Resolution:
        """Decide what to send for ``path`` within ``site``.

        Args:
            site: Site picked by ``select_site``.
            path: Path after the site prefix ("" or starting with "/").
            referer: Referer header, where ``_spa`` returns to.
        """
        if not path:
            root = "/" if site.is_premium else f"{PATH_PREFIX}{site.name}/"
            return Redirect(root)

        to_find = path[1:] if path.startswith("/") else path
        if to_find == LIST_FILES_PATH:
            files, is_spa = self.store.files_of(site)
            return ListFiles(site, files, is_spa)
        if to_find == TOGGLE_SPA_PATH:
            self.store.toggle_spa(site.name)
            return Redirect(referer or LIST_FILES_PATH)

        files, is_spa = self.store.files_of(site)
        file_index = None
        file_404 = None
        for f in files:
            if f.path == INDEX_FILE:
                file_index = f
            elif f.path == NOT_FOUND_FILE:
                file_404 = f

        if not to_find:
            to_find = files[0].path if len(files) == 1 else INDEX_FILE

        by_path = {f.path: f for f in files}
        candidates = [to_find, to_find + ".html", to_find.rstrip("/") + "/" + INDEX_FILE]
        for candidate in candidates:
            found = by_path.get(candidate)
            if found is not None:
                return ServeFile(found)

        if is_spa and file_index is not None:
            return ServeFile(file_index)
        if file_404 is not None:
            return ServeFile(file_404, status_code=404)
        _LOG.info("Site %s has no file %s", site.name, to_find)
        return NotFound(site, to_find, files)
