"""Tests for site selection and path resolution."""

from pathlib import Path

import pytest

from preview.resolver import ListFiles, NotFound, Redirect, ServeFile, SiteResolver, premium_name_from_host
from preview.sites import Site, SiteFile, SiteStore


def _site(name: str, paths: list[str], **kwargs) -> Site:
    site = Site(name=name, directory=Path("/srv") / name, **kwargs)
    for path in paths:
        site.add_file(SiteFile(path, 1, site.directory / path))
    return site


@pytest.fixture
def store():
    return SiteStore(domain="example.test")


@pytest.fixture
def resolver(store):
    return SiteResolver(store, "example.test")


@pytest.fixture
def site(store):
    s = _site("abc123", ["index.html", "about.html", "docs/index.html", "css/site.css"])
    store.register(s)
    return s


def _served(resolution) -> str:
    assert isinstance(resolution, ServeFile)
    return resolution.file.path


class TestPremiumNameFromHost:
    """Tests for premium_name_from_host."""

    def test_subdomain(self):
        assert premium_name_from_host("suma.example.test", "example.test") == "suma"

    def test_port_and_case(self):
        assert premium_name_from_host("Suma.Example.Test:8080", "example.test") == "suma"

    def test_apex_and_www(self):
        assert premium_name_from_host("example.test", "example.test") is None
        assert premium_name_from_host("www.example.test", "example.test") is None

    def test_nested_and_foreign(self):
        assert premium_name_from_host("a.b.example.test", "example.test") is None
        assert premium_name_from_host("suma.other.org", "example.test") is None
        assert premium_name_from_host("testserver", "example.test") is None

    def test_no_domain(self):
        assert premium_name_from_host("suma.example.test", "") is None


class TestSelectSite:
    """Tests for SiteResolver.select_site."""

    def test_by_path_token(self, resolver, site):
        assert resolver.select_site("example.test", "/p/abc123/about.html") == (site, "/about.html")

    def test_token_without_rest(self, resolver, site):
        assert resolver.select_site("example.test", "/p/abc123") == (site, "")

    def test_token_must_end_segment(self, resolver, site):
        assert resolver.select_site("example.test", "/p/abc123x/index.html") is None

    def test_unknown_token(self, resolver, site):
        assert resolver.select_site("example.test", "/p/zzzzzz/") is None
        assert resolver.select_site("example.test", "/index.html") is None

    def test_premium_by_host(self, resolver, store):
        premium = _site("suma", ["index.html"], is_premium=True, upload_password="pw")
        store.register(premium)
        assert resolver.select_site("suma.example.test", "/docs/") == (premium, "/docs/")

    def test_premium_takes_precedence(self, resolver, store, site):
        premium = _site("suma", ["index.html"], is_premium=True, upload_password="pw")
        store.register(premium)
        assert resolver.select_site("suma.example.test", "/p/abc123/") == (premium, "/p/abc123/")

    def test_unknown_premium_falls_back_to_path(self, resolver, site):
        assert resolver.select_site("nope.example.test", "/p/abc123/") == (site, "/")

    def test_temporary_site_not_selected_by_host(self, resolver, site):
        assert resolver.select_site("abc123.example.test", "/") is None


class TestResolve:
    """Tests for SiteResolver.resolve."""

    def test_empty_path_redirects(self, resolver, site):
        assert resolver.resolve(site, "") == Redirect("/p/abc123/")

    def test_empty_path_redirects_premium(self, resolver, store):
        premium = _site("suma", ["index.html"], is_premium=True, upload_password="pw")
        store.register(premium)
        assert resolver.resolve(premium, "") == Redirect("/")

    def test_root_serves_index(self, resolver, site):
        assert _served(resolver.resolve(site, "/")) == "index.html"

    def test_root_of_single_file_site(self, resolver, store):
        """A site with one file serves that file at its root."""
        single = _site("one111", ["notes.txt"])
        store.register(single)
        assert _served(resolver.resolve(single, "/")) == "notes.txt"

    def test_exact_match(self, resolver, site):
        assert _served(resolver.resolve(site, "/css/site.css")) == "css/site.css"

    def test_clean_url(self, resolver, site):
        assert _served(resolver.resolve(site, "/about")) == "about.html"

    def test_directory_index(self, resolver, site):
        assert _served(resolver.resolve(site, "/docs")) == "docs/index.html"
        assert _served(resolver.resolve(site, "/docs/")) == "docs/index.html"

    def test_list_files(self, resolver, site):
        resolution = resolver.resolve(site, "/_dir")
        assert isinstance(resolution, ListFiles)
        assert len(resolution.files) == 4
        assert resolution.is_spa is False

    def test_toggle_spa(self, resolver, store, site):
        assert resolver.resolve(site, "/_spa") == Redirect("_dir")
        assert store.files_of(site)[1] is True
        assert resolver.resolve(site, "/_spa", referer="http://example.test/p/abc123/x") == Redirect(
            "http://example.test/p/abc123/x"
        )
        assert store.files_of(site)[1] is False

    def test_unmatched_not_found(self, resolver, site):
        resolution = resolver.resolve(site, "/missing")
        assert isinstance(resolution, NotFound)
        assert resolution.path == "missing"
        assert len(resolution.files) == 4

    def test_spa_fallback(self, resolver, store, site):
        """SPA sites answer unknown paths with index.html."""
        store.toggle_spa(site.name)
        resolution = resolver.resolve(site, "/app/route/42")
        assert resolution == ServeFile(site.files[0])
        assert resolution.status_code == 200

    def test_custom_404(self, resolver, store):
        """The site's own 404.html is served with status 404."""
        s = _site("err404", ["index.html", "404.html"])
        store.register(s)
        resolution = resolver.resolve(s, "/missing")
        assert _served(resolution) == "404.html"
        assert resolution.status_code == 404

    def test_spa_takes_precedence_over_404(self, resolver, store):
        s = _site("spa404", ["index.html", "404.html"], is_spa=True)
        store.register(s)
        assert _served(resolver.resolve(s, "/missing")) == "index.html"

    def test_spa_without_index_uses_404(self, resolver, store):
        s = _site("noidx1", ["app.html", "404.html"], is_spa=True)
        store.register(s)
        assert _served(resolver.resolve(s, "/missing")) == "404.html"

    def test_spa_without_index_or_404(self, resolver, store):
        s = _site("noidx2", ["app.html", "b.html"], is_spa=True)
        store.register(s)
        assert isinstance(resolver.resolve(s, "/missing"), NotFound)
