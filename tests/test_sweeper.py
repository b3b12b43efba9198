"""Tests for the ExpirySweeper."""

import time

import pytest

from preview.resolver import SiteResolver
from preview.sites import Site, SiteStore
from preview.sweeper import ExpirySweeper

TTL = 2 * 60 * 60
INTERVAL = 60 * 60


@pytest.fixture
def store():
    return SiteStore(domain="example.test")


def _make_site(tmp_path, name, created_at, **kwargs) -> Site:
    directory = tmp_path / name
    directory.mkdir()
    (directory / "index.html").write_text(name)
    return Site(name=name, directory=directory, created_at=created_at, **kwargs)


class TestSweepOnce:
    """Tests for ExpirySweeper.sweep_once."""

    def test_site_lifecycle(self, store, tmp_path):
        """Resolvable just before the TTL, gone with its files after the next sweep."""
        t0 = 1_000_000.0
        site = _make_site(tmp_path, "abc123", t0)
        store.register(site)
        sweeper = ExpirySweeper(store, ttl=TTL, interval=INTERVAL)
        resolver = SiteResolver(store, "example.test")

        assert sweeper.sweep_once(now=t0 + TTL - 1) == []
        assert resolver.select_site("example.test", "/p/abc123/") is not None
        assert site.directory.exists()

        assert sweeper.sweep_once(now=t0 + TTL + INTERVAL) == ["abc123"]
        assert resolver.select_site("example.test", "/p/abc123/") is None
        assert not site.directory.exists()

    def test_premium_never_expires(self, store, tmp_path):
        t0 = 1_000_000.0
        premium = _make_site(tmp_path, "suma", t0, is_premium=True, upload_password="pw")
        store.register(premium)
        sweeper = ExpirySweeper(store, ttl=TTL, interval=INTERVAL)

        assert sweeper.sweep_once(now=t0 + 10 * TTL) == []
        assert store.find_by_name("suma") is premium
        assert premium.directory.exists()

    def test_mixed(self, store, tmp_path):
        now = time.time()
        store.register(_make_site(tmp_path, "old001", now - TTL - 5))
        store.register(_make_site(tmp_path, "old002", now - TTL - 1))
        store.register(_make_site(tmp_path, "new001", now))
        sweeper = ExpirySweeper(store, ttl=TTL, interval=INTERVAL)

        assert sorted(sweeper.sweep_once(now=now)) == ["old001", "old002"]
        assert [s.name for s in store.snapshot()] == ["new001"]

    def test_missing_directory_is_not_fatal(self, store, tmp_path):
        site = Site(name="gone00", directory=tmp_path / "gone00", created_at=0)
        store.register(site)
        sweeper = ExpirySweeper(store, ttl=TTL, interval=INTERVAL)
        assert sweeper.sweep_once(now=TTL + 1) == ["gone00"]


class TestBackgroundThread:
    """Tests for start/stop of the sweeper thread."""

    def test_thread_evicts(self, store, tmp_path):
        site = _make_site(tmp_path, "abc123", time.time() - 10)
        store.register(site)
        sweeper = ExpirySweeper(store, ttl=1, interval=0.01)
        sweeper.start()
        try:
            deadline = time.time() + 5
            while store.find_by_name("abc123") is not None and time.time() < deadline:
                time.sleep(0.01)
        finally:
            sweeper.stop()
        assert store.find_by_name("abc123") is None
        assert not site.directory.exists()

    def test_stop_without_start(self, store):
        ExpirySweeper(store, ttl=TTL, interval=INTERVAL).stop()
