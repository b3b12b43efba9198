"""Tests for premium site configuration loading."""

import pytest

from preview.config import Settings
from preview.premium import (
    PremiumConfig,
    load_premium_configs,
    load_premium_sites,
    parse_premium_records,
    remove_stale_staging,
    scan_site_files,
)
from preview.sites import SiteStore


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_dir=tmp_path / "data",
        premium_dir=tmp_path / "premium",
        domain="example.test",
        premium_sites="suma,pw1",
        secrets_file=tmp_path / "premium.txt",
    )


class TestParsePremiumRecords:
    """Tests for parse_premium_records."""

    def test_valid_records(self):
        assert parse_premium_records("suma,pw1\ndocs,pw2\n") == [
            PremiumConfig("suma", "pw1"),
            PremiumConfig("docs", "pw2"),
        ]

    def test_line_endings_normalized(self):
        assert parse_premium_records("a,1\r\nb,2\rc,3") == [
            PremiumConfig("a", "1"),
            PremiumConfig("b", "2"),
            PremiumConfig("c", "3"),
        ]

    def test_malformed_lines_skipped(self, caplog):
        text = "no comma here\n,nopassword\nok,\nwww,pw\nbad name,pw\n\n  \ngood,pw\n"
        assert parse_premium_records(text) == [PremiumConfig("good", "pw")]
        assert "expected 'name,password'" in caplog.text

    def test_name_lowercased_and_trimmed(self):
        assert parse_premium_records("  Suma , pw \n") == [PremiumConfig("suma", "pw")]

    def test_password_may_contain_commas(self):
        assert parse_premium_records("suma,a,b") == [PremiumConfig("suma", "a,b")]


class TestLoading:
    """Tests for load_premium_configs, scan_site_files and load_premium_sites."""

    def test_env_and_file_combined(self, settings):
        settings.secrets_file.write_text("docs,pw2\r\n")
        assert load_premium_configs(settings) == [PremiumConfig("suma", "pw1"), PremiumConfig("docs", "pw2")]

    def test_missing_secrets_file(self, settings):
        assert load_premium_configs(settings) == [PremiumConfig("suma", "pw1")]

    def test_scan_site_files(self, tmp_path):
        (tmp_path / "sub").mkdir()
        (tmp_path / "index.html").write_text("home")
        (tmp_path / "sub" / "a.css").write_text("css!")
        files = scan_site_files(tmp_path)
        assert [(f.path, f.size) for f in files] == [("index.html", 4), ("sub/a.css", 4)]
        assert files[1].location == tmp_path / "sub" / "a.css"

    def test_sites_registered_with_files(self, settings):
        site_dir = settings.premium_dir / "suma"
        site_dir.mkdir(parents=True)
        (site_dir / "index.html").write_text("hello")
        store = SiteStore(domain="example.test")

        sites = load_premium_sites(store, settings)

        assert [s.name for s in sites] == ["suma"]
        site = store.find_premium("suma")
        assert site.upload_password == "pw1"
        assert [f.path for f in site.files] == ["index.html"]
        assert site.total_size == 5

    def test_new_site_gets_directory(self, settings):
        store = SiteStore(domain="example.test")
        load_premium_sites(store, settings)
        assert (settings.premium_dir / "suma").is_dir()
        assert store.find_premium("suma").files == []

    def test_duplicate_names_keep_first(self, settings):
        settings.secrets_file.write_text("suma,other\n")
        store = SiteStore(domain="example.test")
        sites = load_premium_sites(store, settings)
        assert len(sites) == 1
        assert store.find_premium("suma").upload_password == "pw1"

    def test_leftover_staging_removed(self, settings):
        """Staging and replaced directories of an interrupted upload are deleted at startup."""
        site_dir = settings.premium_dir / "suma"
        site_dir.mkdir(parents=True)
        (site_dir / "index.html").write_text("live")
        for name in ("suma-tmp-abc123", "suma-old-x1y2z3", "docs-tmp-abc123"):
            (settings.premium_dir / name).mkdir()
            (settings.premium_dir / name / "index.html").write_text("stale")

        load_premium_sites(SiteStore(domain="example.test"), settings)

        assert sorted(p.name for p in settings.premium_dir.iterdir()) == ["docs-tmp-abc123", "suma"]
        assert (site_dir / "index.html").read_text() == "live"

    def test_configured_name_like_staging_kept(self, settings):
        stale_looking = settings.premium_dir / "suma-tmp-abc123"
        stale_looking.mkdir(parents=True)

        removed = remove_stale_staging(settings.premium_dir, ["suma", "suma-tmp-abc123"])

        assert removed == []
        assert stale_looking.is_dir()
