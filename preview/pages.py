"""Built-in HTML pages: file listing, missing file, and the site list."""

from __future__ import annotations

from datetime import UTC, datetime
from html import escape
from urllib.parse import quote

from .resolver import LIST_FILES_PATH, TOGGLE_SPA_PATH
from .sites import SiteFile, SiteSummary, humanize_size

_STYLE = """
<style>
  body { font-family: system-ui, sans-serif; margin: 2em; color: #222; }
  table { border-collapse: collapse; }
  td, th { padding: 2px 12px 2px 0; text-align: left; }
  .size { text-align: right; color: #666; }
</style>
"""


def _page(title: str, body: str) -> str:
    return (
        "<!doctype html>\n<html>\n<head>\n<meta charset=\"utf-8\">\n"
        f"<title>{escape(title)}</title>\n{_STYLE}</head>\n<body>\n{body}\n</body>\n</html>\n"
    )


def _file_rows(files: list[SiteFile], prefix: str) -> str:
    rows = []
    for f in files:
        href = prefix + quote(f.path)
        rows.append(
            f"<tr><td><a href=\"{escape(href)}\">{escape(f.path)}</a></td>"
            f"<td class=\"size\">{humanize_size(f.size)}</td></tr>"
        )
    return "<table>\n" + "\n".join(rows) + "\n</table>"


def render_file_list(name: str, files: list[SiteFile], is_spa: bool) -> str:
    """Page served for ``_dir``: every file with a link and the SPA toggle.

    Links are relative, so the page works under ``/p/{name}/`` and on a
    premium subdomain alike.
    """
    total = sum(f.size for f in files)
    spa = "on" if is_spa else "off"
    body = (
        f"<h2>Files in {escape(name)}</h2>\n"
        f"<p>{len(files)} files, {humanize_size(total)}. "
        f"Single-page app mode is <b>{spa}</b> "
        f"(<a href=\"{TOGGLE_SPA_PATH}\">toggle</a>).</p>\n"
        f"{_file_rows(files, '')}"
    )
    return _page(f"{name} files", body)


def render_not_found(name: str, path: str, files: list[SiteFile]) -> str:
    """Page for a path the site does not have and no fallback covers."""
    body = (
        f"<h2>Site {escape(name)} has no file <code>{escape(path)}</code></h2>\n"
        f"<p>It has these files (<a href=\"{escape(_site_relative(path))}{LIST_FILES_PATH}\">list</a>):</p>\n"
        f"{_file_rows(files, _site_relative(path))}"
    )
    return _page("File not found", body)


def _site_relative(path: str) -> str:
    """Relative prefix leading from ``path`` back to the site root."""
    depth = path.count("/")
    return "../" * depth


def render_sites(summaries: list[SiteSummary]) -> str:
    """Admin page listing every registered site."""
    rows = []
    for s in summaries:
        modified = datetime.fromtimestamp(s.created_at, UTC).strftime("%Y-%m-%d %H:%M")
        flags = ", ".join(flag for flag, on in (("premium", s.is_premium), ("spa", s.is_spa)) if on)
        rows.append(
            f"<tr><td><a href=\"{escape(s.url)}\">{escape(s.name)}</a></td>"
            f"<td class=\"size\">{s.file_count}</td>"
            f"<td class=\"size\">{humanize_size(s.total_size)}</td>"
            f"<td>{flags}</td><td>{modified}</td></tr>"
        )
    total = sum(s.total_size for s in summaries)
    body = (
        f"<h2>{len(summaries)} sites, {humanize_size(total)}</h2>\n"
        "<table>\n<tr><th>Name</th><th>Files</th><th>Size</th><th></th><th>Modified</th></tr>\n"
        + "\n".join(rows)
        + "\n</table>"
    )
    return _page("Sites", body)
