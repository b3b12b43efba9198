"""Instant Preview - upload static files, get a URL that serves them.

This FastAPI service provides:

1. **Uploads**: any POST/PUT stores the body as a new temporary site
   - POST /upload, /api/upload - zip archive, raw file or multipart form
   - POST to ``{name}.{domain}`` with ``?pwd=`` - replace a premium site

2. **Serving**
   - GET /p/{token}/{path} - file of a temporary site
   - GET {name}.{domain}/{path} - file of a premium site
   - ``_dir`` and ``_spa`` under a site list files and toggle SPA mode

3. **Reporting**
   - GET /api/site-info.json?name= - files and SPA flag of one site
   - GET /api/summary.json - number and total size of sites
   - GET /api/sites.json?pwd=, GET /sites?pwd= - every site (password gated)
   - GET /ping - liveness

Temporary sites live for ``PREVIEW_SITE_TTL`` seconds; the data directory is
wiped on every start. Premium sites are loaded from configuration at startup
and never expire.
"""

from __future__ import annotations

import hmac
import logging
import mimetypes
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse, RedirectResponse, Response
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from .archive import remove_tree
from .config import Settings
from .ingest import IngestResult, UploadError, UploadIngest, UploadKind, UploadedPart, detect_upload_kind
from .pages import render_file_list, render_not_found, render_sites
from .premium import load_premium_sites
from .resolver import ListFiles, NotFound, Redirect, ServeFile, SiteResolver, premium_name_from_host
from .sites import Site, SiteStore, humanize_size
from .sweeper import ExpirySweeper

_LOG = logging.getLogger(__name__)

MAX_FORM_FILES: int = 10_000
"""Upper bound on file fields in one multipart upload (dragged folders)."""

router = APIRouter()


# =============================================================================
# Response Models
# =============================================================================


class FileInfo(BaseModel):
    """One file of a site."""

    Path: str
    Size: int


class SiteInfo(BaseModel):
    """Response of /api/site-info.json."""

    Files: list[FileInfo]
    IsSPA: bool


class Summary(BaseModel):
    """Response of /api/summary.json."""

    SitesCount: int
    SitesSize: int
    SitesSizeStr: str


class SiteListEntry(BaseModel):
    """One element of /api/sites.json."""

    Name: str
    FilesCount: int
    TotalSize: int
    TotalSizeStr: str
    IsSPA: bool
    IsPremium: bool
    URL: str
    LastModified: str


# =============================================================================
# Helpers
# =============================================================================


def _host(request: Request) -> str:
    return request.headers.get("host", "")


def _check_sites_password(settings: Settings, pwd: str | None) -> bool:
    """Constant-time check of the site listing password."""
    if not settings.sites_password or not pwd:
        return False
    return hmac.compare_digest(pwd, settings.sites_password)


async def _read_body(request: Request, limit: int) -> bytes:
    """Read the whole request body, failing once it grows past ``limit``."""
    chunks = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            raise UploadError(400, f"Error: upload too large, maximum is {humanize_size(limit)}")
        chunks.append(chunk)
    return b"".join(chunks)


# =============================================================================
# Upload Endpoints
# =============================================================================


@router.post("/upload")
@router.post("/api/upload")
@router.api_route("/{path:path}", methods=["POST", "PUT"])
async def upload(request: Request) -> PlainTextResponse:
    """Store an upload and reply with the preview URL as plain text."""
    state = request.app.state
    settings: Settings = state.settings
    ingest: UploadIngest = state.ingest

    content_length = request.headers.get("content-length", "")
    if content_length.isdigit() and int(content_length) > settings.max_upload_size:
        raise UploadError(400, f"Error: upload too large, maximum is {humanize_size(settings.max_upload_size)}")

    site = ingest.select_site(
        _host(request),
        password=request.query_params.get("pwd"),
        spa="spa" in request.url.query.lower(),
    )
    kind = detect_upload_kind(request.headers.get("content-type"), request.url.path)
    base_url = str(request.base_url)

    try:
        if kind is UploadKind.MULTIPART_FORM:
            result = await _ingest_form(request, ingest, site, base_url, settings.max_upload_size)
        else:
            body = await _read_body(request, settings.max_upload_size)
            result = await run_in_threadpool(
                ingest.ingest, kind, site, base_url, body=body, request_path=request.url.path
            )
    except BaseException:
        ingest.abandon(site)
        raise

    return PlainTextResponse(result.url)


async def _ingest_form(request: Request, ingest: UploadIngest, site: Site, base_url: str, limit: int) -> IngestResult:
    try:
        form = await request.form(max_files=MAX_FORM_FILES)
    except (StarletteHTTPException, MultiPartException) as e:
        detail = getattr(e, "detail", None) or getattr(e, "message", str(e))
        raise UploadError(400, f"Error: failed to parse multipart form: {detail}") from e
    try:
        files = [(name, value) for name, value in form.multi_items() if isinstance(value, UploadFile)]
        if sum(value.size or 0 for _, value in files) > limit:
            raise UploadError(400, f"Error: upload too large, maximum is {humanize_size(limit)}")
        parts = [UploadedPart(name, value.file) for name, value in files]
        return await run_in_threadpool(ingest.ingest, UploadKind.MULTIPART_FORM, site, base_url, parts=parts)
    finally:
        await form.close()


# =============================================================================
# Reporting Endpoints
# =============================================================================


@router.get("/ping")
def ping() -> PlainTextResponse:
    """Liveness check."""
    return PlainTextResponse("pong")


@router.get("/api/site-info.json", response_model=SiteInfo)
def site_info(request: Request, name: str | None = None) -> SiteInfo | Response:
    """Files and SPA flag of the site named by ``name`` or by the host."""
    store: SiteStore = request.app.state.store
    if not name:
        name = premium_name_from_host(_host(request), request.app.state.settings.domain)
    site = store.find_by_name(name) if name else None
    if site is None:
        return PlainTextResponse("Error: no such site", status_code=404)
    files, is_spa = store.files_of(site)
    return SiteInfo(Files=[FileInfo(Path=f.path, Size=f.size) for f in files], IsSPA=is_spa)


@router.get("/api/summary.json", response_model=Summary)
def summary(request: Request) -> Summary:
    """Number of sites and their combined size."""
    sites = request.app.state.store.snapshot()
    total = sum(s.total_size for s in sites)
    return Summary(SitesCount=len(sites), SitesSize=total, SitesSizeStr=humanize_size(total))


@router.get("/api/sites.json", response_model=list[SiteListEntry])
def sites_json(request: Request, pwd: str | None = None) -> list[SiteListEntry] | Response:
    """Every registered site. Requires the listing password."""
    if not _check_sites_password(request.app.state.settings, pwd):
        return PlainTextResponse("Not Found", status_code=404)
    return [
        SiteListEntry(
            Name=s.name,
            FilesCount=s.file_count,
            TotalSize=s.total_size,
            TotalSizeStr=humanize_size(s.total_size),
            IsSPA=s.is_spa,
            IsPremium=s.is_premium,
            URL=s.url,
            LastModified=datetime.fromtimestamp(s.created_at, UTC).isoformat(),
        )
        for s in request.app.state.store.snapshot()
    ]


@router.get("/sites", response_class=HTMLResponse)
def sites_page(request: Request, pwd: str | None = None) -> Response:
    """HTML listing of every site. Requires the listing password."""
    if not _check_sites_password(request.app.state.settings, pwd):
        return PlainTextResponse("Not Found", status_code=404)
    return HTMLResponse(render_sites(request.app.state.store.snapshot()))


# =============================================================================
# Site Serving
# =============================================================================


@router.api_route("/{path:path}", methods=["GET", "HEAD"])
def serve_site(request: Request, path: str = "") -> Response:
    """Serve a file of the site selected by subdomain or ``/p/{token}``."""
    resolver: SiteResolver = request.app.state.resolver
    selected = resolver.select_site(_host(request), request.url.path)
    if selected is None:
        return PlainTextResponse("Not Found", status_code=404)

    site, rest = selected
    resolution = resolver.resolve(site, rest, referer=request.headers.get("referer"))

    if isinstance(resolution, Redirect):
        return RedirectResponse(resolution.location, status_code=302)
    if isinstance(resolution, ListFiles):
        return HTMLResponse(render_file_list(site.name, resolution.files, resolution.is_spa))
    if isinstance(resolution, ServeFile):
        sf = resolution.file
        if not sf.location.is_file():
            _LOG.error("Site %s: file %s missing on disk at %s", site.name, sf.path, sf.location)
            return PlainTextResponse("Not Found", status_code=404)
        return FileResponse(sf.location, status_code=resolution.status_code, media_type=_media_type(sf.path))
    return HTMLResponse(render_not_found(site.name, resolution.path, resolution.files), status_code=404)


def _media_type(path: str) -> str:
    """Content type for a logical file path."""
    media_type, _ = mimetypes.guess_type(path)
    return media_type or "application/octet-stream"


# =============================================================================
# Application
# =============================================================================


def prepare_data_dir(settings: Settings) -> None:
    """Wipe temporary sites from a previous run and create the directories."""
    remove_tree(settings.data_dir)
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.premium_dir.mkdir(parents=True, exist_ok=True)


async def _upload_error(request: Request, exc: UploadError) -> PlainTextResponse:
    _LOG.info("Upload rejected (%d): %s", exc.status_code, exc.message)
    return PlainTextResponse(exc.message, status_code=exc.status_code)


async def _unhandled_error(request: Request, exc: Exception) -> PlainTextResponse:
    _LOG.exception("Unhandled error for %s %s: %s", request.method, request.url.path, exc)
    return PlainTextResponse("Internal Server Error", status_code=500)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application with its own registry and background sweeper.

    Args:
        settings: Configuration; defaults to the environment.
    """
    settings = settings or Settings()
    store = SiteStore(domain=settings.domain)
    sweeper = ExpirySweeper(store, ttl=settings.site_ttl, interval=settings.sweep_interval)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        prepare_data_dir(settings)
        premium = load_premium_sites(store, settings)
        _LOG.info("Loaded %d premium sites, data dir %s", len(premium), settings.data_dir)
        sweeper.start()
        try:
            yield
        finally:
            sweeper.stop()

    app = FastAPI(title="Instant Preview", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.ingest = UploadIngest(store, settings)
    app.state.resolver = SiteResolver(store, settings.domain)
    app.state.sweeper = sweeper
    app.add_exception_handler(UploadError, _upload_error)
    app.add_exception_handler(Exception, _unhandled_error)
    app.include_router(router)
    return app
