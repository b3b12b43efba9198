"""Turn one upload request into a registered site.

An upload arrives in one of three shapes, picked once by ``detect_upload_kind``:

    RAW             body is a single file named after the request path
    ARCHIVE         body is a zip archive (``*.zip`` path, ``/upload``, or
                    ``application/zip``)
    MULTIPART_FORM  ``multipart/form-data``; each file field name is the
                    file's path, zip fields are also expanded

Each shape has its own handler. All of them write into a working directory,
then ``_finish`` either registers the new temporary site or swaps the files
of a premium site in one step. Files are fully on disk before any reader can
see them.

Partial failure: in archive and form uploads a file that cannot be written is
logged and skipped while its siblings are kept. Nothing is rolled back; the
client sees the outcome only through the resulting file list.
"""

from __future__ import annotations

import enum
import hmac
import logging
import shutil
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO
from urllib.parse import quote

from .archive import remove_tree, staging_dir_for, swap_directory, unpack_zip_files
from .config import Settings
from .paths import canonicalize, is_blacklisted_extension, is_safe_relative_path, is_zip_file, trim_common_directory_prefix
from .resolver import premium_name_from_host
from .sites import PATH_PREFIX, DuplicateNameError, PreviewError, Site, SiteFile, SiteStore, generate_token, humanize_size

_LOG = logging.getLogger(__name__)

ZIP_UPLOAD_PATHS: frozenset[str] = frozenset({"/upload", "/api/upload", "/upload/api"})
"""Paths where a bare body is assumed to be a zip archive."""


class UploadKind(enum.Enum):
    """How the request body encodes the uploaded files."""

    RAW = "raw"
    MULTIPART_FORM = "multipart"
    ARCHIVE = "archive"


class UploadError(PreviewError):
    """An upload failed; carries the HTTP status to report.

    Attributes:
        status_code: 400 for bad client input, 500 for storage failures.
        message: Human-readable explanation sent to the client.
    """

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass
class UploadedPart:
    """One file field of a multipart form.

    Attributes:
        name: Field name, used as the file's path within the site.
        stream: Readable binary file object with the contents.
    """

    name: str
    stream: BinaryIO


@dataclass
class IngestResult:
    """Outcome of a successful upload.

    Attributes:
        site: The registered (or updated premium) site.
        url: Preview URL returned to the client.
        errors: Failures that were skipped over during a partial success.
    """

    site: Site
    url: str
    errors: list[Exception]


def detect_upload_kind(content_type: str | None, path: str) -> UploadKind:
    """Pick the ingest strategy for a request.

    Args:
        content_type: Value of the Content-Type header, may be empty.
        path: Request path, e.g. "/upload" or "/docs/readme.txt".
    """
    ct = (content_type or "").split(";", 1)[0].strip().lower()
    if ct == "multipart/form-data":
        return UploadKind.MULTIPART_FORM
    if ct in ("application/zip", "application/x-zip-compressed") or is_zip_file(path) or path in ZIP_UPLOAD_PATHS:
        return UploadKind.ARCHIVE
    return UploadKind.RAW


class UploadIngest:
    """Writes uploads to disk and registers the resulting sites."""

    def __init__(self, store: SiteStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings

    # -------------------------------------------------------------------------
    # Target selection
    # -------------------------------------------------------------------------

    def select_site(self, host: str, password: str | None = None, spa: bool = False) -> Site:
        """Find the premium site addressed by ``host`` or create a temporary one.

        The temporary site is not registered; ``ingest`` does that once its
        files are on disk.

        Raises:
            UploadError: ``host`` names an unknown premium site, or the
                password does not match.
        """
        label = premium_name_from_host(host, self.settings.domain)
        if label is None:
            name = self.store.new_name()
            return Site(name=name, directory=self.settings.data_dir / name, is_spa=spa)

        site = self.store.find_premium(label)
        if site is None:
            raise UploadError(
                400,
                f"Error: can't upload to '{host}'. Use https://{self.settings.domain} "
                f"or double-check name of premium site",
            )
        if not hmac.compare_digest(password or "", site.upload_password or ""):
            raise UploadError(400, f"Error: invalid password for premium site '{host}'")
        return site

    # -------------------------------------------------------------------------
    # Ingest
    # -------------------------------------------------------------------------

    def ingest(
        self,
        kind: UploadKind,
        site: Site,
        base_url: str,
        body: bytes = b"",
        request_path: str = "",
        parts: Iterable[UploadedPart] = (),
    ) -> IngestResult:
        """Store an upload and make it servable.

        Args:
            kind: Encoding of the upload, from ``detect_upload_kind``.
            site: Target from ``select_site``.
            base_url: Scheme and host the client used, for the result URL.
            body: Raw request body (RAW and ARCHIVE).
            request_path: Request path; names the file for RAW.
            parts: Form file fields (MULTIPART_FORM).

        Raises:
            UploadError: Nothing usable was uploaded or storage failed.
        """
        _LOG.info("Upload %s to site %s (premium=%s, dir=%s)", kind.value, site.name, site.is_premium, site.directory)
        try:
            work = self._working_site(site)
            try:
                if kind is UploadKind.MULTIPART_FORM:
                    errors = self._ingest_form(work, parts)
                else:
                    errors = self._ingest_body(kind, work, body, request_path)
            except UploadError:
                remove_tree(work.directory)
                raise
            return self._finish(site, work, errors, base_url)
        except Exception:
            self.abandon(site)
            raise

    def abandon(self, site: Site) -> None:
        """Give back the name of a temporary site that will not be registered."""
        if not site.is_premium:
            self.store.release(site.name)

    def _working_site(self, site: Site) -> Site:
        """Site object the handlers write into.

        A temporary site's directory is created here and must not exist yet,
        so two uploads never share one.
        """
        if site.is_premium:
            return Site(name=site.name, directory=staging_dir_for(site.directory))
        try:
            site.directory.mkdir(parents=True, exist_ok=False)
        except FileExistsError as e:
            _LOG.error("Directory %s of site %s already exists", site.directory, site.name)
            raise UploadError(500, f"Error: site '{site.name}' already exists") from e
        except OSError as e:
            _LOG.error("Failed to create %s: %s", site.directory, e)
            raise UploadError(500, f"Error: failed to store upload: {e}") from e
        return site

    def _ingest_body(self, kind: UploadKind, work: Site, body: bytes, request_path: str) -> list[Exception]:
        if not body:
            raise UploadError(400, "Error: empty upload")

        tmp_path = self.settings.data_dir / f"{generate_token()}.dat"
        try:
            try:
                tmp_path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path.write_bytes(body)
            except OSError as e:
                _LOG.error("Failed to write upload to %s: %s", tmp_path, e)
                raise UploadError(500, f"Error: failed to store upload: {e}") from e

            if kind is UploadKind.ARCHIVE:
                return unpack_zip_files([tmp_path], work)

            path = canonicalize(request_path).lstrip("/")
            if not is_safe_relative_path(path):
                raise UploadError(400, f"Error: invalid file name '{request_path}'")
            if is_blacklisted_extension(path):
                _LOG.info("Skipping blacklisted raw upload %s", path)
                return []
            dest = work.directory / path
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(tmp_path, dest)
            except OSError as e:
                _LOG.error("Failed to move %s to %s: %s", tmp_path, dest, e)
                raise UploadError(500, f"Error: failed to store '{path}': {e}") from e
            work.add_file(SiteFile(path, dest.stat().st_size, dest))
            return []
        finally:
            tmp_path.unlink(missing_ok=True)

    def _ingest_form(self, work: Site, parts: Iterable[UploadedPart]) -> list[Exception]:
        parts = [p for p in parts if not is_blacklisted_extension(p.name)]
        names = [canonicalize(p.name).lstrip("/") for p in parts]
        if not any(names):
            raise UploadError(400, "Error: no files")
        paths = trim_common_directory_prefix(names)

        errors: list[Exception] = []
        zip_files: list[Path] = []
        for part, path in zip(parts, paths):
            if not path:
                continue
            if not is_safe_relative_path(path):
                _LOG.warning("Skipping unsafe form file name %s", part.name)
                errors.append(UploadError(400, f"invalid file name '{part.name}'"))
                continue
            dest = work.directory / path
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
                with open(dest, "wb") as f:
                    shutil.copyfileobj(part.stream, f)
                    size = f.tell()
            except OSError as e:
                _LOG.error("Failed to save form file %s to %s: %s", part.name, dest, e)
                errors.append(e)
                continue
            _LOG.info("Saved form file %s as %s (%s)", part.name, dest, humanize_size(size))
            work.add_file(SiteFile(path, size, dest))
            if is_zip_file(path):
                zip_files.append(dest)

        _LOG.info("Form upload: %d files, %s", len(work.files), humanize_size(work.total_size))
        errors.extend(unpack_zip_files(zip_files, work))
        return errors

    # -------------------------------------------------------------------------
    # Commit
    # -------------------------------------------------------------------------

    def _finish(self, site: Site, work: Site, errors: list[Exception], base_url: str) -> IngestResult:
        if errors:
            _LOG.error("Upload to %s: %d errors, last: %s", site.name, len(errors), errors[-1])

        if not work.files:
            remove_tree(work.directory)
            if errors:
                raise UploadError(500, f"Error: upload failed: {errors[-1]}")
            raise UploadError(400, "Error: no files")

        if site.is_premium:
            self._commit_premium(site, work, errors)
        else:
            try:
                self.store.register(site)
            except DuplicateNameError as e:
                # the directory was created by this upload in _working_site
                remove_tree(site.directory)
                raise UploadError(500, f"Error: {e}") from e

        return IngestResult(site=site, url=self._result_url(site, work, base_url), errors=errors)

    def _commit_premium(self, site: Site, work: Site, errors: list[Exception]) -> None:
        current, _ = self.store.files_of(site)
        if errors and current:
            remove_tree(work.directory)
            raise UploadError(500, f"Error: upload failed, site '{site.name}' left unchanged: {errors[-1]}")

        replaced: list[Path | None] = []
        try:
            self.store.replace_files(
                site,
                [f.rebased(site.directory) for f in work.files],
                commit=lambda: replaced.append(swap_directory(work.directory, site.directory)),
            )
        except OSError as e:
            _LOG.error("Failed to swap %s into %s: %s", work.directory, site.directory, e)
            remove_tree(work.directory)
            raise UploadError(500, f"Error: failed to update site '{site.name}': {e}") from e
        if replaced and replaced[0] is not None:
            remove_tree(replaced[0])
        _LOG.info("Premium site %s updated: %d files, %s", site.name, len(work.files), humanize_size(work.total_size))

    def _result_url(self, site: Site, work: Site, base_url: str) -> str:
        base = base_url.rstrip("/")
        if site.is_premium:
            return f"{base}/"
        if len(work.files) > 1:
            return f"{base}{PATH_PREFIX}{site.name}/"
        return f"{base}{PATH_PREFIX}{site.name}/{quote(work.files[0].path)}"
