"""Configuration for the preview service.

Values come from environment variables with defaults suited to the
container layout. ``Settings`` bundles them so every component receives its
configuration explicitly; tests build their own ``Settings`` over a temporary
directory.

Environment Variables:
    PREVIEW_DATA_DIR: Directory for temporary sites (wiped at startup)
    PREVIEW_PREMIUM_DIR: Directory for premium sites (persistent)
    PREVIEW_DOMAIN: Apex domain; ``{name}.{domain}`` selects a premium site
    PREVIEW_SITES_PASSWORD: Secret for the site listing endpoints
    PREVIEW_PREMIUM_SITES: Newline separated ``name,password`` records
    PREVIEW_SECRETS_FILE: File with the same ``name,password`` records
    PREVIEW_SITE_TTL: Lifetime of a temporary site in seconds
    PREVIEW_SWEEP_INTERVAL: Seconds between expiry sweeps
    PREVIEW_HOST / PREVIEW_PORT: Bind address for ``python -m preview --run``
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

# =============================================================================
# Environment
# =============================================================================

DATA_DIR: Path = Path(os.environ.get("PREVIEW_DATA_DIR", "/data/preview/sites"))
"""Directory where temporary sites are stored."""

PREMIUM_DIR: Path = Path(os.environ.get("PREVIEW_PREMIUM_DIR", "/data/preview/premium"))
"""Directory where premium sites are stored. Survives restarts."""

DOMAIN: str = os.environ.get("PREVIEW_DOMAIN", "instantpreview.dev").lower()
"""Apex domain the service is reachable under."""

SITES_PASSWORD: str = os.environ.get("PREVIEW_SITES_PASSWORD", "")
"""Shared secret for /sites and /api/sites.json. Empty disables both."""

PREMIUM_SITES: str = os.environ.get("PREVIEW_PREMIUM_SITES", "")
"""Premium site records from the environment."""

SECRETS_FILE: Path = Path(os.environ.get("PREVIEW_SECRETS_FILE", "/data/preview/secrets/premium.txt"))
"""Premium site records from a secrets file."""

SITE_TTL: int = int(os.environ.get("PREVIEW_SITE_TTL", str(2 * 60 * 60)))
"""Lifetime of a temporary site in seconds (2 hours)."""

SWEEP_INTERVAL: int = int(os.environ.get("PREVIEW_SWEEP_INTERVAL", str(60 * 60)))
"""Seconds between expiry sweeps (1 hour)."""

HOST: str = os.environ.get("PREVIEW_HOST", "0.0.0.0")
PORT: int = int(os.environ.get("PREVIEW_PORT", "8080"))

# =============================================================================
# Fixed limits
# =============================================================================

MAX_UPLOAD_SIZE: int = 20 * 1024 * 1024
"""Maximum upload size in bytes (20 MiB)."""

TOKEN_LENGTH: int = 6
"""Length of the random name given to a temporary site."""

REQUEST_TIMEOUT: int = 120
"""Idle/keep-alive timeout for client connections, in seconds."""

SHUTDOWN_GRACE: int = 5
"""Seconds to wait for in-flight requests on shutdown."""


@dataclass(frozen=True)
class Settings:
    """Runtime configuration passed to every component.

    Attributes:
        data_dir: Root for temporary sites.
        premium_dir: Root for premium sites.
        domain: Apex domain used for premium subdomain selection.
        sites_password: Secret guarding the site listing.
        premium_sites: Inline ``name,password`` records.
        secrets_file: File with ``name,password`` records.
        site_ttl: Temporary site lifetime in seconds.
        sweep_interval: Seconds between sweeps.
        max_upload_size: Upload ceiling in bytes.
    """

    data_dir: Path = DATA_DIR
    premium_dir: Path = PREMIUM_DIR
    domain: str = DOMAIN
    sites_password: str = SITES_PASSWORD
    premium_sites: str = PREMIUM_SITES
    secrets_file: Path | None = SECRETS_FILE
    site_ttl: float = SITE_TTL
    sweep_interval: float = SWEEP_INTERVAL
    max_upload_size: int = MAX_UPLOAD_SIZE
