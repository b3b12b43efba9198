"""Background eviction of expired temporary sites."""

from __future__ import annotations

import logging
import threading
import time

from .archive import remove_tree
from .sites import SiteStore

_LOG = logging.getLogger(__name__)


class ExpirySweeper:
    """Periodically removes temporary sites older than the TTL.

    Runs on a daemon thread. Each tick drops expired sites from the registry
    under its lock, then deletes their directories after the lock is
    released. Premium sites are never touched.
    """

    def __init__(self, store: SiteStore, ttl: float, interval: float) -> None:
        """Initialize the sweeper.

        Args:
            store: Registry to sweep.
            ttl: Lifetime of a temporary site in seconds.
            interval: Seconds between sweeps.
        """
        self.store = store
        self.ttl = ttl
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def sweep_once(self, now: float | None = None) -> list[str]:
        """Evict expired sites and delete their files.

        Args:
            now: Current Unix time; defaults to ``time.time()``.

        Returns:
            Names of the evicted sites.
        """
        if now is None:
            now = time.time()
        expired = self.store.evict_expired(now, self.ttl)
        for site in expired:
            _LOG.info("Site %s expired after %.0fs, removing %s", site.name, now - site.created_at, site.directory)
            remove_tree(site.directory)
        if expired:
            _LOG.info("Sweep removed %d sites, %d remain", len(expired), len(self.store))
        return [site.name for site in expired]

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.sweep_once()
            except Exception as e:
                _LOG.exception("Error in expiry sweep: %s", e)

    def start(self) -> None:
        """Start the background thread. No-op if already running."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="expiry-sweeper", daemon=True)
        self._thread.start()
        _LOG.info("Expiry sweeper started (ttl=%ss, interval=%ss)", self.ttl, self.interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        """Signal the thread to exit and wait for it."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
