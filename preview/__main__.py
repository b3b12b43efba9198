"""Instant Preview - server entry point.

    python -m preview --run
"""

import argparse
import logging
import sys

import uvicorn

from . import config
from .app import create_app

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

_LOG = logging.getLogger("preview")


def main(argv: list[str] | None = None) -> None:
    """Parse flags and run the server, or print usage."""
    parser = argparse.ArgumentParser(prog="preview", description="Instant static site previews")
    parser.add_argument("--run", action="store_true", help="run the server")
    args = parser.parse_args(argv)

    if not args.run:
        parser.print_help()
        return

    _LOG.info("Starting on %s:%d (data dir %s)", config.HOST, config.PORT, config.DATA_DIR)
    uvicorn.run(
        create_app(),
        host=config.HOST,
        port=config.PORT,
        timeout_keep_alive=config.REQUEST_TIMEOUT,
        timeout_graceful_shutdown=config.SHUTDOWN_GRACE,
        log_config=None,
    )


if __name__ == "__main__":
    main()
