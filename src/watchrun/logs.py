"""Logging setup for the command line."""

from __future__ import annotations

import logging
import sys


def configure_logging(verbose: bool = False) -> None:
    """Send watchrun logs to stderr; DEBUG when verbose, WARNING otherwise.

    Terminal output for events and results goes through Display, so the
    log stream stays quiet unless something goes wrong.
    """
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    date_format = "%H:%M:%S"

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter(log_format, datefmt=date_format))

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, handlers=[console], force=True)
    for noisy in ("watchdog", "asyncio", "aiohttp"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
