# rlc/gce_metadata/log_utils.py
"""
Logging utility for cloud-init-friendly stdout/stderr output.

Library modules only log through ``logger``; handlers are installed by the
command line entry point calling ``setup_logging``.
"""

import logging
import sys
from typing import List

logger = logging.getLogger("rlc-gce-metadata")

# Transport underneath requests; its DEBUG records show each connection the
# probes and fetches open, including the ones that time out.
TRANSPORT_LOGGER = "urllib3"

LOG_FORMAT = "[%(levelname)s] %(message)s"


def _handlers(debug: bool) -> List[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    stdout_handler.addFilter(lambda record: record.levelno <= logging.INFO)
    stdout_handler.setFormatter(formatter)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    stderr_handler.setFormatter(formatter)

    return [stdout_handler, stderr_handler]


def setup_logging(debug: bool = False) -> None:
    """
    Send INFO and lower to stdout, warnings and errors to stderr.

    With ``debug``, probe outcomes and cache transitions become visible, and
    the urllib3 transport logger is routed to the same handlers so that the
    individual metadata requests show up too.
    """
    logger.setLevel(logging.DEBUG if debug else logging.INFO)

    # Avoid adding duplicate handlers
    if logger.hasHandlers():
        return

    for handler in _handlers(debug):
        logger.addHandler(handler)

    if debug:
        transport = logging.getLogger(TRANSPORT_LOGGER)
        transport.setLevel(logging.DEBUG)
        for handler in _handlers(debug):
            transport.addHandler(handler)
