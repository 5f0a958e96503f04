"""
RLC GCE Metadata - On-GCE Detection

Decides once whether the process runs on Google Compute Engine. A metadata
host override is trusted outright; otherwise an HTTP probe for the
``Metadata-Flavor`` response header and a DNS probe for the metadata
hostname are raced against one shared timeout, and the first positive
answer wins.
"""

import queue
import socket
import threading
import time
from functools import partial
from typing import Callable, Dict, Mapping, Optional

from .cache import OnceCell
from .config import METADATA_FLAVOR_HEADER, METADATA_FLAVOR_VALUE, MetadataConfig
from .errors import TransportError
from .fetcher import MetadataFetcher
from .log_utils import logger

DMI_PRODUCT_NAME = "/sys/class/dmi/id/product_name"
GCE_PRODUCT_NAMES = {"Google", "Google Compute Engine"}

Probe = Callable[[], bool]


def has_meta_header(fetcher: MetadataFetcher, url: str) -> bool:
    """
    Check whether ``url`` answers with ``Metadata-Flavor: Google``.

    Returns:
        bool: False on any transport failure.
    """
    try:
        resp = fetcher.request(url)
    except TransportError as e:
        logger.debug(f"Header probe of {url} failed: {e.reason}")
        return False

    flavor = resp.headers.get(METADATA_FLAVOR_HEADER)
    logger.debug(f"Header probe of {url}: {METADATA_FLAVOR_HEADER}={flavor!r}")
    return flavor == METADATA_FLAVOR_VALUE


def has_target_ip(host: str, expected_ip: Optional[str] = None) -> bool:
    """
    Check whether ``host`` resolves.

    Args:
        host (str): Hostname to resolve.
        expected_ip (str): If given, one of the resolved addresses must be
            exactly this one.

    Returns:
        bool: False if resolution fails.
    """
    try:
        infos = socket.getaddrinfo(host, None)
    except (OSError, UnicodeError) as e:
        logger.debug(f"DNS probe of {host} failed: {e}")
        return False

    addresses = {info[4][0] for info in infos}
    logger.debug(f"DNS probe of {host} resolved to {sorted(addresses)}")
    if expected_ip is None:
        return bool(addresses)
    return expected_ip in addresses


def bios_reports_gce(path: str = DMI_PRODUCT_NAME) -> bool:
    """
    Check the DMI product name for a Google machine. Only meaningful on
    Linux; anywhere the file cannot be read this is False.
    """
    try:
        with open(path) as f:
            product_name = f.read().strip()
    except OSError:
        return False
    return product_name in GCE_PRODUCT_NAMES


def _run_probe(name: str, probe: Probe, results: "queue.Queue") -> None:
    try:
        ok = bool(probe())
    except Exception as e:
        logger.debug(f"Probe {name} raised: {e}")
        ok = False
    results.put((name, ok))


def race_probes(probes: Mapping[str, Probe], timeout: float) -> bool:
    """
    Run all probes concurrently and report whether any succeeded in time.

    Every probe runs on its own daemon thread and reports into a queue that
    only this call reads. The call returns on the first positive result, or
    False once every probe reported False or ``timeout`` seconds passed.
    Probes still running at that point are abandoned; their results go to
    the discarded queue.

    Args:
        probes (Mapping[str, Probe]): Probe name to zero-argument callable.
        timeout (float): One deadline shared by all probes, in seconds.

    Returns:
        bool: True if some probe returned True before the deadline.
    """
    results: "queue.Queue" = queue.Queue()
    for name, probe in probes.items():
        threading.Thread(
            target=_run_probe,
            args=(name, probe, results),
            name=f"gce-probe-{name}",
            daemon=True,
        ).start()

    deadline = time.monotonic() + timeout
    for _ in range(len(probes)):
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        try:
            name, ok = results.get(timeout=remaining)
        except queue.Empty:
            break
        if ok:
            logger.debug(f"Probe {name} succeeded")
            return True
    else:
        logger.debug("All on-GCE probes reported false")
        return False

    logger.debug(f"No on-GCE probe succeeded within {timeout}s")
    return False


class GceDetector:
    """
    Memoized on-GCE detection.

    Args:
        config (MetadataConfig): Supplies the override flag, probe targets and
            the race timeout.
        fetcher (MetadataFetcher): Used by the header probe.
        probes (Mapping[str, Probe]): Replaces the default header and DNS
            probes.
    """

    def __init__(
        self,
        config: MetadataConfig,
        fetcher: MetadataFetcher,
        probes: Optional[Mapping[str, Probe]] = None,
    ):
        self.config = config
        self.fetcher = fetcher
        self._probes = probes
        self._cell: OnceCell[bool] = OnceCell("on_gce")

    def probes(self) -> Dict[str, Probe]:
        if self._probes is not None:
            return dict(self._probes)
        return {
            "metadata-header": partial(has_meta_header, self.fetcher, self.config.probe_url),
            "metadata-dns": partial(has_target_ip, self.config.metadata_hostname),
        }

    def on_gce(self) -> bool:
        """Report whether this process runs on GCE. Probes at most once."""
        return self._cell.get_or_compute(self.detect)

    def detect(self) -> bool:
        """Run one uncached detection pass."""
        if self.config.host_override:
            logger.debug("Metadata host override is set, assuming GCE")
            return True

        on_gce = race_probes(self.probes(), self.config.detect_timeout)
        logger.debug(f"On-GCE detection result: {on_gce}")
        return on_gce
