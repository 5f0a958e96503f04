"""
RLC GCE Metadata - Metadata Host Configuration

Resolves where the metadata service lives and how to talk to it. The
configuration is built once per client and never changes afterwards.
"""

import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple
from urllib.parse import urlsplit

from .errors import ConfigurationError
from .log_utils import logger

VERSION = "0.1.0"

# Environment variable specifying the GCE metadata host. Setting it is also
# taken as an assertion that we run on GCE.
METADATA_HOST_VAR = "GCE_METADATA_HOST"

# Documented metadata server IP address and hostname.
METADATA_IP = "169.254.169.254"
METADATA_HOSTNAME = "metadata.google.internal"

METADATA_FLAVOR_HEADER = "Metadata-Flavor"
METADATA_FLAVOR_VALUE = "Google"

USER_AGENT = f"rlc-gce-metadata/{VERSION}"

DEFAULT_FETCH_TIMEOUT = 2.0  # seconds, connect timeout of a single request
DEFAULT_READ_TIMEOUT = 2.0  # seconds, between bytes of a response
DEFAULT_DETECT_TIMEOUT = 5.0  # seconds, bounds the whole on-GCE probe race

_SCHEMES = ("http", "https")


def parse_metadata_host(value: str) -> Tuple[str, str]:
    """
    Validate a metadata host override.

    Accepts an authority (``host``, ``host:port``, ``[::1]:port``), optionally
    prefixed with ``http://`` or ``https://``. A single trailing slash is
    tolerated.

    Args:
        value (str): Raw value, usually from ``GCE_METADATA_HOST``.

    Returns:
        Tuple[str, str]: ``(scheme, authority)``

    Raises:
        ConfigurationError: If the value is not a bare authority.
    """
    if not value or any(c.isspace() for c in value):
        raise ConfigurationError(f"invalid metadata host {value!r}: empty or contains whitespace")

    if "://" in value:
        scheme, _, rest = value.partition("://")
        scheme = scheme.lower()
        if scheme not in _SCHEMES:
            raise ConfigurationError(f"invalid metadata host {value!r}: unsupported scheme {scheme!r}")
    else:
        scheme, rest = "http", value

    if rest.endswith("/"):
        rest = rest[:-1]

    if any(c in rest for c in "/?#@"):
        raise ConfigurationError(f"invalid metadata host {value!r}: expected an authority, not a URL")

    try:
        parts = urlsplit(f"//{rest}")
        # .port validates the port range and raises ValueError
        parts.port
    except ValueError as e:
        raise ConfigurationError(f"invalid metadata host {value!r}: {e}") from e

    if not parts.hostname:
        raise ConfigurationError(f"invalid metadata host {value!r}: missing host")
    if parts.netloc.endswith(":"):
        raise ConfigurationError(f"invalid metadata host {value!r}: empty port")

    return scheme, parts.netloc


@dataclass(frozen=True)
class MetadataConfig:
    """
    Where the metadata service lives and how requests to it are made.

    ``host`` routes ``fetch`` requests. The header probe of on-GCE
    detection always goes to ``metadata_ip``.
    """

    host: str = METADATA_IP
    host_override: bool = False
    scheme: str = "http"
    metadata_ip: str = METADATA_IP
    metadata_hostname: str = METADATA_HOSTNAME
    user_agent: str = USER_AGENT
    connect_timeout: float = DEFAULT_FETCH_TIMEOUT
    read_timeout: Optional[float] = DEFAULT_READ_TIMEOUT
    detect_timeout: float = DEFAULT_DETECT_TIMEOUT

    def __post_init__(self):
        if self.connect_timeout <= 0:
            raise ConfigurationError(f"connect_timeout must be positive, got {self.connect_timeout}")
        if self.read_timeout is not None and self.read_timeout <= 0:
            raise ConfigurationError(f"read_timeout must be positive, got {self.read_timeout}")
        if self.detect_timeout <= 0:
            raise ConfigurationError(f"detect_timeout must be positive, got {self.detect_timeout}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "MetadataConfig":
        """
        Build the configuration from the process environment.

        Args:
            environ (Mapping[str, str]): Environment to read, ``os.environ`` by default.
            **overrides: Field values that take precedence over the environment.

        Raises:
            ConfigurationError: If ``GCE_METADATA_HOST`` holds an invalid value.
        """
        if environ is None:
            environ = os.environ

        fields = {}
        value = environ.get(METADATA_HOST_VAR, "")
        if value.strip():
            scheme, host = parse_metadata_host(value)
            logger.debug(f"Using metadata host override {scheme}://{host} from {METADATA_HOST_VAR}")
            fields.update(host=host, host_override=True, scheme=scheme)
        fields.update(overrides)
        return cls(**fields)

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}/computeMetadata/v1/"

    @property
    def probe_url(self) -> str:
        return f"http://{self.metadata_ip}/"

    @property
    def headers(self) -> Dict[str, str]:
        return {
            METADATA_FLAVOR_HEADER: METADATA_FLAVOR_VALUE,
            "User-Agent": self.user_agent,
        }

    @property
    def timeout(self) -> Tuple[float, Optional[float]]:
        """``(connect, read)`` timeout in the form ``requests`` expects."""
        return (self.connect_timeout, self.read_timeout)
