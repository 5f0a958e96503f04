"""
Errors raised while talking to the GCE metadata service.
"""

from typing import Optional


class MetadataError(Exception):
    """Base class for every error raised by rlc.gce_metadata."""


class ConfigurationError(MetadataError):
    """The metadata host configuration is invalid. Raised at startup only."""


class TransportError(MetadataError):
    """The request never produced a response (connect failure, timeout, ...).

    The underlying ``requests`` exception is chained as ``__cause__``.
    """

    def __init__(self, url: str, reason: object):
        self.url = url
        self.reason = reason
        super().__init__(f"http request error for {url}: {reason}")


class ResponseStatusError(MetadataError):
    """The metadata service answered with a status code other than 200."""

    def __init__(self, url: str, status_code: int):
        self.url = url
        self.status_code = status_code
        super().__init__(f"http response status code error for {url}: {status_code}")


class NotFoundError(ResponseStatusError):
    """The requested metadata key does not exist (HTTP 404)."""

    def __init__(self, url: str, status_code: int = 404):
        super().__init__(url, status_code)


class ParseError(MetadataError, ValueError):
    """A metadata value could not be parsed.

    Args:
        tag (str): Which parse failed, e.g. ``"zone"`` or ``"json array"``.
    """

    def __init__(self, tag: str, value: Optional[str] = None):
        self.tag = tag
        self.value = value
        super().__init__(f"metadata parse error: {tag}")


class UninitializedError(MetadataError):
    """A cache cell was observed in a state the locking discipline forbids."""
