"""
RLC GCE Metadata - access to the Google Compute Engine metadata service.

    from rlc.gce_metadata import MetadataClient

    client = MetadataClient()
    if client.on_gce():
        print(client.project_id(), client.zone())
"""

from .cache import AsyncOnceCell, CellState, OnceCell
from .client import MetadataClient
from .config import METADATA_HOST_VAR, VERSION, MetadataConfig
from .detect import GceDetector
from .errors import (
    ConfigurationError,
    MetadataError,
    NotFoundError,
    ParseError,
    ResponseStatusError,
    TransportError,
    UninitializedError,
)
from .fetcher import MetadataFetcher

__version__ = VERSION

__all__ = [
    "AsyncOnceCell",
    "CellState",
    "ConfigurationError",
    "GceDetector",
    "METADATA_HOST_VAR",
    "MetadataClient",
    "MetadataConfig",
    "MetadataError",
    "MetadataFetcher",
    "NotFoundError",
    "OnceCell",
    "ParseError",
    "ResponseStatusError",
    "TransportError",
    "UninitializedError",
]
