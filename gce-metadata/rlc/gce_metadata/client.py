"""
RLC GCE Metadata - Client

Field getters for the GCE metadata service. Values that never change for
the lifetime of an instance (project id, numeric project id, instance id)
and the on-GCE decision are computed once per client; every other getter
asks the service each time.

See https://cloud.google.com/compute/docs/metadata for the catalogue.
"""

from typing import List, Optional

import requests

from .cache import OnceCell
from .config import MetadataConfig
from .detect import GceDetector
from .errors import NotFoundError
from .fetcher import MetadataFetcher
from .parsers import json_array, lines, parse_instance_name, parse_zone, trim


class MetadataClient:
    """
    Access to the metadata of the instance this process runs on.

    Args:
        config (MetadataConfig): Defaults to ``MetadataConfig.from_env()``.
        session (requests.Session): Optional session shared with the caller.
        detector (GceDetector): Replaces the default on-GCE detector.

    Raises:
        ConfigurationError: If ``GCE_METADATA_HOST`` is set to an invalid value.
    """

    def __init__(
        self,
        config: Optional[MetadataConfig] = None,
        session: Optional[requests.Session] = None,
        detector: Optional[GceDetector] = None,
    ):
        self.config = config if config is not None else MetadataConfig.from_env()
        self.fetcher = MetadataFetcher(self.config, session)
        self.detector = detector if detector is not None else GceDetector(self.config, self.fetcher)

        self._project_id: OnceCell[str] = OnceCell("project_id")
        self._numeric_project_id: OnceCell[str] = OnceCell("numeric_project_id")
        self._instance_id: OnceCell[str] = OnceCell("instance_id")

    def close(self) -> None:
        self.fetcher.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _get_trimmed(self, path: str) -> str:
        return trim(self.fetcher.fetch_text(path))

    def _cached(self, cell: OnceCell[str], path: str) -> str:
        return cell.get_or_compute(lambda: self._get_trimmed(path))

    def on_gce(self) -> bool:
        """Report whether this process is running on Google Compute Engine."""
        return self.detector.on_gce()

    def get(self, path: str) -> Optional[str]:
        """
        Get a raw value from the metadata service.

        ``path`` is appended to ``http://<host>/computeMetadata/v1/``.

        Returns:
            Optional[str]: None if the key does not exist.
        """
        try:
            return self.fetcher.fetch_text(path)
        except NotFoundError:
            return None

    def project_id(self) -> str:
        return self._cached(self._project_id, "project/project-id")

    def numeric_project_id(self) -> str:
        return self._cached(self._numeric_project_id, "project/numeric-project-id")

    def instance_id(self) -> str:
        """Get the current VM's numeric instance ID."""
        return self._cached(self._instance_id, "instance/id")

    def internal_ip(self) -> str:
        return self._get_trimmed("instance/network-interfaces/0/ip")

    def external_ip(self) -> str:
        return self._get_trimmed("instance/network-interfaces/0/access-configs/0/external-ip")

    def email(self, service_account: Optional[str] = None) -> str:
        """
        Get the email address of a service account.

        Args:
            service_account (str): None or ``"default"`` for the instance's
                main account.
        """
        sa = service_account or "default"
        return self._get_trimmed(f"instance/service-accounts/{sa}/email")

    def hostname(self) -> str:
        """Get the hostname, of the form ``<instance_id>.c.<project_id>.internal``."""
        return self._get_trimmed("instance/hostname")

    def instance_tags(self) -> List[str]:
        """Get the user-defined instance tags assigned at creation."""
        return json_array(self.fetcher.fetch_text("instance/tags"))

    def instance_name(self) -> str:
        return parse_instance_name(self.hostname())

    def zone(self) -> str:
        """Get the current VM's zone, such as ``us-central1-b``."""
        return parse_zone(self._get_trimmed("instance/zone"))

    def instance_attributes(self) -> List[str]:
        """Get the names of the user-defined attributes of this VM."""
        return lines(self.fetcher.fetch_text("instance/attributes/"))

    def project_attributes(self) -> List[str]:
        """Get the names of the user-defined attributes of the whole project."""
        return lines(self.fetcher.fetch_text("project/attributes/"))

    def instance_attribute_value(self, attr: str) -> Optional[str]:
        return self.get(f"instance/attributes/{attr}")

    def project_attribute_value(self, attr: str) -> Optional[str]:
        return self.get(f"project/attributes/{attr}")

    def scopes(self, service_account: Optional[str] = None) -> List[str]:
        """
        Get the OAuth scopes of a service account.

        Args:
            service_account (str): None or ``"default"`` for the instance's
                main account.
        """
        sa = service_account or "default"
        return lines(self.fetcher.fetch_text(f"instance/service-accounts/{sa}/scopes"))
