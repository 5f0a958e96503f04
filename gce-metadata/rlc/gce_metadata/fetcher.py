"""
RLC GCE Metadata - Metadata Fetcher

One HTTP GET against the metadata service per call. No retries here; a
caller that wants them owns the policy.
"""

from typing import Optional

import requests

from .config import MetadataConfig
from .errors import NotFoundError, ParseError, ResponseStatusError, TransportError
from .log_utils import logger


class MetadataFetcher:
    """
    Issues requests to the configured metadata host.

    Args:
        config (MetadataConfig): Host, headers and timeouts to use.
        session (requests.Session): Optional session to share. A session
            created here is closed by ``close()``; an injected one is not.
    """

    def __init__(self, config: MetadataConfig, session: Optional[requests.Session] = None):
        self.config = config
        self._owns_session = session is None
        if session is None:
            session = requests.Session()
            # The metadata service is link-local; never route it through a proxy.
            session.trust_env = False
        self.session = session

    def request(self, url: str) -> requests.Response:
        """
        GET ``url`` with the identification header, user agent and timeouts
        applied. The status code is not interpreted.

        Raises:
            TransportError: If no response was received.
        """
        try:
            return self.session.get(url, headers=self.config.headers, timeout=self.config.timeout)
        except requests.RequestException as e:
            raise TransportError(url, e) from e

    def fetch(self, path: str) -> bytes:
        """
        Fetch ``path`` relative to ``http://<host>/computeMetadata/v1/``.

        Args:
            path (str): Metadata key, e.g. ``"project/project-id"``.

        Returns:
            bytes: The response body of a 200 response.

        Raises:
            NotFoundError: If the key does not exist (404).
            ResponseStatusError: For any other non-200 status.
            TransportError: If the request failed or timed out.
        """
        url = self.config.base_url + path
        try:
            resp = self.request(url)
        except TransportError as e:
            logger.warning(f"Metadata request for {path} failed: {e.reason}")
            raise

        if resp.status_code == 200:
            return resp.content
        if resp.status_code == 404:
            logger.debug(f"Metadata key {path} not found")
            raise NotFoundError(url)

        logger.warning(f"Metadata request for {path} returned status {resp.status_code}")
        raise ResponseStatusError(url, resp.status_code)

    def fetch_text(self, path: str) -> str:
        """
        ``fetch`` decoded as UTF-8.

        Raises:
            ParseError: If the body is not valid UTF-8 (tag ``"utf-8"``).
        """
        body = self.fetch(path)
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.warning(f"Metadata value for {path} is not valid UTF-8")
            raise ParseError("utf-8", body.decode("utf-8", "replace")) from e

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
