"""HTTP transport for remote-write requests."""
from typing import Dict, Optional
import logging
import os

import requests
from requests.auth import AuthBase, HTTPBasicAuth

from remotepush.compression import CONTENT_ENCODING
from remotepush.config import AuthConfig, RemoteWriteConfig
from remotepush.errors import TransportError
from remotepush.wire import CONTENT_TYPE

logger = logging.getLogger(__name__)

REMOTE_WRITE_VERSION = "0.1.0"
VERSION_HEADER = "X-Prometheus-Remote-Write-Version"
USER_AGENT = "remotepush/0.1.0"

PROTOCOL_HEADERS = {
    "Content-Type": CONTENT_TYPE,
    "Content-Encoding": CONTENT_ENCODING,
    VERSION_HEADER: REMOTE_WRITE_VERSION,
}

# Receivers often return long HTML error pages; keep messages readable
MAX_ERROR_BODY = 1024


class BearerAuth(AuthBase):
    """Attach an ``Authorization: Bearer <token>`` header."""

    def __init__(self, token: str):
        self.token = token

    def __call__(self, r):
        r.headers["Authorization"] = f"Bearer {self.token}"
        return r


def build_auth(config: AuthConfig) -> Optional[AuthBase]:
    """Create the requests auth handler for the configured mode, if any."""
    if config.basic:
        return HTTPBasicAuth(config.basic.username, config.basic.password)

    if config.bearer_token:
        return BearerAuth(config.bearer_token)

    if config.bearer_token_file:
        try:
            with open(os.path.expanduser(config.bearer_token_file), 'r') as f:
                token = f.read().strip()
        except OSError as e:
            raise TransportError(None, f"Cannot read bearer token file: {e}") from e
        return BearerAuth(token)

    return None


class RemoteWriteTransport:
    """Sends compressed write requests with the protocol headers."""

    def __init__(self, config: RemoteWriteConfig, session: Optional[requests.Session] = None):
        self.url = config.url
        self.timeout_s = config.timeout_s
        self.auth = build_auth(config.auth)
        self.session = session or requests.Session()

        # Protocol headers win over anything configured by the user
        self.headers: Dict[str, str] = {"User-Agent": USER_AGENT}
        self.headers.update(config.headers)
        self.headers.update(PROTOCOL_HEADERS)

        logger.debug(
            f"Transport for {self.url} "
            f"(auth={config.auth.mode or 'none'}, timeout={self.timeout_s}s)"
        )

    def prepare(self, body: bytes) -> requests.PreparedRequest:
        """Build the POST request without sending it."""
        request = requests.Request(
            "POST",
            self.url,
            data=body,
            headers=dict(self.headers),
            auth=self.auth,
        )
        return request.prepare()

    def send(self, body: bytes) -> int:
        """
        POST one compressed write request.

        Returns:
            The HTTP status code (always 2xx).

        Raises:
            TransportError: on network failure or a non-2xx response.
        """
        try:
            prepared = self.prepare(body)
            response = self.session.send(prepared, timeout=self.timeout_s)
        except requests.RequestException as e:
            logger.error(f"Remote write to {self.url} failed: {e}")
            raise TransportError(None, f"Request to {self.url} failed: {e}") from e

        if not 200 <= response.status_code < 300:
            message = (response.text or "").strip()[:MAX_ERROR_BODY]
            logger.error(f"Remote write rejected with HTTP {response.status_code}: {message}")
            raise TransportError(response.status_code, message)

        return response.status_code

    def close(self):
        self.session.close()
