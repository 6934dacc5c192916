"""EC2 instance metadata (IMDS) client."""

from __future__ import annotations

import logging

import requests

from ..config import MetadataConfig
from ..exceptions import MetadataUnavailable

logger = logging.getLogger(__name__)

TOKEN_PATH = "/latest/api/token"
METADATA_PATH = "/latest/meta-data/"
TOKEN_TTL_HEADER = "X-aws-ec2-metadata-token-ttl-seconds"
TOKEN_HEADER = "X-aws-ec2-metadata-token"


class InstanceMetadataClient:
    """Reads the instance identity from IMDS, using an IMDSv2 session token unless imds_v1 is set."""

    def __init__(self, config: MetadataConfig, session: requests.Session | None = None):
        self._base = config.endpoint.rstrip("/")
        self._timeout = config.timeout_seconds
        self._token_ttl = config.token_ttl_seconds
        self._use_token = not config.imds_v1
        self._session = session or requests.Session()
        self._token: str | None = None

    def get_instance_id(self) -> str:
        return self.get("instance-id")

    def get_local_address(self) -> str:
        return self.get("local-ipv4")

    def get_region(self) -> str:
        return self.get("placement/region")

    def get(self, key: str) -> str:
        """Fetch one metadata key. Raises MetadataUnavailable on any failure or empty value."""
        headers = {}
        if self._use_token:
            headers[TOKEN_HEADER] = self._get_token()

        resp = self._request("GET", f"{METADATA_PATH}{key}", headers=headers)
        value = resp.text.strip()
        if not value:
            raise MetadataUnavailable(f"Instance metadata returned an empty value for '{key}'")
        logger.debug("Metadata %s=%s", key, value)
        return value

    # ── Internal HTTP helpers ───────────────────────────────────────

    def _get_token(self) -> str:
        if self._token is None:
            resp = self._request("PUT", TOKEN_PATH, headers={TOKEN_TTL_HEADER: str(self._token_ttl)})
            token = resp.text.strip()
            if not token:
                raise MetadataUnavailable("Instance metadata returned an empty session token")
            self._token = token
        return self._token

    def _request(self, method: str, path: str, headers: dict[str, str]) -> requests.Response:
        url = f"{self._base}{path}"
        logger.debug("%s %s", method, path)

        try:
            resp = self._session.request(method, url, headers=headers, timeout=self._timeout)
        except requests.RequestException as exc:
            raise MetadataUnavailable(f"Instance metadata request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise MetadataUnavailable(f"HTTP {resp.status_code} on {method} {path}")

        return resp
