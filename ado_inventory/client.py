"""
HTTP transport for the Azure DevOps REST API.

Every request carries a Basic authorization header built from an empty user
name and the personal access token. Failures of any kind (network errors,
timeouts, non-success status codes, bodies that are not JSON) surface as
AdoRequestError so fetchers only have one exception type to isolate.
"""
import base64
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote, urlencode

import requests

from . import constants
from .config import CollectorConfig
from .utils import register_secret, retry_with_backoff

logger = logging.getLogger(__name__)


class AdoRequestError(Exception):
    """A platform request failed."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        status = f"HTTP {status_code}: " if status_code is not None else ""
        super().__init__(f"{status}{reason}")


def get_auth_header(token: str) -> Dict[str, str]:
    """Create authentication headers for the Azure DevOps API."""
    encoded = base64.b64encode(f":{token}".encode()).decode()
    return {
        "Authorization": f"Basic {encoded}",
        "Accept": "application/json",
        "Content-Type": "application/json",
    }


def build_url(
    organization: str,
    path: str,
    api_version: str,
    project: Optional[str] = None,
    host: str = constants.HOST_MAIN,
    params: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Build https://<host>/<organization>[/<project>]/_apis/...?api-version=<v>.

    path is relative to the organization (or project) and must start with
    "_apis/"; its segments are expected to be quoted already.
    """
    base = f"https://{host}/{quote(organization, safe='')}"
    if project:
        base = f"{base}/{quote(project, safe='')}"
    query = dict(params or {})
    query['api-version'] = api_version
    return f"{base}/{path}?{urlencode(query, safe='$,')}"


def quote_segment(value: str) -> str:
    """Quote a value used as a single URL path segment."""
    return quote(str(value), safe='')


class AdoClient:
    """
    Authenticated JSON client for one personal access token.

    Usage:
        client = AdoClient(token, config)
        data = client.get_json(build_url("contoso", "_apis/projects", "7.1"))
    """

    def __init__(self, token: str, config: Optional[CollectorConfig] = None,
                 session: Optional[requests.Session] = None):
        if not token:
            raise ValueError("A personal access token is required")
        register_secret(token)
        self.config = config or CollectorConfig()
        self.session = session or requests.Session()
        self.session.headers.update(get_auth_header(token))

        attempts = self.config.retry_attempts
        retrying = retry_with_backoff(
            max_attempts=attempts,
            min_wait=1,
            max_wait=30,
            exceptions=(requests.ConnectionError, requests.Timeout),
        )
        self._send = retrying(self._send_once)

    def _send_once(self, method: str, url: str, payload: Optional[Dict[str, Any]]) -> requests.Response:
        logger.debug(f"{method} {url}")
        return self.session.request(method, url, json=payload, timeout=self.config.timeout)

    def request(self, method: str, url: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """Send a request and return the decoded JSON body."""
        try:
            response = self._send(method, url, payload)
        except requests.Timeout as e:
            raise AdoRequestError(url, f"timed out after {self.config.timeout}s") from e
        except requests.RequestException as e:
            raise AdoRequestError(url, str(e)) from e

        if not response.ok:
            reason = response.reason or "request failed"
            raise AdoRequestError(url, reason, status_code=response.status_code)
        # Azure DevOps answers a rejected token with a 203 sign-in page
        if response.status_code == 203:
            raise AdoRequestError(url, "authentication failed (non-authoritative response)",
                                  status_code=203)

        try:
            return response.json()
        except ValueError as e:
            raise AdoRequestError(url, f"malformed JSON response: {e}",
                                  status_code=response.status_code) from e

    def get_json(self, url: str) -> Any:
        return self.request("GET", url)

    def post_json(self, url: str, payload: Dict[str, Any]) -> Any:
        return self.request("POST", url, payload)

    def probe(self, organization: str) -> None:
        """
        Verify the token can list projects in the organization.

        Raises:
            AdoRequestError: if the organization is unreachable or the token is rejected
        """
        url = build_url(organization, "_apis/projects", self.config.api_version,
                        params={"$top": 1})
        self.get_json(url)
