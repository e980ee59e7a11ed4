"""Shared HTTP plumbing for the remote account, mailbox and send services.

Every remote call in the core goes through ``ServiceTransport.request``,
which turns httpx failures into the ``NetworkError`` family. The public
operations built on top decide how each failure degrades.
"""

from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from vemail.utils.errors import NetworkError, NetworkTimeoutError, RemoteServiceError
from vemail.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 15.0
DEFAULT_CONNECT_TIMEOUT = 5.0


def build_timeout(
    request_timeout: float = DEFAULT_TIMEOUT,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> httpx.Timeout:
    return httpx.Timeout(request_timeout, connect=connect_timeout)


def create_http_client(
    request_timeout: float = DEFAULT_TIMEOUT,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the session's shared ``AsyncClient``.

    ``transport`` is only passed in tests (``httpx.MockTransport``).
    """
    return httpx.AsyncClient(
        timeout=build_timeout(request_timeout, connect_timeout),
        headers={"Accept": "application/json"},
        transport=transport,
    )


def path_segment(value: str) -> str:
    """Percent-encode a single URL path segment (message ids may contain ``/``)."""
    return quote(value, safe="")


def join_url(base: str, path: str) -> str:
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


def response_json(response: httpx.Response) -> Dict[str, Any]:
    """Decode a JSON object body, or an empty dict if the body is not one."""
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class ServiceTransport:
    """Thin wrapper over a shared ``httpx.AsyncClient`` for one base URL."""

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    def url(self, path: str, base_url: Optional[str] = None) -> str:
        return join_url(base_url or self.base_url, path)

    async def request(
        self,
        method: str,
        path: str,
        *,
        base_url: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        raise_for_status: bool = True,
    ) -> httpx.Response:
        """Issue one request.

        Raises:
            NetworkTimeoutError: If the request timed out.
            NetworkError: If the service could not be reached or the URL is malformed.
            RemoteServiceError: If ``raise_for_status`` and the status is not 2xx.
        """
        url = self.url(path, base_url)

        try:
            response = await self.client.request(method, url, params=params, json=json)

        except httpx.TimeoutException as e:
            raise NetworkTimeoutError(
                f"{method} {url} timed out", details={"url": url}
            ) from e
        except httpx.RequestError as e:
            raise NetworkError(
                f"{method} {url} failed: {e.__class__.__name__}", details={"url": url}
            ) from e
        except httpx.InvalidURL as e:
            raise NetworkError(
                f"{method} {url} failed: invalid URL ({e})", details={"url": url}
            ) from e

        logger.debug(f"{method} {url} -> {response.status_code}")

        if raise_for_status and not response.is_success:
            raise RemoteServiceError(
                f"{method} {url} returned HTTP {response.status_code}",
                details={"url": url},
                status_code=response.status_code,
            )

        return response
