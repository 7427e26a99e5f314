from __future__ import annotations

import logging
import typing as tp

import httpx

from edgecache._headers import HOP_BY_HOP_HEADERS, Headers
from edgecache._models import Request, Response

logger = logging.getLogger("edgecache.origin")

__all__ = ("OriginClient", "is_success", "has_graphql_errors", "DEFAULT_ORIGIN_TIMEOUT")

DEFAULT_ORIGIN_TIMEOUT = 30.0

# httpx negotiates its own encoding and decodes the body, the origin's host is not ours.
_REQUEST_ONLY_HEADERS = ("host", "accept-encoding")


def is_success(response: Response) -> bool:
    return 200 <= response.status_code <= 299


def has_graphql_errors(response: Response) -> bool:
    """
    Whether a JSON API response is a failure despite its transport status.

    GraphQL servers report resolver errors inside a 200 response, in an
    ``errors`` list next to (possibly partial) ``data``.
    """
    if "json" not in response.content_type:
        return False
    try:
        payload = response.json()
    except (ValueError, UnicodeDecodeError):
        return False
    return isinstance(payload, dict) and bool(payload.get("errors"))


def _bad_gateway(reason: str) -> Response:
    return Response(
        status_code=502,
        headers=Headers([("Content-Type", "text/plain; charset=utf-8")]),
        body=reason.encode("utf-8"),
    )


class OriginClient:
    """
    Sends requests to the origin, one attempt each.

    :param origin_url: Scheme, host and optional base path of the origin, the request target is appended to it
    :type origin_url: str
    :param client: The client used for outbound requests, defaults to a new ``httpx.AsyncClient``
    :type client: tp.Optional[httpx.AsyncClient], optional
    :param timeout: Timeout of a single origin request in seconds, defaults to 30
    :type timeout: float, optional
    """

    def __init__(
        self,
        origin_url: str,
        client: tp.Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_ORIGIN_TIMEOUT,
    ) -> None:
        self.origin_url = origin_url.rstrip("/")
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient(timeout=timeout)
        self._timeout = timeout

    def url_for(self, request: Request) -> str:
        return self.origin_url + request.target

    async def fetch(self, request: Request) -> Response:
        url = self.url_for(request)
        headers = request.headers.without(HOP_BY_HOP_HEADERS + _REQUEST_ONLY_HEADERS)

        logger.debug(f"Forwarding {request.method} {request.target} to {url}")
        try:
            upstream = await self._client.request(
                request.method,
                url,
                headers=headers.items(),
                content=request.body or None,
                timeout=self._timeout,
            )
        except httpx.TransportError as exc:
            logger.warning(f"Origin is unreachable for {request.method} {url}: {exc!r}")
            return _bad_gateway("Bad Gateway: origin is unreachable")

        logger.debug(f"Origin answered {upstream.status_code} for {request.method} {url}")
        excluded = HOP_BY_HOP_HEADERS
        if request.method == "HEAD":
            # No body follows, the length is the one a GET would get.
            excluded = tuple(name for name in HOP_BY_HOP_HEADERS if name != "content-length")
        return Response(
            status_code=upstream.status_code,
            headers=Headers(upstream.headers.multi_items()).without(excluded),
            body=upstream.content,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
