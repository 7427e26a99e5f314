from __future__ import annotations

import logging
import typing as tp
from dataclasses import dataclass

from edgecache._headers import parse_cache_control
from edgecache._models import Request, Response
from edgecache._origin import has_graphql_errors, is_success
from edgecache._routing import Route

logger = logging.getLogger("edgecache.policy")

__all__ = ("CachePolicy", "CacheDecision", "BYPASS_PARAM", "DEFAULT_MAX_BODY_SIZE")

BYPASS_PARAM = "force"
DEFAULT_MAX_BODY_SIZE = 1024 * 1024  # 1 MiB


@dataclass(frozen=True)
class CacheDecision:
    read_allowed: bool
    write_allowed: bool


class CachePolicy:
    """
    Decides, per request, whether the cache may be read and written.

    Read and write are judged separately: ``?force`` skips the read but the
    refreshed response is still written, while an error response is read
    through normally but never written.

    :param bypass_param: Query parameter whose presence skips the cache read, defaults to "force"
    :type bypass_param: str, optional
    :param max_body_size: Bodies larger than this many bytes are not stored, defaults to 1 MiB
    :type max_body_size: int, optional
    """

    def __init__(self, bypass_param: str = BYPASS_PARAM, max_body_size: int = DEFAULT_MAX_BODY_SIZE) -> None:
        self.bypass_param = bypass_param
        self.max_body_size = max_body_size

    def method_allowed(self, request: Request, route: Route) -> bool:
        if request.method == "GET":
            return True
        if request.method == "POST":
            return route.cache_post
        return False

    def can_read(self, request: Request, route: Route) -> bool:
        if request.has_query_param(self.bypass_param):
            logger.debug(f"Skipping cache read for {request.url}: bypass parameter is present")
            return False

        pragma = [token.strip().lower() for value in request.headers.get_list("pragma") for token in value.split(",")]
        if "no-cache" in pragma:
            logger.debug(f"Skipping cache read for {request.url}: `Pragma: no-cache`")
            return False

        cache_control = parse_cache_control(request.headers.get("cache-control"))
        if cache_control.no_cache or cache_control.no_store or cache_control.max_age == 0:
            logger.debug(f"Skipping cache read for {request.url}: request Cache-Control forbids it")
            return False

        if not self.method_allowed(request, route):
            logger.debug(f"Skipping cache read for {request.url}: method {request.method} is not cacheable")
            return False

        return True

    def can_write(self, request: Request, response: Response, route: Route) -> bool:
        if not self.method_allowed(request, route):
            logger.debug(f"Not storing {request.url}: method {request.method} is not cacheable")
            return False

        if parse_cache_control(request.headers.get("cache-control")).no_store:
            logger.debug(f"Not storing {request.url}: request carries `no-store`")
            return False

        if not is_success(response):
            logger.debug(f"Not storing {request.url}: status code {response.status_code} is not a success")
            return False

        # The key does not cover Range, a slice would be served for the whole resource.
        if response.status_code == 206 or "range" in request.headers:
            logger.debug(f"Not storing {request.url}: partial content")
            return False

        if has_graphql_errors(response):
            logger.debug(f"Not storing {request.url}: response carries application-level errors")
            return False

        response_cache_control = parse_cache_control(response.headers.get("cache-control"))
        if response_cache_control.no_store or response_cache_control.private:
            logger.debug(f"Not storing {request.url}: response Cache-Control forbids shared caching")
            return False

        if "text/html" in response.content_type and not route.cache_html:
            logger.debug(f"Not storing {request.url}: HTML is not cached on the {route.kind.value} route")
            return False

        if len(response.body) > self.max_body_size:
            logger.debug(
                f"Not storing {request.url}: body of {len(response.body)} bytes exceeds {self.max_body_size} bytes"
            )
            return False

        return True

    def decide(self, request: Request, route: Route, response: tp.Optional[Response] = None) -> CacheDecision:
        return CacheDecision(
            read_allowed=self.can_read(request, route),
            write_allowed=response is not None and self.can_write(request, response, route),
        )

