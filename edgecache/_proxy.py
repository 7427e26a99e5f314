from __future__ import annotations

import logging
import typing as tp
from dataclasses import replace

from typing_extensions import assert_never

from edgecache._background import BackgroundTasks
from edgecache._graphql import GraphQLDenylist, parse_graphql_request
from edgecache._keygen import KeyCodec
from edgecache._models import Request, Response, ResponseEnvelope, ResponseMetadata
from edgecache._origin import OriginClient, is_success
from edgecache._policies import CachePolicy
from edgecache._routing import GENERAL_ROUTE, POST_ROUTE, QUERY_ROUTE, Route, RouteKind, Router
from edgecache._store import CacheStore
from edgecache._transform import TwitterCardTransform, post_name_from_path

logger = logging.getLogger("edgecache.proxy")

__all__ = ("EdgeCacheProxy", "CACHE_STATUS_HEADER", "CACHE_KEY_HEADER")

CACHE_STATUS_HEADER = "X-Edge-Cache"
CACHE_KEY_HEADER = "X-Edge-Cache-Key"


class EdgeCacheProxy:
    """
    A caching reverse proxy in front of a site and its GraphQL API.

    This class is independent of any web framework and works only with internal models.
    Each request is resolved to a route once, then answered from the cache when the
    policy allows it, or fetched from the origin and written back in the background.

    Args:
        store: Dual-tier cache the responses are read from and written to.
        origin: Client forwarding requests to the origin.
        key_codec: Derives the namespaced cache key of a request.
        policy: Decides whether a request may read and write the cache. Defaults to CachePolicy().
        transform: Inserts the twitter card into blog post pages. Pages are served
            unchanged when it is None.
        background: Task group that cache writes are spawned on. When it is None or not
            running, writes are awaited before the response is returned.
        denylist: Rules rejecting GraphQL requests before they reach the origin.
            Defaults to GraphQLDenylist().
        router: Maps request paths to routes. Defaults to Router().
    """

    def __init__(
        self,
        store: CacheStore,
        origin: OriginClient,
        key_codec: KeyCodec,
        policy: CachePolicy | None = None,
        transform: TwitterCardTransform | None = None,
        background: BackgroundTasks | None = None,
        denylist: GraphQLDenylist | None = None,
        router: Router | None = None,
    ) -> None:
        self.store = store
        self.origin = origin
        self.key_codec = key_codec
        self.policy = policy if policy is not None else CachePolicy()
        self.transform = transform
        self.background = background
        self.denylist = denylist if denylist is not None else GraphQLDenylist()
        self.router = router if router is not None else Router()

    async def handle_request(self, request: Request) -> Response:
        route = self.router.resolve(request.path)
        logger.debug(f"Resolved {request.method} {request.target} to the {route.kind.value} route")

        if route.kind is RouteKind.GENERAL:
            return await self.handle_general(request, route)
        elif route.kind is RouteKind.POST:
            return await self.handle_post(request, route)
        elif route.kind is RouteKind.QUERY:
            return await self.handle_query(request, route)
        else:
            assert_never(route.kind)

    async def handle_general(self, request: Request, route: Route = GENERAL_ROUTE) -> Response:
        payload = request.query_string_without(self.policy.bypass_param) or None
        key = self.key_codec.derive(request.method, request.path, payload, discriminator=route.discriminator)
        return await self._serve(request, route, key, lambda: self.origin.fetch(request))

    async def handle_post(self, request: Request, route: Route = POST_ROUTE) -> Response:
        key = self.key_codec.derive(request.method, request.path, discriminator=route.discriminator)

        async def fetch() -> Response:
            response = await self.origin.fetch(request)
            return await self._insert_twitter_card(request, response)

        return await self._serve(request, route, key, fetch)

    async def handle_query(self, request: Request, route: Route = QUERY_ROUTE) -> Response:
        if request.method not in ("GET", "POST"):
            logger.debug(f"Forwarding {request.method} {request.target} without caching")
            return self._with_metadata(await self.origin.fetch(request), from_cache=False, key=None, stored=False)

        graphql_request = parse_graphql_request(request)
        self.denylist.check(graphql_request)

        if not graphql_request.is_cacheable_operation:
            logger.debug(f"Forwarding {request.method} {request.target} without caching: not a query operation")
            return self._with_metadata(await self.origin.fetch(request), from_cache=False, key=None, stored=False)

        payload = graphql_request.payload
        key = self.key_codec.derive(request.method, request.path, payload, discriminator=route.discriminator)
        forwarded = replace(request, body=payload.encode("utf-8")) if request.method == "POST" else request
        return await self._serve(forwarded, route, key, lambda: self.origin.fetch(forwarded))

    async def _serve(
        self,
        request: Request,
        route: Route,
        key: str,
        fetch: tp.Callable[[], tp.Awaitable[Response]],
    ) -> Response:
        if self.policy.can_read(request, route):
            envelope = await self.store.get(key)
            if envelope is not None:
                logger.info(f"Serving {request.method} {request.target} from cache")
                return envelope.to_response(
                    ResponseMetadata(
                        edgecache_from_cache=True,
                        edgecache_cache_key=key,
                        edgecache_stored=False,
                    )
                )

        response = await fetch()
        stored = False
        if self.policy.can_write(request, response, route):
            await self._schedule_write(key, response)
            stored = True

        logger.info(f"Serving {request.method} {request.target} from origin ({response.status_code})")
        return self._with_metadata(response, from_cache=False, key=key, stored=stored)

    async def _schedule_write(self, key: str, response: Response) -> None:
        envelope = ResponseEnvelope.from_response(response).with_headers(
            [(CACHE_STATUS_HEADER, "HIT"), (CACHE_KEY_HEADER, key)]
        )
        if self.background is not None and self.background.running:
            self.background.spawn(self.store.put, key, envelope, name=f"cache write {key}")
        else:
            await self.store.put(key, envelope)

    async def _insert_twitter_card(self, request: Request, response: Response) -> Response:
        if self.transform is None or not is_success(response) or "text/html" not in response.content_type:
            return response

        post_name = post_name_from_path(request.path)
        if post_name is None:
            return response

        try:
            html = response.body.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning(f"Page {request.path} is not valid UTF-8, twitter card not inserted")
            return response

        transformed = await self.transform.transform(html, post_name)
        if transformed is html:
            return response
        return replace(response, body=transformed.encode("utf-8"))

    @staticmethod
    def _with_metadata(response: Response, *, from_cache: bool, key: str | None, stored: bool) -> Response:
        response.metadata.update(ResponseMetadata(edgecache_from_cache=from_cache, edgecache_stored=stored))
        if key is not None:
            response.metadata["edgecache_cache_key"] = key
        return response
