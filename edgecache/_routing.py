from __future__ import annotations

import enum
import typing as tp
from dataclasses import dataclass

__all__ = ("RouteKind", "Route", "Router", "GENERAL_ROUTE", "POST_ROUTE", "QUERY_ROUTE")


class RouteKind(enum.Enum):
    GENERAL = "general"
    POST = "post"
    QUERY = "query"


@dataclass(frozen=True)
class Route:
    kind: RouteKind
    discriminator: str
    """Leading component of the raw cache key, keeps the key spaces of the routes apart."""

    cache_post: bool = False
    """Whether POST requests on this route may be answered from and stored in the cache."""

    cache_html: bool = True
    """Whether ``text/html`` responses on this route may be stored."""


GENERAL_ROUTE = Route(RouteKind.GENERAL, discriminator="general")
POST_ROUTE = Route(RouteKind.POST, discriminator="post")
# HTML out of the API is an error page served by a proxy in front of it.
QUERY_ROUTE = Route(RouteKind.QUERY, discriminator="graphql", cache_post=True, cache_html=False)

DEFAULT_ROUTES: tp.Tuple[tp.Tuple[str, Route], ...] = (
    ("/p/", POST_ROUTE),
    ("/query/", QUERY_ROUTE),
    ("/graphql/query/", QUERY_ROUTE),
)


class Router:
    """
    Maps a request path to its route by prefix.

    The first matching prefix wins; paths that match nothing fall through
    to the ``default`` route.

    :param routes: Pairs of (path prefix, route), defaults to the blog post, GraphQL and general routes
    :type routes: tp.Optional[tp.Iterable[tp.Tuple[str, Route]]], optional
    :param default: The route used when no prefix matches, defaults to GENERAL_ROUTE
    :type default: Route, optional
    """

    def __init__(
        self,
        routes: tp.Optional[tp.Iterable[tp.Tuple[str, Route]]] = None,
        default: Route = GENERAL_ROUTE,
    ) -> None:
        self._routes = tuple(routes) if routes is not None else DEFAULT_ROUTES
        self._default = default

    def resolve(self, path: str) -> Route:
        for prefix, route in self._routes:
            if path.startswith(prefix):
                return route
        return self._default
