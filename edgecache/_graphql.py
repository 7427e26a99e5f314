from __future__ import annotations

import json
import logging
import re
import typing as tp
from dataclasses import dataclass

from edgecache._exceptions import DeniedRequest, MalformedRequest
from edgecache._models import Request

logger = logging.getLogger("edgecache.graphql")

__all__ = (
    "GraphQLRequest",
    "GraphQLDenylist",
    "parse_graphql_request",
    "is_query_operation",
    "canonical_json",
    "deny_variable",
)

_QUERY_KEYWORD = re.compile(r"query\b")

DenyRule = tp.Callable[["GraphQLRequest"], bool]


def canonical_json(data: tp.Any) -> str:
    """
    Serializes request data compactly, keeping the key order it arrived in.

    The output doubles as the cache key payload, so two requests hit the same
    entry only when their data serializes to exactly the same text.
    """
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class GraphQLRequest:
    data: tp.Dict[str, tp.Any]
    """The request data: ``query`` and ``variables`` plus anything the client sent alongside."""

    @property
    def query(self) -> tp.Optional[str]:
        query = self.data.get("query")
        return query if isinstance(query, str) else None

    @property
    def variables(self) -> tp.Dict[str, tp.Any]:
        variables = self.data.get("variables")
        if isinstance(variables, str):
            try:
                variables = json.loads(variables)
            except ValueError:
                return {}
        return variables if isinstance(variables, dict) else {}

    @property
    def payload(self) -> str:
        return canonical_json(self.data)

    @property
    def is_cacheable_operation(self) -> bool:
        return self.query is not None and is_query_operation(self.query)


def is_query_operation(query: str) -> bool:
    """
    Whether the document is a read-only query.

    Examples:
        >>> is_query_operation("{ posts { title } }")
        True
        >>> is_query_operation("  query blog { posts { title } }")
        True
        >>> is_query_operation("mutation { like(id: 1) }")
        False
    """
    stripped = query.strip()
    return stripped.startswith("{") or _QUERY_KEYWORD.match(stripped) is not None


def parse_graphql_request(request: Request) -> GraphQLRequest:
    if request.method == "GET":
        return GraphQLRequest(
            data={
                "query": request.get_query_param("query"),
                "variables": request.get_query_param("variables"),
            }
        )

    if not request.body:
        raise MalformedRequest("Request body is empty")
    try:
        data = request.json()
    except (ValueError, UnicodeDecodeError) as exc:
        raise MalformedRequest("Request body is not valid JSON") from exc
    if not isinstance(data, dict):
        raise MalformedRequest("Request body must be a JSON object")
    return GraphQLRequest(data=data)


def deny_variable(name: str, value: tp.Any) -> DenyRule:
    def rule(graphql_request: GraphQLRequest) -> bool:
        return graphql_request.variables.get(name) == value

    rule.__qualname__ = f"deny_variable({name!r}, {value!r})"
    return rule


class GraphQLDenylist:
    """
    Rejects GraphQL requests whose variables match any of the rules.

    :param rules: Predicates over the parsed request, defaults to rejecting ``variables.type == "pateo"``
    :type rules: tp.Optional[tp.Iterable[DenyRule]], optional
    """

    def __init__(self, rules: tp.Optional[tp.Iterable[DenyRule]] = None) -> None:
        self.rules: tp.List[DenyRule] = list(rules) if rules is not None else [deny_variable("type", "pateo")]

    def check(self, graphql_request: GraphQLRequest) -> None:
        for rule in self.rules:
            if rule(graphql_request):
                logger.info(f"Rejecting GraphQL request matched by {getattr(rule, '__qualname__', rule)}")
                raise DeniedRequest("Request is not allowed")
