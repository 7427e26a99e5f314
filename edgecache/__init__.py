from edgecache._alerts import (
    AsyncBaseAlerter as AsyncBaseAlerter,
    GraphQLAlerter as GraphQLAlerter,
    LoggingAlerter as LoggingAlerter,
)
from edgecache._background import BackgroundTasks as BackgroundTasks
from edgecache._config import Config as Config, get_default_config as get_default_config
from edgecache._exceptions import (
    ClientDisconnect as ClientDisconnect,
    ClientError as ClientError,
    DeniedRequest as DeniedRequest,
    EdgeCacheError as EdgeCacheError,
    MalformedRequest as MalformedRequest,
    ParseError as ParseError,
)
from edgecache._graphql import (
    GraphQLDenylist as GraphQLDenylist,
    GraphQLRequest as GraphQLRequest,
    deny_variable as deny_variable,
    is_query_operation as is_query_operation,
    parse_graphql_request as parse_graphql_request,
)
from edgecache._headers import (
    CacheControl as CacheControl,
    Headers as Headers,
    parse_cache_control as parse_cache_control,
)
from edgecache._keygen import HashKeyGen as HashKeyGen, KeyCodec as KeyCodec, KeyGen as KeyGen
from edgecache._models import (
    Request as Request,
    Response as Response,
    ResponseEnvelope as ResponseEnvelope,
    ResponseMetadata as ResponseMetadata,
)
from edgecache._origin import (
    OriginClient as OriginClient,
    has_graphql_errors as has_graphql_errors,
    is_success as is_success,
)
from edgecache._policies import CacheDecision as CacheDecision, CachePolicy as CachePolicy
from edgecache._proxy import EdgeCacheProxy as EdgeCacheProxy
from edgecache._routing import Route as Route, RouteKind as RouteKind, Router as Router
from edgecache._serializers import BaseSerializer as BaseSerializer, JSONSerializer as JSONSerializer
from edgecache._storages import (
    AsyncBaseTier as AsyncBaseTier,
    AsyncInMemoryTier as AsyncInMemoryTier,
    AsyncRedisTier as AsyncRedisTier,
    AsyncS3Tier as AsyncS3Tier,
)
from edgecache._store import CacheStore as CacheStore
from edgecache._transform import TwitterCardTransform as TwitterCardTransform

__all__ = (
    ## Proxy
    "EdgeCacheProxy",
    "Route",
    "RouteKind",
    "Router",
    ## Models
    "Request",
    "Response",
    "ResponseEnvelope",
    "ResponseMetadata",
    ## Headers
    "Headers",
    "CacheControl",
    "parse_cache_control",
    ## Keys
    "KeyCodec",
    "KeyGen",
    "HashKeyGen",
    ## Policies
    "CachePolicy",
    "CacheDecision",
    ## Storages
    "AsyncBaseTier",
    "AsyncInMemoryTier",
    "AsyncRedisTier",
    "AsyncS3Tier",
    "CacheStore",
    ## Serializers
    "BaseSerializer",
    "JSONSerializer",
    ## Origin and GraphQL
    "OriginClient",
    "is_success",
    "has_graphql_errors",
    "GraphQLRequest",
    "GraphQLDenylist",
    "deny_variable",
    "is_query_operation",
    "parse_graphql_request",
    ## Transform
    "TwitterCardTransform",
    ## Background work and alerts
    "BackgroundTasks",
    "AsyncBaseAlerter",
    "GraphQLAlerter",
    "LoggingAlerter",
    ## Config
    "Config",
    "get_default_config",
    ## Exceptions
    "EdgeCacheError",
    "ClientDisconnect",
    "ClientError",
    "MalformedRequest",
    "DeniedRequest",
    "ParseError",
)
