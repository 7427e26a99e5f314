import os
from typing import Optional, TypedDict


class Config(TypedDict, total=False):
    # override default value with the environment variable EDGECACHE_ORIGIN_URL
    origin_url: str
    """
    Base URL of the origin every request is forwarded to.
    """

    # override default value with the environment variable EDGECACHE_GRAPHQL_URL
    graphql_url: str
    """
    Endpoint of the GraphQL API used for twitter card lookups and alerts.
    """

    # override default value with the environment variable EDGECACHE_CACHE_PREFIX
    cache_prefix: str
    """
    Version prefix of every cache key. Bump it after changing the cache payload format.
    """

    # seconds
    # override default value with the environment variable EDGECACHE_CACHE_TTL
    cache_ttl: int
    """
    How long written entries live (in seconds).
    """

    # bytes
    # override default value with the environment variable EDGECACHE_MAX_BODY_SIZE
    max_body_size: int
    """
    Responses with a larger body are served but not cached (in bytes).
    """

    # override default value with the environment variable EDGECACHE_REDIS_URL
    redis_url: Optional[str]
    """
    URL of the redis server used as the fast tier. Unset means an in-memory tier.
    """

    # override default value with the environment variable EDGECACHE_S3_BUCKET
    s3_bucket: Optional[str]
    """
    Bucket used as the durable tier. Unset means an in-memory tier.
    """

    # override default value with the environment variable EDGECACHE_LANDING_PATH
    landing_path: Optional[str]
    """
    Where requests for the site root are redirected to. Unset disables the redirect.
    """

    # override default value with the environment variable EDGECACHE_ALERT_URL
    alert_url: Optional[str]
    """
    GraphQL endpoint receiving alerts about unexpected failures. Unset means alerts are only logged.
    """

    # override default value with the environment variable EDGECACHE_ALERT_TOKEN
    alert_token: str
    """
    Token authorizing the alert mutation.
    """

    # seconds
    # override default value with the environment variable EDGECACHE_ORIGIN_TIMEOUT
    origin_timeout: float
    """
    Timeout of a single origin request (in seconds).
    """

    # override default value with the environment variable EDGECACHE_READ_REPAIR
    read_repair: bool
    """
    Copy entries found only in the durable tier back into the fast tier.
    """


def _optional(name: str) -> Optional[str]:
    return os.getenv(name) or None


def get_default_config() -> Config:
    """Get the default configuration for edgecache."""

    ORIGIN_URL = os.getenv("EDGECACHE_ORIGIN_URL", "http://localhost:8080")
    GRAPHQL_URL = os.getenv("EDGECACHE_GRAPHQL_URL", "https://gq.laisky.com/query/")
    CACHE_PREFIX = os.getenv("EDGECACHE_CACHE_PREFIX", "edgecache/v1")
    CACHE_TTL = int(os.getenv("EDGECACHE_CACHE_TTL", str(3600 * 24 * 7)))  # 7 days
    MAX_BODY_SIZE = int(os.getenv("EDGECACHE_MAX_BODY_SIZE", str(1024 * 1024)))  # 1 MiB
    REDIS_URL = _optional("EDGECACHE_REDIS_URL")
    S3_BUCKET = _optional("EDGECACHE_S3_BUCKET")
    LANDING_PATH = _optional("EDGECACHE_LANDING_PATH")
    ALERT_URL = _optional("EDGECACHE_ALERT_URL")
    ALERT_TOKEN = os.getenv("EDGECACHE_ALERT_TOKEN", "")
    ORIGIN_TIMEOUT = float(os.getenv("EDGECACHE_ORIGIN_TIMEOUT", "30"))
    READ_REPAIR = os.getenv("EDGECACHE_READ_REPAIR", "false").lower() in ("1", "true", "yes", "on")

    return {
        "origin_url": ORIGIN_URL,
        "graphql_url": GRAPHQL_URL,
        "cache_prefix": CACHE_PREFIX,
        "cache_ttl": CACHE_TTL,
        "max_body_size": MAX_BODY_SIZE,
        "redis_url": REDIS_URL,
        "s3_bucket": S3_BUCKET,
        "landing_path": LANDING_PATH,
        "alert_url": ALERT_URL,
        "alert_token": ALERT_TOKEN,
        "origin_timeout": ORIGIN_TIMEOUT,
        "read_repair": READ_REPAIR,
    }
