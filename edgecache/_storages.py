from __future__ import annotations

import logging
import time
import typing as tp
from collections import OrderedDict

import anyio

try:
    import boto3

    from ._s3 import AsyncS3Manager
except ImportError:  # pragma: no cover
    boto3 = None  # type: ignore

try:
    import redis.asyncio as redis
except ImportError:  # pragma: no cover
    redis = None  # type: ignore

logger = logging.getLogger("edgecache.storages")

__all__ = (
    "AsyncBaseTier",
    "AsyncInMemoryTier",
    "AsyncRedisTier",
    "AsyncS3Tier",
)


class AsyncBaseTier:
    """
    A single cache backend.

    Tiers only move opaque strings around. Implementations may raise on any
    failure; the dual-tier store is the one that turns errors into misses.
    """

    name: str = "tier"

    async def get(self, key: str) -> tp.Optional[str]:
        raise NotImplementedError()

    async def put(self, key: str, value: str, ttl: int) -> None:
        raise NotImplementedError()

    async def aclose(self) -> None:
        return


class AsyncInMemoryTier(AsyncBaseTier):
    """
    A simple in-memory tier.

    :param capacity: The maximum number of entries kept, the oldest written entry is evicted first,
        defaults to 1024
    :type capacity: int, optional
    :param honour_ttl: When False the tier keeps entries forever and leaves expiry to the caller,
        which is how blob stores without native expiration behave, defaults to True
    :type honour_ttl: bool, optional
    """

    def __init__(self, capacity: int = 1024, honour_ttl: bool = True, name: str = "memory") -> None:
        if capacity <= 0:
            raise ValueError("Capacity must be positive")

        self.name = name
        self._capacity = capacity
        self._honour_ttl = honour_ttl
        self._cache: OrderedDict[str, tp.Tuple[str, tp.Optional[float]]] = OrderedDict()
        self._lock = anyio.Lock()

    async def get(self, key: str) -> tp.Optional[str]:
        async with self._lock:
            stored = self._cache.get(key)
            if stored is None:
                return None

            value, expires_at = stored
            if expires_at is not None and time.time() >= expires_at:
                del self._cache[key]
                return None
            return value

    async def put(self, key: str, value: str, ttl: int) -> None:
        expires_at = time.time() + ttl if self._honour_ttl and ttl > 0 else None

        async with self._lock:
            self._cache.pop(key, None)
            while len(self._cache) >= self._capacity:
                evicted_key, _ = self._cache.popitem(last=False)
                logger.debug(f"Evicted `{evicted_key}` from the {self.name} tier")
            self._cache[key] = (value, expires_at)

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: object) -> bool:
        return key in self._cache


class AsyncRedisTier(AsyncBaseTier):
    """
    Redis-backed fast tier.

    :param client: A client for redis, defaults to None
    :type client: tp.Optional["redis.Redis"], optional
    """

    name = "redis"

    def __init__(self, client: tp.Optional[redis.Redis] = None) -> None:  # type: ignore
        if redis is None:  # pragma: no cover
            raise RuntimeError(
                f"The `{type(self).__name__}` was used, but the required packages were not found. "
                "Check that you have `edgecache` installed with the `redis` extension as shown.\n"
                "```pip install edgecache[redis]```"
            )

        if client is None:  # pragma: no cover
            self._client = redis.Redis()
        else:
            self._client = client

    @classmethod
    def from_url(cls, url: str) -> "AsyncRedisTier":  # pragma: no cover
        if redis is None:
            raise RuntimeError("```pip install edgecache[redis]```")
        return cls(client=redis.from_url(url))

    async def get(self, key: str) -> tp.Optional[str]:
        cached = await self._client.get(key)
        if cached is None:
            return None
        if isinstance(cached, bytes):
            return cached.decode("utf-8")
        return tp.cast(str, cached)

    async def put(self, key: str, value: str, ttl: int) -> None:
        await self._client.set(key, value, ex=ttl if ttl > 0 else None)

    async def aclose(self) -> None:
        await self._client.aclose()


class AsyncS3Tier(AsyncBaseTier):
    """
    S3 (or any S3-compatible blob store) durable tier.

    Blob stores are not trusted to expire objects, so the TTL is not passed
    down here; the store embeds an explicit expiration inside the payload.

    :param bucket_name: The name of the bucket to store the entries in
    :type bucket_name: str
    :param client: A boto3 S3 client, defaults to None
    :type client: tp.Optional[tp.Any], optional
    :param key_prefix: Prefix prepended to every object key, defaults to ""
    :type key_prefix: str, optional
    """

    name = "s3"

    def __init__(self, bucket_name: str, client: tp.Optional[tp.Any] = None, key_prefix: str = "") -> None:
        if boto3 is None:  # pragma: no cover
            raise RuntimeError(
                f"The `{type(self).__name__}` was used, but the required packages were not found. "
                "Check that you have `edgecache` installed with the `s3` extension as shown.\n"
                "```pip install edgecache[s3]```"
            )

        self._bucket_name = bucket_name
        client = client or boto3.client("s3")
        self._s3_manager = AsyncS3Manager(client=client, bucket_name=bucket_name, key_prefix=key_prefix)

    async def get(self, key: str) -> tp.Optional[str]:
        return await self._s3_manager.read_from(path=key)

    async def put(self, key: str, value: str, ttl: int) -> None:
        await self._s3_manager.write_to(path=key, data=value)
