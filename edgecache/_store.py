from __future__ import annotations

import logging
import time
import typing as tp

import anyio

from edgecache._models import ResponseEnvelope
from edgecache._serializers import BaseSerializer, JSONSerializer, unwrap_durable, wrap_durable
from edgecache._storages import AsyncBaseTier

logger = logging.getLogger("edgecache.store")

__all__ = ("CacheStore", "DEFAULT_CACHE_TTL")

DEFAULT_CACHE_TTL = 3600 * 24 * 7  # 7 days


def get_timestamp_in_ms() -> int:
    return int(time.time() * 1000)


class CacheStore:
    """
    Read-through / write-through cache over a fast tier and a durable tier.

    Both tiers are queried and written concurrently and fail independently.
    Neither :meth:`get` nor :meth:`put` ever raises: a failing tier is logged
    and counts as a miss on read and as a rejected write on write.

    Args:
        fast: Low-latency key/value tier, preferred on read.
        durable: Blob tier used as fallback. Entries are wrapped with an
            explicit expiration timestamp that is checked on every read.
        ttl: Default time to live of written entries, in seconds.
        serializer: Converts envelopes to and from the wire format.
        read_repair: When True, an entry found only in the durable tier is
            copied back into the fast tier for its remaining lifetime.
    """

    def __init__(
        self,
        fast: AsyncBaseTier,
        durable: AsyncBaseTier,
        ttl: int = DEFAULT_CACHE_TTL,
        serializer: tp.Optional[BaseSerializer] = None,
        read_repair: bool = False,
    ) -> None:
        self.fast = fast
        self.durable = durable
        self.ttl = ttl
        self._serializer = serializer or JSONSerializer()
        self._read_repair = read_repair

    async def get(self, key: str) -> tp.Optional[ResponseEnvelope]:
        results: tp.Dict[str, tp.Any] = {}

        async with anyio.create_task_group() as tg:
            tg.start_soon(self._get_fast, key, results)
            tg.start_soon(self._get_durable, key, results)

        fast_hit: tp.Optional[ResponseEnvelope] = results.get("fast")
        if fast_hit is not None:
            logger.debug(f"Cache hit in the fast tier for `{key}`")
            return fast_hit

        durable_hit: tp.Optional[tp.Tuple[ResponseEnvelope, int]] = results.get("durable")
        if durable_hit is not None:
            envelope, expiration = durable_hit
            logger.debug(f"Cache hit in the durable tier for `{key}`")
            if self._read_repair:
                await self._repair_fast(key, envelope, expiration)
            return envelope

        logger.debug(f"Cache miss for `{key}`")
        return None

    async def put(self, key: str, envelope: ResponseEnvelope, ttl: tp.Optional[int] = None) -> bool:
        ttl = self.ttl if ttl is None else ttl
        accepted: tp.Dict[str, bool] = {}

        try:
            entry = self._serializer.to_dict(envelope)
            fast_payload = self._serializer.dumps(envelope)
            durable_payload = wrap_durable(entry, get_timestamp_in_ms() + ttl * 1000)
        except Exception as exc:
            logger.warning(f"Failed to serialize cache entry `{key}`: {exc!r}")
            return False

        async with anyio.create_task_group() as tg:
            tg.start_soon(self._put_tier, "fast", self.fast, key, fast_payload, ttl, accepted)
            tg.start_soon(self._put_tier, "durable", self.durable, key, durable_payload, ttl, accepted)

        stored = any(accepted.values())
        if stored:
            logger.debug(f"Stored `{key}` in {[name for name, ok in accepted.items() if ok]} for {ttl}s")
        else:
            logger.warning(f"Failed to store `{key}` in every tier")
        return stored

    async def aclose(self) -> None:
        for tier in (self.fast, self.durable):
            try:
                await tier.aclose()
            except Exception as exc:
                logger.warning(f"Failed to close the {tier.name} tier: {exc!r}")

    async def _get_fast(self, key: str, results: tp.Dict[str, tp.Any]) -> None:
        try:
            payload = await self.fast.get(key)
            if payload is None:
                return
            results["fast"] = self._serializer.loads(payload)
        except Exception as exc:
            logger.warning(f"Failed to get `{key}` from the {self.fast.name} tier: {exc!r}")

    async def _get_durable(self, key: str, results: tp.Dict[str, tp.Any]) -> None:
        try:
            payload = await self.durable.get(key)
            if payload is None:
                return

            record = unwrap_durable(payload)
            expiration = record["expiration"]
            if expiration != 0 and expiration < get_timestamp_in_ms():
                logger.debug(f"Entry `{key}` in the {self.durable.name} tier has expired")
                return

            results["durable"] = (self._serializer.from_dict(record["data"]), expiration)
        except Exception as exc:
            logger.warning(f"Failed to get `{key}` from the {self.durable.name} tier: {exc!r}")

    async def _put_tier(
        self,
        label: str,
        tier: AsyncBaseTier,
        key: str,
        payload: str,
        ttl: int,
        accepted: tp.Dict[str, bool],
    ) -> None:
        try:
            await tier.put(key, payload, ttl)
            accepted[label] = True
        except Exception as exc:
            accepted[label] = False
            logger.warning(f"Failed to set `{key}` in the {tier.name} tier: {exc!r}")

    async def _repair_fast(self, key: str, envelope: ResponseEnvelope, expiration: int) -> None:
        if expiration == 0:
            remaining = self.ttl
        else:
            remaining = (expiration - get_timestamp_in_ms()) // 1000
        if remaining <= 0:
            return

        try:
            await self.fast.put(key, self._serializer.dumps(envelope), remaining)
            logger.debug(f"Repaired `{key}` in the {self.fast.name} tier for {remaining}s")
        except Exception as exc:
            logger.warning(f"Failed to repair `{key}` in the {self.fast.name} tier: {exc!r}")
