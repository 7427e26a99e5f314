from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from typing import Optional

__all__ = ("KeyGen", "HashKeyGen", "KeyCodec", "raw_cache_key")


class KeyGen(ABC):
    @abstractmethod
    def digest(self, raw_key: str) -> str: ...


class HashKeyGen(KeyGen):
    def __init__(self, algorithm: str = "sha256") -> None:
        self.algorithm = algorithm

    def digest(self, raw_key: str) -> str:
        hasher = hashlib.new(self.algorithm)
        hasher.update(raw_key.encode("utf-8"))
        return hasher.hexdigest()


def raw_cache_key(discriminator: str, method: str, path: str, payload: Optional[str] = None) -> str:
    """
    Builds the human-readable key that is hashed into a cache key.

    Examples:
        >>> raw_cache_key("general", "GET", "/resource/42")
        'general:GET:/resource/42'
        >>> raw_cache_key("graphql", "POST", "/query/", '{"query":"{ a }"}')
        'graphql:POST:/query/:{"query":"{ a }"}'
    """
    raw = f"{discriminator}:{method.upper()}:{path}"
    if payload is not None:
        raw = f"{raw}:{payload}"
    return raw


class KeyCodec:
    """
    Derives namespaced cache keys.

    :param prefix: Version prefix of the cache namespace. Bumping it makes every
        entry written with an older payload schema unreachable.
    :type prefix: str
    :param keygen: Hash function applied to the raw key, defaults to sha256
    :type keygen: tp.Optional[KeyGen], optional
    """

    def __init__(self, prefix: str, keygen: Optional[KeyGen] = None) -> None:
        if not prefix.strip("/"):
            raise ValueError("Cache prefix must not be empty")
        self.prefix = prefix.rstrip("/")
        self.keygen = keygen if keygen is not None else HashKeyGen("sha256")

    def derive(
        self,
        method: str,
        path: str,
        payload: Optional[str] = None,
        *,
        discriminator: str,
    ) -> str:
        return self.namespaced(raw_cache_key(discriminator, method, path, payload))

    def namespaced(self, raw_key: str) -> str:
        return f"{self.prefix}/{self.keygen.digest(raw_key)}"
