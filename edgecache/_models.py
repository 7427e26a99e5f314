from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Tuple, TypedDict
from urllib.parse import unquote_plus

import httpx

from edgecache._headers import Headers

__all__ = ("Request", "Response", "ResponseMetadata", "ResponseEnvelope")


@dataclass
class Request:
    method: str
    url: str
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        self._url = httpx.URL(self.url)

    @property
    def path(self) -> str:
        return self._url.path

    @property
    def target(self) -> str:
        """The path and query string exactly as they were received."""
        return self._url.raw_path.decode("ascii")

    @property
    def query_string(self) -> str:
        return self._url.query.decode("ascii")

    def has_query_param(self, name: str) -> bool:
        return name in self._url.params

    def get_query_param(self, name: str) -> Optional[str]:
        return self._url.params.get(name)

    def query_string_without(self, *names: str) -> str:
        """
        Returns the raw query string with the given parameters removed.

        The remaining parameters keep their original order and encoding.
        """
        kept = []
        for part in self.query_string.split("&"):
            if not part:
                continue
            name = unquote_plus(part.split("=", 1)[0])
            if name in names:
                continue
            kept.append(part)
        return "&".join(kept)

    def json(self) -> Any:
        return json.loads(self.body)


class ResponseMetadata(TypedDict, total=False):
    # All the names here should be prefixed with "edgecache_" to avoid collisions with user data
    edgecache_from_cache: bool
    """Indicates whether the response was served from cache."""

    edgecache_cache_key: str
    """The namespaced cache key the response was looked up or stored under."""

    edgecache_stored: bool
    """Indicates whether a background write was scheduled for the response."""


@dataclass
class Response:
    status_code: int
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    metadata: ResponseMetadata = field(default_factory=lambda: ResponseMetadata())

    @property
    def content_type(self) -> str:
        return (self.headers.get("content-type") or "").lower()

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)


@dataclass(frozen=True)
class ResponseEnvelope:
    """
    Snapshot of an HTTP response as it is kept in the cache.

    Headers are a tuple of pairs rather than a mapping so that repeated
    names survive a round trip through storage in their original order.
    """

    status: int
    headers: Tuple[Tuple[str, str], ...]
    body: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.status, int) or not 100 <= self.status <= 599:
            raise ValueError(f"Invalid HTTP status code: {self.status!r}")
        object.__setattr__(self, "headers", tuple((str(k), str(v)) for k, v in self.headers))
        if not isinstance(self.body, (bytes, bytearray)):
            raise TypeError(f"Envelope body must be bytes, got {type(self.body).__name__}")
        object.__setattr__(self, "body", bytes(self.body))

    @classmethod
    def from_response(cls, response: Response) -> "ResponseEnvelope":
        return cls(status=response.status_code, headers=tuple(response.headers.items()), body=response.body)

    def with_headers(self, extra: Iterable[Tuple[str, str]]) -> "ResponseEnvelope":
        return ResponseEnvelope(status=self.status, headers=self.headers + tuple(extra), body=self.body)

    def to_response(self, metadata: Optional[Mapping[str, Any]] = None) -> Response:
        return Response(
            status_code=self.status,
            headers=Headers(self.headers),
            body=self.body,
            metadata=ResponseMetadata(**(metadata or {})),  # type: ignore[typeddict-item]
        )
