from __future__ import annotations

from typing import Any, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

HeaderPairs = Iterable[Tuple[str, str]]

__all__ = ("Headers", "CacheControl", "parse_cache_control", "HOP_BY_HOP_HEADERS")

# Headers that describe a single connection or the wire encoding of a body.
# They are never forwarded and never stored, since the body we hold is decoded.
HOP_BY_HOP_HEADERS = (
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
    "content-length",
    "content-encoding",
)


class Headers:
    """
    An ordered multimap of HTTP headers.

    Unlike a plain mapping, repeated names (``Set-Cookie``) are kept as
    separate pairs in the order they were received, which is what the
    cache envelope needs to reproduce a response faithfully.
    Lookups are case-insensitive; stored names keep their original casing.
    """

    def __init__(self, headers: Union[HeaderPairs, Mapping[str, str], "Headers", None] = None) -> None:
        if headers is None:
            pairs: HeaderPairs = []
        elif isinstance(headers, Headers):
            pairs = headers.items()
        elif isinstance(headers, Mapping):
            pairs = headers.items()
        else:
            pairs = headers
        self._headers: List[Tuple[str, str]] = [(str(key), str(value)) for key, value in pairs]

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        values = self.get_list(key)
        if not values:
            return default
        return ", ".join(values)

    def get_list(self, key: str) -> List[str]:
        lowered = key.lower()
        return [value for name, value in self._headers if name.lower() == lowered]

    def add(self, key: str, value: str) -> None:
        self._headers.append((key, value))

    def set(self, key: str, value: str) -> None:
        self.remove(key)
        self._headers.append((key, value))

    def remove(self, key: str) -> None:
        lowered = key.lower()
        self._headers = [(name, value) for name, value in self._headers if name.lower() != lowered]

    def without(self, keys_to_exclude: Iterable[str]) -> "Headers":
        exclude_set = {k.lower() for k in keys_to_exclude}
        return Headers([(name, value) for name, value in self._headers if name.lower() not in exclude_set])

    def items(self) -> List[Tuple[str, str]]:
        return list(self._headers)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and bool(self.get_list(key))

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self._headers)

    def __len__(self) -> int:
        return len(self._headers)

    def __repr__(self) -> str:
        return f"Headers({self._headers!r})"

    def __eq__(self, other_headers: Any) -> bool:
        return isinstance(other_headers, Headers) and self._headers == other_headers._headers


class CacheControl:
    """
    The subset of Cache-Control directives the proxy acts upon.

    Request side: ``no-cache``, ``no-store`` and ``max-age`` decide whether the
    client allows us to answer from cache or to store what we fetch.
    Response side: ``no-store`` and ``private`` forbid storing in a shared cache.
    """

    def __init__(self) -> None:
        self.max_age: Optional[int] = None
        self.no_cache: bool = False
        self.no_store: bool = False
        self.private: bool = False
        self.extensions: List[str] = []

    def __repr__(self) -> str:
        return (
            f"CacheControl(max_age={self.max_age!r}, no_cache={self.no_cache!r}, "
            f"no_store={self.no_store!r}, private={self.private!r})"
        )


def _parse_int_value(value: str) -> Optional[int]:
    value = value.strip().strip('"')
    if not value.isdigit():
        return None
    return int(value)


def _split_directives(value: str) -> Iterator[Tuple[str, Optional[str]]]:
    # Quoted field-name lists (private="Set-Cookie, Authorization") may contain commas.
    current = []
    in_quotes = False
    for char in value:
        if char == '"':
            in_quotes = not in_quotes
        if char == "," and not in_quotes:
            yield _split_directive("".join(current))
            current = []
            continue
        current.append(char)
    yield _split_directive("".join(current))


def _split_directive(raw: str) -> Tuple[str, Optional[str]]:
    token, sep, directive_value = raw.strip().partition("=")
    return token.strip().lower(), (directive_value.strip() if sep else None)


def parse_cache_control(value: Optional[str]) -> CacheControl:
    """
    Parse a Cache-Control header value.

    Unknown directives are collected in ``extensions``; malformed numeric
    values are ignored rather than rejected.

    Examples:
        >>> cc = parse_cache_control("max-age=0, no-cache")
        >>> cc.max_age
        0
        >>> cc.no_cache
        True
        >>> parse_cache_control('private="Set-Cookie", max-age=60').private
        True
    """
    cc = CacheControl()
    if not value:
        return cc

    for token, directive_value in _split_directives(value):
        if not token:
            continue
        if token == "max-age":
            cc.max_age = _parse_int_value(directive_value) if directive_value is not None else None
        elif token == "no-cache":
            cc.no_cache = True
        elif token == "no-store":
            cc.no_store = True
        elif token == "private":
            cc.private = True
        elif directive_value is not None:
            cc.extensions.append(f"{token}={directive_value}")
        else:
            cc.extensions.append(token)
    return cc
