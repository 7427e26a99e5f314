from __future__ import annotations

import logging
import traceback
import types
import typing as t

import httpx

from edgecache._alerts import AsyncBaseAlerter, GraphQLAlerter, LoggingAlerter
from edgecache._background import BackgroundTasks
from edgecache._config import Config, get_default_config
from edgecache._exceptions import ClientDisconnect, ClientError
from edgecache._headers import Headers
from edgecache._keygen import KeyCodec
from edgecache._models import Request, Response
from edgecache._origin import OriginClient
from edgecache._policies import CachePolicy
from edgecache._proxy import EdgeCacheProxy
from edgecache._storages import AsyncBaseTier, AsyncInMemoryTier, AsyncRedisTier, AsyncS3Tier
from edgecache._store import CacheStore
from edgecache._transform import TwitterCardTransform

if t.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

logger = logging.getLogger("edgecache.asgi")

__all__ = ("EdgeCacheApp", "create_app")


class _ASGIScope(t.TypedDict, total=False):
    """ASGI HTTP scope type."""

    type: str
    asgi: t.Dict[str, str]
    http_version: str
    method: str
    scheme: str
    path: str
    query_string: bytes
    root_path: str
    headers: t.List[t.Tuple[bytes, bytes]]
    server: t.Optional[t.Tuple[str, t.Optional[int]]]
    client: t.Optional[t.Tuple[str, int]]
    state: t.Dict[str, t.Any]
    extensions: t.Dict[str, t.Any]


_Scope = _ASGIScope
_Receive = t.Callable[[], t.Awaitable[t.Dict[str, t.Any]]]
_Send = t.Callable[[t.Dict[str, t.Any]], t.Awaitable[None]]

INTERNAL_ERROR_MESSAGE = "Internal Server Error"


def _plain_text(status_code: int, text: str, headers: t.Optional[Headers] = None) -> Response:
    headers = headers if headers is not None else Headers()
    headers.set("Content-Type", "text/plain; charset=utf-8")
    return Response(status_code=status_code, headers=headers, body=text.encode("utf-8"))


class EdgeCacheApp:
    """
    ASGI application serving every request through the edge cache.

    The application owns the background task group the cache writes run on.
    It is started and drained by the ASGI lifespan protocol, or by using the
    application as an async context manager when the server (or a test
    transport) does not send lifespan events.

    Unexpected exceptions never escape to the server: they are logged,
    reported to the alerter, and answered with a generic 500.

    Args:
        proxy: The cache proxy handling the requests.
        alerter: Receives reports of unexpected failures. Defaults to LoggingAlerter().
        landing_path: Where requests for the site root are redirected to. No redirect when None.

    Example:
        ```python
        from edgecache.asgi import create_app

        app = create_app({"origin_url": "https://blog.example.com"})

        # uvicorn module:app
        ```
    """

    def __init__(
        self,
        proxy: EdgeCacheProxy,
        alerter: AsyncBaseAlerter | None = None,
        landing_path: str | None = None,
    ) -> None:
        self.proxy = proxy
        self.alerter = alerter if alerter is not None else LoggingAlerter()
        self.landing_path = landing_path
        if proxy.background is None:
            proxy.background = BackgroundTasks()
        self.background = proxy.background

        logger.info(
            "Initialized EdgeCacheApp with fast tier=%s, durable tier=%s, origin=%s",
            proxy.store.fast.name,
            proxy.store.durable.name,
            proxy.origin.origin_url,
        )

    async def __call__(self, scope: _Scope, receive: _Receive, send: _Send) -> None:
        """
        Handle an ASGI request.

        Args:
            scope: The ASGI scope dictionary.
            receive: The ASGI receive callable.
            send: The ASGI send callable.
        """
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return

        if scope["type"] != "http":
            logger.debug("Rejecting non-HTTP connection: type=%s", scope["type"])
            return

        method = scope.get("method", "GET")
        path = scope.get("path", "/")
        query_string = scope.get("query_string", b"").decode("latin1")
        full_path = f"{path}?{query_string}" if query_string else path

        logger.debug("Incoming HTTP request: method=%s path=%s", method, full_path)

        try:
            if self.landing_path and path in ("", "/"):
                logger.debug("Redirecting site root to %s", self.landing_path)
                response = _plain_text(302, "Found", Headers([("Location", self.landing_path)]))
            else:
                request = await self._asgi_to_internal_request(scope, receive)
                response = await self.proxy.handle_request(request)
        except ClientDisconnect as exc:
            logger.debug("Dropping request: method=%s path=%s reason=%s", method, full_path, str(exc))
            return
        except ClientError as exc:
            logger.info("Rejected request: method=%s path=%s reason=%s", method, full_path, exc.reason)
            response = _plain_text(exc.status_code, exc.reason)
        except Exception as exc:
            logger.error(
                "Error processing request: method=%s path=%s error=%s",
                method,
                full_path,
                str(exc),
                exc_info=True,
            )
            await self._report(f"{method} {full_path}", exc)
            response = _plain_text(500, INTERNAL_ERROR_MESSAGE)

        logger.info(
            "Request processed: method=%s path=%s status=%d from_cache=%s",
            method,
            full_path,
            response.status_code,
            response.metadata.get("edgecache_from_cache", False),
        )
        await self._send_internal_response(response, send, method)

    async def _handle_lifespan(self, receive: _Receive, send: _Send) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                try:
                    await self.__aenter__()
                except Exception as exc:
                    logger.error("Startup failed: %s", str(exc), exc_info=True)
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await self.__aexit__()
                await send({"type": "lifespan.shutdown.complete"})
                return

    async def _report(self, title: str, exc: Exception) -> None:
        details = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        if self.background.running:
            self.background.spawn(self.alerter.alert, title, str(exc) or type(exc).__name__, details, name="alert")
        else:
            await self.alerter.alert(title, str(exc) or type(exc).__name__, details)

    async def _asgi_to_internal_request(self, scope: _Scope, receive: _Receive) -> Request:
        """
        Convert an ASGI HTTP scope to an internal Request object.

        The body is read completely: it is inspected for the cache key
        and forwarded afterwards.
        Raises ``ClientDisconnect`` when the client leaves before the body
        is complete, a partial body is never forwarded.
        """
        scheme = scope.get("scheme", "http")
        server = scope.get("server")

        if server is None:
            server = ("localhost", 80)
            logger.debug("No server info in scope, using default: localhost:80")

        host = server[0]
        port = server[1] if server[1] is not None else (443 if scheme == "https" else 80)

        if (scheme == "http" and port != 80) or (scheme == "https" and port != 443):
            host = f"{host}:{port}"

        path = scope.get("path", "/")
        query_string = scope.get("query_string", b"")
        if query_string:
            path = f"{path}?{query_string.decode('latin1')}"

        chunks: t.List[bytes] = []
        while True:
            message = await receive()
            if message["type"] == "http.request":
                chunks.append(message.get("body", b""))
                if not message.get("more_body", False):
                    break
            elif message["type"] == "http.disconnect":
                raise ClientDisconnect(f"client disconnected after {sum(map(len, chunks))} body bytes")

        body = b"".join(chunks)
        headers = Headers(
            [(key.decode("latin1"), value.decode("latin1")) for key, value in scope.get("headers", [])]
        )
        logger.debug(
            "Building internal request: method=%s path=%s headers_count=%d body_bytes=%d",
            scope.get("method", "GET"),
            path,
            len(headers),
            len(body),
        )

        return Request(
            method=scope.get("method", "GET"),
            url=f"{scheme}://{host}{path}",
            headers=headers,
            body=body,
        )

    async def _send_internal_response(self, response: Response, send: _Send, method: str = "GET") -> None:
        if method == "HEAD" and "content-length" in response.headers:
            headers = response.headers
        else:
            headers = response.headers.without(["content-length"])
            headers.add("Content-Length", str(len(response.body)))

        await send(
            {
                "type": "http.response.start",
                "status": response.status_code,
                "headers": [(key.encode("latin1"), value.encode("latin1")) for key, value in headers.items()],
            }
        )
        await send(
            {
                "type": "http.response.body",
                "body": response.body,
                "more_body": False,
            }
        )
        logger.debug("Response sent: status=%d total_bytes=%d", response.status_code, len(response.body))

    async def __aenter__(self) -> "Self":
        await self.background.__aenter__()
        logger.info("EdgeCacheApp started")
        return self

    async def __aexit__(
        self,
        exc_type: t.Optional[t.Type[BaseException]] = None,
        exc_value: t.Optional[BaseException] = None,
        traceback: t.Optional[types.TracebackType] = None,
    ) -> None:
        try:
            await self.background.__aexit__()
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Close the cache tiers and the outbound clients."""
        logger.info("Closing EdgeCacheApp")
        await self.proxy.store.aclose()
        await self.proxy.origin.aclose()
        if self.proxy.transform is not None:
            await self.proxy.transform.aclose()
        await self.alerter.aclose()


def create_app(
    config: Config | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    fast_tier: AsyncBaseTier | None = None,
    durable_tier: AsyncBaseTier | None = None,
) -> EdgeCacheApp:
    """
    Build the application from configuration.

    Values missing from ``config`` are taken from :func:`get_default_config`.
    Tiers that are neither passed in nor configured fall back to in-memory tiers.

    Args:
        config: Configuration overrides.
        client: Client shared by the origin, the twitter card lookup and the alerter.
            Each of them creates its own when None.
        fast_tier: Fast tier to use instead of the configured one.
        durable_tier: Durable tier to use instead of the configured one.
    """
    settings: Config = {**get_default_config(), **(config or {})}  # type: ignore[typeddict-item]

    if fast_tier is None:
        if settings.get("redis_url"):
            fast_tier = AsyncRedisTier.from_url(t.cast(str, settings["redis_url"]))
        else:
            logger.warning("No redis url configured, using an in-memory fast tier")
            fast_tier = AsyncInMemoryTier(name="memory-fast")

    if durable_tier is None:
        if settings.get("s3_bucket"):
            durable_tier = AsyncS3Tier(bucket_name=t.cast(str, settings["s3_bucket"]))
        else:
            logger.warning("No s3 bucket configured, using an in-memory durable tier")
            durable_tier = AsyncInMemoryTier(honour_ttl=False, name="memory-durable")

    store = CacheStore(
        fast_tier,
        durable_tier,
        ttl=settings["cache_ttl"],
        read_repair=settings["read_repair"],
    )

    alerter: AsyncBaseAlerter
    if settings.get("alert_url"):
        alerter = GraphQLAlerter(t.cast(str, settings["alert_url"]), settings["alert_token"], client=client)
    else:
        alerter = LoggingAlerter()

    proxy = EdgeCacheProxy(
        store=store,
        origin=OriginClient(settings["origin_url"], client=client, timeout=settings["origin_timeout"]),
        key_codec=KeyCodec(settings["cache_prefix"]),
        policy=CachePolicy(max_body_size=settings["max_body_size"]),
        transform=TwitterCardTransform(settings["graphql_url"], client=client),
        background=BackgroundTasks(),
    )
    return EdgeCacheApp(proxy, alerter=alerter, landing_path=settings.get("landing_path"))
