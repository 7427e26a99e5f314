import json
import typing as tp

import anyio
import httpx
import pytest

from edgecache.asgi import EdgeCacheApp, create_app

ORIGIN_URL = "http://origin.test"
GRAPHQL_URL = "http://graphql.test/query/"


@pytest.fixture
def app(client, fast_tier, durable_tier) -> EdgeCacheApp:
    return create_app(
        {
            "origin_url": ORIGIN_URL,
            "graphql_url": GRAPHQL_URL,
            "cache_prefix": "v1",
            "landing_path": "/pages/0/",
            "alert_url": GRAPHQL_URL,
            "alert_token": "secret",
        },
        client=client,
        fast_tier=fast_tier,
        durable_tier=durable_tier,
    )


def edge_client(app: EdgeCacheApp) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://edge.test")


async def wait_for_writes(app: EdgeCacheApp) -> None:
    while app.background.pending:
        await anyio.sleep(0.01)


@pytest.mark.anyio
async def test_responses_are_cached_across_requests(app, handler, fast_tier):
    handler.routes[("origin.test", "/resource/42")] = httpx.Response(
        200, headers={"Set-Cookie": "a=1"}, json={"id": 42}
    )

    async with app:
        async with edge_client(app) as edge:
            first = await edge.get("/resource/42")
            await wait_for_writes(app)
            second = await edge.get("/resource/42")

    assert first.status_code == 200
    assert first.json() == {"id": 42}
    assert "x-edge-cache" not in first.headers

    assert second.status_code == 200
    assert second.json() == {"id": 42}
    assert second.headers["x-edge-cache"] == "HIT"
    assert second.headers["set-cookie"] == "a=1"
    assert second.headers["content-length"] == str(len(second.content))
    assert handler.count("origin.test") == 1


@pytest.mark.anyio
async def test_writes_are_finished_when_the_app_stops(app, handler, fast_tier, durable_tier):
    handler.routes[("origin.test", "/resource/42")] = httpx.Response(200, json={"id": 42})

    async with app:
        async with edge_client(app) as edge:
            response = await edge.get("/resource/42")

    assert response.status_code == 200
    assert len(fast_tier) == 1
    assert len(durable_tier) == 1


@pytest.mark.anyio
async def test_request_body_reaches_the_origin(app, handler):
    handler.routes[("origin.test", "/query/")] = httpx.Response(200, json={"data": {"posts": []}})

    async with app:
        async with edge_client(app) as edge:
            response = await edge.post("/query/", content=b'{"query": "{ posts }", "variables": {}}')

    assert response.json() == {"data": {"posts": []}}
    assert handler.requests[0].content == b'{"query":"{ posts }","variables":{}}'


@pytest.mark.anyio
async def test_client_disconnect_drops_the_partial_request(app, handler):
    messages = [
        {"type": "http.request", "body": b"amount=10", "more_body": True},
        {"type": "http.disconnect"},
    ]
    sent: tp.List[tp.Dict[str, tp.Any]] = []

    async def receive() -> tp.Dict[str, tp.Any]:
        return messages.pop(0)

    async def send(message: tp.Dict[str, tp.Any]) -> None:
        sent.append(message)

    scope = {
        "type": "http",
        "method": "POST",
        "scheme": "http",
        "path": "/orders",
        "query_string": b"",
        "headers": [(b"content-type", b"application/x-www-form-urlencoded")],
        "server": ("edge.test", 80),
    }

    async with app:
        await app(scope, receive, send)

    assert sent == []
    assert handler.requests == []


@pytest.mark.anyio
async def test_head_keeps_the_origin_content_length(app, handler):
    handler.routes[("origin.test", "/file")] = httpx.Response(
        200, headers={"Content-Type": "application/octet-stream", "Content-Length": "10"}
    )

    async with app:
        async with edge_client(app) as edge:
            response = await edge.head("/file")

    assert response.status_code == 200
    assert response.headers["content-length"] == "10"
    assert response.content == b""


@pytest.mark.anyio
async def test_root_redirects_to_landing_page(app, handler):
    async with app:
        async with edge_client(app) as edge:
            response = await edge.get("/")

    assert response.status_code == 302
    assert response.headers["location"] == "/pages/0/"
    assert handler.requests == []


@pytest.mark.anyio
async def test_denylisted_request_is_forbidden(app, handler):
    async with app:
        async with edge_client(app) as edge:
            response = await edge.post("/query/", json={"query": "{ a }", "variables": {"type": "pateo"}})

    assert response.status_code == 403
    assert response.headers["content-type"] == "text/plain; charset=utf-8"
    assert response.text == "Request is not allowed"
    assert handler.requests == []


@pytest.mark.anyio
async def test_malformed_request_is_bad_request(app, handler):
    async with app:
        async with edge_client(app) as edge:
            response = await edge.post("/graphql/query/", content=b"{oops")

    assert response.status_code == 400
    assert handler.requests == []


@pytest.mark.anyio
async def test_unexpected_error_is_500_and_alerted(app, handler, monkeypatch):
    handler.routes[("graphql.test", "/query/")] = httpx.Response(
        200, json={"data": {"TelegramMonitorAlert": {"id": 1}}}
    )

    async def explode(request: tp.Any) -> tp.Any:
        raise RuntimeError("proxy exploded")

    monkeypatch.setattr(app.proxy, "handle_request", explode)

    async with app:
        async with edge_client(app) as edge:
            response = await edge.get("/resource/42")

    assert response.status_code == 500
    assert response.text == "Internal Server Error"
    assert "proxy exploded" not in response.text

    alerts = [request for request in handler.requests if request.url.host == "graphql.test"]
    assert len(alerts) == 1
    mutation = json.loads(alerts[0].content)["query"]
    assert "TelegramMonitorAlert" in mutation
    assert "proxy exploded" in mutation


@pytest.mark.anyio
async def test_lifespan_starts_and_drains_the_app(app):
    messages = [{"type": "lifespan.startup"}, {"type": "lifespan.shutdown"}]
    sent: tp.List[tp.Dict[str, tp.Any]] = []

    async def receive() -> tp.Dict[str, tp.Any]:
        return messages.pop(0)

    async def send(message: tp.Dict[str, tp.Any]) -> None:
        sent.append(message)
        if message["type"] == "lifespan.startup.complete":
            assert app.background.running

    await app({"type": "lifespan"}, receive, send)

    assert [message["type"] for message in sent] == ["lifespan.startup.complete", "lifespan.shutdown.complete"]
    assert not app.background.running


def test_create_app_falls_back_to_in_memory_tiers(monkeypatch):
    monkeypatch.delenv("EDGECACHE_REDIS_URL", raising=False)
    monkeypatch.delenv("EDGECACHE_S3_BUCKET", raising=False)

    app = create_app({"origin_url": ORIGIN_URL})

    assert app.proxy.store.fast.name == "memory-fast"
    assert app.proxy.store.durable.name == "memory-durable"
    assert app.proxy.origin.origin_url == ORIGIN_URL
