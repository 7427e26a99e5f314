import json

import httpx
import pytest

from edgecache import GraphQLAlerter, LoggingAlerter

ALERT_URL = "http://graphql.test/query/"


@pytest.mark.anyio
async def test_alert_posts_monitor_mutation(handler, client):
    handler.routes[("graphql.test", "/query/")] = httpx.Response(
        200, json={"data": {"TelegramMonitorAlert": {"id": "1"}}}
    )
    alerter = GraphQLAlerter(ALERT_URL, token="secret", client=client)

    await alerter.alert("GET /p/hello/", "boom", "Traceback ...")

    sent = handler.requests[0]
    assert sent.method == "POST"
    query = json.loads(sent.content)["query"]
    assert "TelegramMonitorAlert(" in query
    assert 'type: "laisky"' in query
    assert 'token: "secret"' in query
    assert 'msg: "edgecache: GET /p/hello/ got error:\\nboom\\n\\nDetails: Traceback ..."' in query


def test_mutation_escapes_values():
    alerter = GraphQLAlerter(ALERT_URL, token='to"ken', client=httpx.AsyncClient())

    mutation = alerter.build_mutation("title", 'bad "quote"')

    assert 'token: "to\\"ken"' in mutation
    assert 'bad \\"quote\\"' in mutation


@pytest.mark.parametrize(
    "alert_response",
    [
        httpx.Response(500, text="down"),
        httpx.Response(200, json={"errors": [{"message": "bad token"}]}),
        httpx.Response(200, text="not json"),
    ],
)
@pytest.mark.anyio
async def test_alert_failures_are_logged_not_raised(handler, client, alert_response, caplog):
    handler.routes[("graphql.test", "/query/")] = alert_response
    alerter = GraphQLAlerter(ALERT_URL, token="secret", client=client)

    await alerter.alert("title", "boom")

    assert any(record.levelname == "ERROR" for record in caplog.records)


@pytest.mark.anyio
async def test_unreachable_alert_api_is_not_raised():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as client:
        await GraphQLAlerter(ALERT_URL, token="secret", client=client).alert("title", "boom")


@pytest.mark.anyio
async def test_logging_alerter(caplog):
    await LoggingAlerter().alert("GET /", "boom", "details")

    assert "GET / got error: boom" in caplog.text
