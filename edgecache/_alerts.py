from __future__ import annotations

import json
import logging
import typing as tp

import httpx

logger = logging.getLogger("edgecache.alerts")

__all__ = ("AsyncBaseAlerter", "LoggingAlerter", "GraphQLAlerter")


class AsyncBaseAlerter:
    """
    Receives reports of unexpected failures.

    Alerting must never become a second failure: implementations swallow and
    log their own errors instead of raising them.
    """

    async def alert(self, title: str, message: str, details: str = "") -> None:
        raise NotImplementedError()

    async def aclose(self) -> None:
        return


class LoggingAlerter(AsyncBaseAlerter):
    async def alert(self, title: str, message: str, details: str = "") -> None:
        logger.error(f"{title} got error: {message}\n{details}")


class GraphQLAlerter(AsyncBaseAlerter):
    """
    Sends alerts through the ``TelegramMonitorAlert`` mutation of a GraphQL API.

    :param url: The GraphQL endpoint
    :type url: str
    :param token: Token authorizing the alert mutation
    :type token: str
    :param client: The client used to send alerts, defaults to a new ``httpx.AsyncClient``
    :type client: tp.Optional[httpx.AsyncClient], optional
    :param alert_type: Channel the monitor routes the alert to, defaults to "laisky"
    :type alert_type: str, optional
    :param source: Name of this service in the alert text, defaults to "edgecache"
    :type source: str, optional
    """

    def __init__(
        self,
        url: str,
        token: str,
        client: tp.Optional[httpx.AsyncClient] = None,
        alert_type: str = "laisky",
        source: str = "edgecache",
    ) -> None:
        self.url = url
        self._token = token
        self._alert_type = alert_type
        self._source = source
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient()

    def build_mutation(self, title: str, message: str, details: str = "") -> str:
        text = f"{self._source}: {title} got error:\n{message}\n\nDetails: {details}"
        return (
            "mutation alert {\n"
            "  TelegramMonitorAlert(\n"
            f"    type: {json.dumps(self._alert_type)}\n"
            f"    token: {json.dumps(self._token)}\n"
            f"    msg: {json.dumps(text)}\n"
            "  ) {\n"
            "    id\n"
            "  }\n"
            "}"
        )

    async def alert(self, title: str, message: str, details: str = "") -> None:
        logger.info(f"Sending alert: {message}")
        try:
            response = await self._client.post(
                self.url,
                json={"query": self.build_mutation(title, message, details)},
                headers={"Accept": "application/json"},
            )
            if not response.is_success:
                logger.error(f"Failed to send alert: HTTP {response.status_code}")
                return

            result = response.json()
            if isinstance(result, dict) and result.get("errors"):
                logger.error(f"Alert API returned errors: {json.dumps(result['errors'])}")
                return
        except Exception as exc:
            # An alert about a failing alert would loop.
            logger.error(f"Error sending alert: {exc!r}")
            return

        logger.debug("Alert sent")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
