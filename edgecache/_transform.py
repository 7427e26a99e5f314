from __future__ import annotations

import json
import logging
import re
import typing as tp

import httpx

logger = logging.getLogger("edgecache.transform")

__all__ = ("TwitterCardTransform", "post_name_from_path")

_POST_NAME = re.compile(r"/p/([^/?#]+)")
_HEAD_CLOSE = re.compile(r"</head>", re.IGNORECASE)


def post_name_from_path(path: str) -> tp.Optional[str]:
    """
    Extracts the post name from a post page path.

    Examples:
        >>> post_name_from_path("/p/hello-world/")
        'hello-world'
        >>> post_name_from_path("/about/") is None
        True
    """
    match = _POST_NAME.search(path)
    return match.group(1) if match else None


class TwitterCardTransform:
    """
    Inserts the social card markup of a blog post into its page.

    The card is looked up from the GraphQL API by post name and placed right
    before the closing ``</head>`` tag. The transform is best effort: whatever
    goes wrong, the page is returned exactly as it was given.

    :param graphql_url: Endpoint of the GraphQL API serving ``BlogTwitterCard``
    :type graphql_url: str
    :param client: The client used for the lookup, defaults to a new ``httpx.AsyncClient``
    :type client: tp.Optional[httpx.AsyncClient], optional
    """

    def __init__(self, graphql_url: str, client: tp.Optional[httpx.AsyncClient] = None) -> None:
        self.graphql_url = graphql_url
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient()

    def build_query(self, post_name: str) -> tp.Dict[str, tp.Any]:
        # json.dumps yields a valid GraphQL string literal, quotes and backslashes included.
        return {
            "operationName": "blog",
            "query": f"query blog {{BlogTwitterCard(name: {json.dumps(post_name)})}}",
            "variables": {},
        }

    async def fetch_card(self, post_name: str) -> tp.Optional[str]:
        try:
            response = await self._client.post(self.graphql_url, json=self.build_query(post_name))
        except httpx.HTTPError as exc:
            logger.warning(f"Failed to fetch the twitter card of `{post_name}`: {exc!r}")
            return None

        if not response.is_success:
            logger.warning(f"Failed to fetch the twitter card of `{post_name}`: status {response.status_code}")
            return None

        try:
            card = response.json()["data"]["BlogTwitterCard"]
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning(f"Malformed twitter card response for `{post_name}`: {exc!r}")
            return None

        if not isinstance(card, str) or not card:
            logger.debug(f"No twitter card for `{post_name}`")
            return None
        return card

    @staticmethod
    def inject(html: str, fragment: str) -> tp.Optional[str]:
        """
        Places the fragment before the first closing head tag.

        Returns None when the page has no ``</head>``.

        Examples:
            >>> TwitterCardTransform.inject("<HEAD></HEAD><body/>", "<meta>")
            '<HEAD><meta></HEAD><body/>'
        """
        match = _HEAD_CLOSE.search(html)
        if match is None:
            return None
        return html[: match.start()] + fragment + html[match.start() :]

    async def transform(self, html: str, post_name: str) -> str:
        card = await self.fetch_card(post_name)
        if card is None:
            return html

        injected = self.inject(html, card)
        if injected is None:
            logger.warning(f"Page of `{post_name}` has no </head>, twitter card not inserted")
            return html

        logger.debug(f"Inserted the twitter card of `{post_name}`")
        return injected

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
