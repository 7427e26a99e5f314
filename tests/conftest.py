import typing as tp

import httpx
import pytest

from edgecache import AsyncBaseTier, AsyncInMemoryTier, CacheStore

ORIGIN_URL = "http://origin.test"
GRAPHQL_URL = "http://graphql.test/query/"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class FailingTier(AsyncBaseTier):
    """A tier whose backend is down."""

    def __init__(self, name: str = "failing") -> None:
        self.name = name
        self.get_calls = 0
        self.put_calls = 0

    async def get(self, key: str) -> tp.Optional[str]:
        self.get_calls += 1
        raise ConnectionError("tier is down")

    async def put(self, key: str, value: str, ttl: int) -> None:
        self.put_calls += 1
        raise ConnectionError("tier is down")


class RecordingHandler:
    """
    A ``httpx.MockTransport`` handler answering from a table of canned responses.

    Every request it sees is kept in ``requests``.
    """

    def __init__(self, routes: tp.Optional[tp.Dict[tp.Tuple[str, str], httpx.Response]] = None) -> None:
        self.routes = routes or {}
        self.requests: tp.List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.url.host, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, text="not found")
        template = self.routes[key]
        return httpx.Response(template.status_code, headers=template.headers, content=template.content)

    def count(self, host: str, path: tp.Optional[str] = None) -> int:
        return sum(
            1 for request in self.requests if request.url.host == host and (path is None or request.url.path == path)
        )


@pytest.fixture
def fast_tier() -> AsyncInMemoryTier:
    return AsyncInMemoryTier(name="fast")


@pytest.fixture
def durable_tier() -> AsyncInMemoryTier:
    return AsyncInMemoryTier(honour_ttl=False, name="durable")


@pytest.fixture
def store(fast_tier: AsyncInMemoryTier, durable_tier: AsyncInMemoryTier) -> CacheStore:
    return CacheStore(fast_tier, durable_tier, ttl=60)


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
async def client(handler: RecordingHandler) -> tp.AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        yield client


@pytest.fixture
def failing_tier() -> tp.Type[FailingTier]:
    return FailingTier
