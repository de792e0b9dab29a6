import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from reinfolib_mcp.config import Settings


def make_settings(**overrides) -> Settings:
    data = {
        "REINFOLIB_API_KEY": "test-key",
        "backoff_base_s": 0.0,
        "rps": 1000.0,
        "max_retries": 2,
    }
    data.update(overrides)
    return Settings.model_validate(data)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


class FakeReinfolib:
    """In-process stand-in for the reinfolib REST API."""

    def __init__(self):
        self.requests = []
        self.replies = {}
        self.base_url = ""

    def reply(self, endpoint, *replies):
        """Queue (status, payload) replies; the last one repeats."""
        self.replies[endpoint] = list(replies)

    async def handle(self, request: web.Request) -> web.Response:
        endpoint = request.match_info["endpoint"]
        self.requests.append({
            "endpoint": endpoint,
            "query": dict(request.query),
            "headers": dict(request.headers),
        })
        queue = self.replies.get(endpoint) or [(200, {"status": "OK", "data": []})]
        status, payload = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(payload, bytes):
            return web.Response(status=status, body=payload, content_type="application/x-protobuf")
        if isinstance(payload, str):
            return web.Response(status=status, text=payload)
        return web.json_response(payload, status=status)


@pytest_asyncio.fixture
async def fake_api():
    fake = FakeReinfolib()
    app = web.Application()
    app.router.add_get("/ex-api/external/{endpoint:.+}", fake.handle)
    server = test_utils.TestServer(app)
    await server.start_server()
    fake.base_url = str(server.make_url("/ex-api/external"))
    yield fake
    await server.close()


class FakeClient:
    """Records client calls made by the tool layer."""

    def __init__(self, result=None, error=None):
        self.calls = []
        self.result = {"status": "OK", "data": [{"ID": "1"}, {"ID": "2"}]} if result is None else result
        self.error = error
        self.closed = False

    def __getattr__(self, name):
        if not name.startswith("get"):
            raise AttributeError(name)

        async def method(*args):
            self.calls.append((name, args))
            if self.error is not None:
                raise self.error
            return self.result

        return method

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()
