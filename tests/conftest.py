import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from docanalysis.clients.http import KEY_HEADER
from docanalysis.utils.config import Settings
from docanalysis.utils.credentials import Credentials

TEST_KEY = "test-key"
RESULT_ID = "ABC123"


def running():
    return {"status": "running", "createdDateTime": "2024-01-01T00:00:00Z"}


def succeeded(content="Hello world", pages=1):
    return {
        "status": "succeeded",
        "analyzeResult": {
            "apiVersion": "2024-11-30",
            "modelId": "prebuilt-layout",
            "content": content,
            "pages": [{"pageNumber": n + 1} for n in range(pages)],
            "tables": [],
            "paragraphs": [{"content": content}],
        },
    }


class FakeDocumentService:
    """In-process stand-in for the remote analyze/analyzeResults endpoints."""

    def __init__(self):
        self.base_url = None
        self.submissions = []
        self.fetches = []
        self.results = {}
        self.result_id = RESULT_ID
        self.submit_status = 202
        self.submit_error_body = ""
        self.location_header = "Operation-Location"
        self.operation_location = None
        self.send_location = True
        self.fetch_status = None
        self.fetch_error_body = ""

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/documentModels/{model_action}", self.handle_submit)
        app.router.add_get("/documentModels/{model_id}/analyzeResults/{result_id}", self.handle_result)
        return app

    def queue(self, result_id, *payloads):
        """Responses served in order for ``result_id``; the last one repeats."""
        self.results[result_id] = list(payloads)

    async def handle_submit(self, request: web.Request) -> web.Response:
        model_id, _, action = request.match_info["model_action"].partition(":")
        body = await request.read()
        self.submissions.append({
            "model_id": model_id,
            "action": action,
            "content_type": request.content_type,
            "body": body,
            "query": dict(request.query),
            "key": request.headers.get(KEY_HEADER),
        })
        if self.submit_status >= 300:
            return web.Response(status=self.submit_status, text=self.submit_error_body)

        headers = {}
        if self.send_location:
            location = self.operation_location or (
                f"{self.base_url}documentModels/{model_id}/analyzeResults/"
                f"{self.result_id}?api-version={request.query.get('api-version')}"
            )
            headers[self.location_header] = location
        return web.Response(status=self.submit_status, headers=headers)

    async def handle_result(self, request: web.Request) -> web.Response:
        result_id = request.match_info["result_id"]
        self.fetches.append({
            "model_id": request.match_info["model_id"],
            "result_id": result_id,
            "query": dict(request.query),
            "key": request.headers.get(KEY_HEADER),
        })
        if self.fetch_status is not None:
            return web.Response(status=self.fetch_status, text=self.fetch_error_body)
        payloads = self.results.get(result_id)
        if not payloads:
            return web.json_response(
                {"error": {"code": "NotFound", "message": "Resource not found."}},
                status=404,
            )
        payload = payloads.pop(0) if len(payloads) > 1 else payloads[0]
        return web.json_response(payload)


class FakeClock:
    """Monotonic clock that only moves when ``sleep`` is awaited."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


class InMemoryCache:
    def __init__(self):
        self.entries = {}

    async def get(self, model_id, result_id):
        return self.entries.get((model_id, result_id))

    async def set(self, result):
        if result.status.value not in ("succeeded", "failed"):
            return False
        self.entries[(result.model_id, result.result_id)] = result
        return True

    async def health_check(self):
        return True

    async def close(self):
        pass


@pytest_asyncio.fixture
async def service():
    fake = FakeDocumentService()
    server = TestServer(fake.make_app())
    await server.start_server()
    fake.base_url = str(server.make_url("/"))
    yield fake
    await server.close()


@pytest_asyncio.fixture
async def session():
    async with aiohttp.ClientSession() as client_session:
        yield client_session


@pytest.fixture
def credentials(service):
    return Credentials(key=TEST_KEY, endpoint=service.base_url)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(service, tmp_path):
    return Settings(
        _env_file=None,
        document_intelligence_key=TEST_KEY,
        document_intelligence_endpoint=service.base_url,
        output_dir=str(tmp_path / "results"),
        poll_interval=5.0,
        max_wait=300.0,
    )
