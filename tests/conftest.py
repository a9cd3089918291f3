"""Shared fixtures: an in-process fake of the media API behind httpx.MockTransport."""
import inspect
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

# endpoints.py lives at the project root
_PROJECT_ROOT = Path(__file__).parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

import httpx
import pytest
import pytest_asyncio

from mediadash.config import Settings
from mediadash.models import User
from mediadash.state import AppState

BASE_URL = "http://api.test"
USER = User(id="u1", name="Ada", email="ada@example.com")


def file_row(file_id: str, name: Optional[str] = None, mime: str = "image/png", size: int = 10, views: int = 0) -> Dict[str, Any]:
    return {
        "file_id": file_id,
        "name": name or f"{file_id}.png",
        "type": mime,
        "size": size,
        "url": f"https://cdn.test/{file_id}",
        "tags": ["demo"],
        "viewCount": views,
        "createdAt": "2026-01-01T00:00:00Z",
        "updatedAt": "2026-01-01T00:00:00Z",
    }


def listing(*ids: str) -> Dict[str, Any]:
    return {"result": [file_row(i) for i in ids]}


class FakeBackend:
    def __init__(self) -> None:
        self.calls: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], Callable[[httpx.Request], Any]] = {}

    def route(self, method: str, path: str, handler: Optional[Callable[[httpx.Request], Any]] = None, status: int = 200, json: Any = None) -> None:
        if handler is None:
            def handler(_request, status=status, payload=json):
                return httpx.Response(status, json=payload if payload is not None else {})
        self.routes[(method, path)] = handler

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": "no route"})
        result = handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    def requests(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.calls if r.method == method and r.url.path == path]


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        api_url=BASE_URL,
        search_debounce=0.05,
        copied_reset=0.05,
        session_path=str(tmp_path / "session.json"),
        http_log_path=None,
    )


@pytest_asyncio.fixture
async def app(settings, backend):
    state = AppState.create(settings, transport=httpx.MockTransport(backend))
    yield state
    await state.aclose()


@pytest_asyncio.fixture
async def signed_in(app):
    app.session.store.save("tok-1", USER)
    app.session.bootstrap()
    return app
