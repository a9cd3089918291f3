import httpx
import pytest

from mediadash.client import ApiClient
from mediadash.errors import AuthFailure, NetworkFailure, NotFoundOrForbidden

from conftest import BASE_URL


def _client(handler, token="tok"):
    client = ApiClient(BASE_URL, token_provider=lambda: token, transport=httpx.MockTransport(handler))
    client.rejected = []

    def on_unauthorized(rejected):
        client.rejected.append(rejected)

    client.on_unauthorized = on_unauthorized
    return client


@pytest.mark.asyncio
async def test_bearer_token_attached_to_protected_calls():
    seen = []

    def handler(request):
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200, json={})

    client = _client(handler)
    await client.request("GET", "/files")
    await client.request("POST", "/auth/login", auth=False, json={})
    await client.aclose()

    assert seen == ["Bearer tok", None]


@pytest.mark.asyncio
async def test_missing_token_fails_without_network():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    client = _client(handler, token=None)
    with pytest.raises(AuthFailure):
        await client.request("GET", "/files")
    await client.aclose()

    assert calls == []
    assert client.rejected == [None]


@pytest.mark.asyncio
async def test_401_on_protected_call_notifies_session():
    client = _client(lambda request: httpx.Response(401, json={"message": "expired"}))
    with pytest.raises(AuthFailure) as info:
        await client.request("GET", "/files")
    await client.aclose()

    assert info.value.status_code == 401
    assert client.rejected == ["tok"]


@pytest.mark.asyncio
async def test_401_on_login_does_not_notify_session():
    client = _client(lambda request: httpx.Response(401, json={}))
    with pytest.raises(AuthFailure):
        await client.request("POST", "/auth/login", auth=False, json={})
    await client.aclose()

    assert client.rejected == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [403, 404])
async def test_forbidden_and_missing_map_to_not_found(status):
    client = _client(lambda request: httpx.Response(status, json={}))
    with pytest.raises(NotFoundOrForbidden):
        await client.request("GET", "/files/shared/x")
    await client.aclose()


@pytest.mark.asyncio
async def test_server_and_transport_errors_map_to_network_failure():
    client = _client(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(NetworkFailure) as info:
        await client.request("GET", "/files")
    assert info.value.status_code == 500
    await client.aclose()

    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(unreachable)
    with pytest.raises(NetworkFailure):
        await client.request("GET", "/files")
    await client.aclose()


@pytest.mark.asyncio
async def test_http_log_redacts_credentials(tmp_path):
    log_path = tmp_path / "http.log"
    client = _client(lambda request: httpx.Response(200, json={"token": "secret-token"}))
    client.http_log_path = str(log_path)
    await client.request("POST", "/auth/login", auth=False, json={"email": "a@b.c", "password": "hunter2"})
    await client.request("GET", "/files")
    await client.aclose()

    text = log_path.read_text(encoding="utf-8")
    assert "hunter2" not in text
    assert "secret-token" not in text
    assert "Bearer tok" not in text
    assert "a@b.c" in text
