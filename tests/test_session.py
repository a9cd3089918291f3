import asyncio

import httpx
import pytest

from mediadash.models import SessionStatus
from mediadash.session import GuardOutcome, login_redirect

from conftest import USER

AUTH_OK = {"user": USER.to_dict(), "token": "tok-new"}


@pytest.mark.asyncio
async def test_bootstrap_without_stored_token_is_anonymous(app):
    session = app.session.bootstrap()
    assert session.status is SessionStatus.ANONYMOUS
    assert session.user is None and session.token is None


@pytest.mark.asyncio
async def test_bootstrap_trusts_stored_token_without_network(app, backend):
    app.session.store.save("tok-1", USER)
    session = app.session.bootstrap()

    assert session.status is SessionStatus.AUTHENTICATED
    assert session.user == USER and session.token == "tok-1"
    assert session.verified is False
    assert backend.calls == []


@pytest.mark.asyncio
async def test_login_success_persists_token_and_user(app, backend):
    backend.route("POST", "/auth/login", json=AUTH_OK)
    statuses = []
    app.session.subscribe(lambda s: statuses.append(s.status))

    session = await app.session.login("ada@example.com", "pw")

    assert session.status is SessionStatus.AUTHENTICATED
    assert session.token == "tok-new" and session.user == USER
    assert app.session.store.load() == ("tok-new", USER)
    assert SessionStatus.VERIFYING in statuses


@pytest.mark.asyncio
async def test_login_failure_sets_error_and_leaves_store_empty(app, backend):
    backend.route("POST", "/auth/login", status=401, json={"message": "bad"})

    session = await app.session.login("ada@example.com", "wrong")

    assert session.status is SessionStatus.ERROR
    assert session.error == "Login failed"
    assert session.user is None and session.token is None
    assert app.session.store.load() is None

    app.session.clear_error()
    assert app.session.session.status is SessionStatus.ANONYMOUS


@pytest.mark.asyncio
async def test_register_network_failure_reports_error(app, backend):
    backend.route("POST", "/auth/register", status=503, json={})

    session = await app.session.register("Ada", "ada@example.com", "pw")

    assert session.status is SessionStatus.ERROR
    assert session.error.startswith("Registration failed")


@pytest.mark.asyncio
async def test_login_persist_failure_is_not_a_partial_session(app, backend, monkeypatch):
    backend.route("POST", "/auth/login", json=AUTH_OK)

    def broken_save(token, user):
        raise OSError("disk full")

    monkeypatch.setattr(app.session.store, "save", broken_save)
    session = await app.session.login("ada@example.com", "pw")

    assert session.status is SessionStatus.ERROR
    assert session.token is None and session.user is None


@pytest.mark.asyncio
async def test_verify_with_expired_token_clears_everything(signed_in, backend):
    app = signed_in
    backend.route("GET", "/auth/verify", status=401, json={"message": "expired"})

    session = await app.session.verify()

    assert session.status is SessionStatus.ANONYMOUS
    assert session.token is None
    assert app.session.store.load() is None
    decision = app.session.guard("/dashboard")
    assert decision.outcome is GuardOutcome.REDIRECT
    assert decision.redirect_to == "/login?redirect=/dashboard"


@pytest.mark.asyncio
async def test_verify_network_failure_also_signs_out(signed_in, backend):
    app = signed_in
    backend.route("GET", "/auth/verify", status=500, json={})

    session = await app.session.verify()

    assert session.status is SessionStatus.ANONYMOUS
    assert app.session.store.load() is None


@pytest.mark.asyncio
async def test_concurrent_verify_calls_share_one_request(signed_in, backend):
    app = signed_in
    gate = asyncio.Event()
    reached = asyncio.Event()

    async def handler(request):
        reached.set()
        await gate.wait()
        return httpx.Response(200, json={"user": USER.to_dict()})

    backend.route("GET", "/auth/verify", handler)

    first = asyncio.ensure_future(app.session.verify())
    second = asyncio.ensure_future(app.session.verify())
    await reached.wait()
    assert app.session.guard().outcome is GuardOutcome.LOADING
    gate.set()
    results = await asyncio.gather(first, second)

    assert len(backend.requests("GET", "/auth/verify")) == 1
    assert all(s.status is SessionStatus.AUTHENTICATED for s in results)
    assert app.session.session.verified is True
    assert backend.requests("GET", "/auth/verify")[0].headers["Authorization"] == "Bearer tok-1"


@pytest.mark.asyncio
async def test_logout_during_verify_wins(signed_in, backend):
    app = signed_in
    gate = asyncio.Event()

    async def handler(request):
        await gate.wait()
        return httpx.Response(200, json={"user": USER.to_dict()})

    backend.route("GET", "/auth/verify", handler)

    pending = asyncio.ensure_future(app.session.verify())
    await asyncio.sleep(0.01)
    app.session.logout()
    gate.set()
    await pending

    assert app.session.session.status is SessionStatus.ANONYMOUS
    assert app.session.store.load() is None


@pytest.mark.asyncio
async def test_ensure_authenticated_verifies_restored_session_once(signed_in, backend):
    app = signed_in
    backend.route("GET", "/auth/verify", json={"user": USER.to_dict()})

    first = await app.session.ensure_authenticated("/dashboard")
    second = await app.session.ensure_authenticated("/dashboard")

    assert first.outcome is GuardOutcome.RENDER
    assert second.outcome is GuardOutcome.RENDER
    assert len(backend.requests("GET", "/auth/verify")) == 1


@pytest.mark.asyncio
async def test_ensure_authenticated_without_token_redirects(app, backend):
    app.session.bootstrap()

    decision = await app.session.ensure_authenticated("/dashboard")

    assert decision.outcome is GuardOutcome.REDIRECT
    assert decision.redirect_to == login_redirect("/dashboard")
    assert backend.calls == []


@pytest.mark.asyncio
async def test_protected_call_rejected_signs_out(signed_in, backend):
    app = signed_in
    backend.route("GET", "/files", status=401, json={})

    await app.listing.refresh()

    assert app.session.session.status is SessionStatus.ANONYMOUS
    assert app.session.store.load() is None
    assert app.session.guard("/dashboard").outcome is GuardOutcome.REDIRECT


@pytest.mark.asyncio
async def test_late_rejection_of_old_token_keeps_new_session(signed_in, backend):
    app = signed_in
    gate = asyncio.Event()
    reached = asyncio.Event()

    async def slow_reject(request):
        reached.set()
        await gate.wait()
        return httpx.Response(401, json={"message": "expired"})

    backend.route("GET", "/files", slow_reject)
    backend.route("POST", "/auth/login", json={"user": USER.to_dict(), "token": "tok-2"})

    pending = app.listing.refresh()
    await reached.wait()
    await app.session.login("ada@example.com", "pw")
    gate.set()
    await pending

    assert backend.requests("GET", "/files")[0].headers["Authorization"] == "Bearer tok-1"
    session = app.session.session
    assert session.status is SessionStatus.AUTHENTICATED
    assert session.token == "tok-2"
    assert app.session.store.load() == ("tok-2", USER)
