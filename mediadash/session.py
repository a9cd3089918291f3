import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple
from urllib.parse import quote

from . import api
from .client import ApiClient
from .errors import AuthFailure, MediaDashError
from .models import Session, SessionStatus, User
from .session_store import TokenStore
from .utils import get_logger

LOGIN_PATH = "/login"


def login_redirect(path: Optional[str] = None) -> str:
    if not path:
        return LOGIN_PATH
    return f"{LOGIN_PATH}?redirect={quote(path, safe='/')}"


class GuardOutcome(str, Enum):
    RENDER = "render"
    LOADING = "loading"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class GuardDecision:
    outcome: GuardOutcome
    redirect_to: Optional[str] = None


class SessionController:
    def __init__(self, client: ApiClient, store: TokenStore) -> None:
        self.client = client
        self.store = store
        self.session = Session()
        self.logger = get_logger("mediadash.session")
        self._listeners: List[Callable[[Session], None]] = []
        # Bumped by every transition; results from an older epoch are dropped.
        self._epoch = 0
        self._verify_task: Optional[asyncio.Task] = None
        client.token_provider = self._current_token
        client.on_unauthorized = self._on_unauthorized

    def _current_token(self) -> Optional[str]:
        return self.session.token

    def subscribe(self, callback: Callable[[Session], None]) -> None:
        self._listeners.append(callback)

    def _set(self, **changes) -> None:
        for key, value in changes.items():
            setattr(self.session, key, value)
        for callback in list(self._listeners):
            callback(self.session)

    def _reset(self, error: Optional[str] = None) -> None:
        status = SessionStatus.ERROR if error else SessionStatus.ANONYMOUS
        self._set(user=None, token=None, status=status, error=error, verified=False)

    def _clear(self) -> None:
        try:
            self.store.clear()
        except OSError as exc:
            self.logger.warning("Could not remove session file %s: %s", self.store.path, exc)
        self._reset()

    def bootstrap(self) -> Session:
        stored = self.store.load()
        if stored is None:
            self._reset()
            return self.session
        token, user = stored
        # Trusted until the first guarded view verifies it.
        self._set(user=user, token=token, status=SessionStatus.AUTHENTICATED, error=None, verified=False)
        self.logger.debug("Session restored for %s", user.email)
        return self.session

    async def login(self, email: str, password: str) -> Session:
        return await self._sign_in(api.authenticate(self.client, email, password), "Login failed")

    async def register(self, name: str, email: str, password: str) -> Session:
        return await self._sign_in(api.register(self.client, name, email, password), "Registration failed")

    async def _sign_in(self, call: Awaitable[Tuple[User, str]], failure: str) -> Session:
        self._epoch += 1
        epoch = self._epoch
        self._clear()
        self._set(status=SessionStatus.VERIFYING)
        try:
            user, token = await call
        except AuthFailure:
            if epoch == self._epoch:
                self._reset(error=failure)
            return self.session
        except MediaDashError as exc:
            if epoch == self._epoch:
                self.logger.info("%s: %s", failure, exc.message)
                self._reset(error=f"{failure}: {exc.message}")
            return self.session
        if epoch != self._epoch:
            return self.session
        try:
            self.store.save(token, user)
        except OSError as exc:
            self.logger.warning("Could not persist session to %s: %s", self.store.path, exc)
            self._reset(error=f"{failure}: session could not be saved")
            return self.session
        self._set(user=user, token=token, status=SessionStatus.AUTHENTICATED, error=None, verified=True)
        self.logger.info("Signed in as %s", user.email)
        return self.session

    async def verify(self) -> Session:
        # Concurrent callers share the same in-flight check.
        if self._verify_task is None or self._verify_task.done():
            self._verify_task = asyncio.ensure_future(self._verify())
        return await asyncio.shield(self._verify_task)

    async def _verify(self) -> Session:
        token = self.session.token
        if not token:
            stored = self.store.load()
            token = stored[0] if stored else None
        if not token:
            self._clear()
            return self.session
        self._epoch += 1
        epoch = self._epoch
        self._set(user=None, token=token, status=SessionStatus.VERIFYING, error=None, verified=False)
        try:
            user = await api.verify_identity(self.client)
        except MediaDashError as exc:
            if epoch == self._epoch:
                self.logger.info("Session verification failed: %s", exc.message)
                self._clear()
            return self.session
        if epoch != self._epoch:
            return self.session
        try:
            self.store.save(token, user)
        except OSError as exc:
            self.logger.warning("Could not persist session to %s: %s", self.store.path, exc)
            self._clear()
            return self.session
        self._set(user=user, status=SessionStatus.AUTHENTICATED, verified=True)
        return self.session

    def logout(self) -> Session:
        self._epoch += 1
        self._clear()
        return self.session

    def clear_error(self) -> None:
        if self.session.status is SessionStatus.ERROR:
            self._reset()

    def _on_unauthorized(self, token: Optional[str]) -> None:
        if token != self.session.token:
            self.logger.debug("Ignoring rejection of a superseded token")
            return
        if token:
            self.logger.warning("Session rejected by the backend, signing out")
        self.logout()

    def guard(self, path: Optional[str] = None) -> GuardDecision:
        status = self.session.status
        if status is SessionStatus.AUTHENTICATED:
            return GuardDecision(GuardOutcome.RENDER)
        if status is SessionStatus.VERIFYING:
            return GuardDecision(GuardOutcome.LOADING)
        return GuardDecision(GuardOutcome.REDIRECT, redirect_to=login_redirect(path))

    async def ensure_authenticated(self, path: Optional[str] = None) -> GuardDecision:
        session = self.session
        if session.is_authenticated and session.verified:
            return self.guard(path)
        verifying = self._verify_task is not None and not self._verify_task.done()
        if session.status is SessionStatus.VERIFYING and not verifying:
            # A login or register is in flight.
            return self.guard(path)
        if verifying or session.token or self.store.load() is not None:
            await self.verify()
        return self.guard(path)
