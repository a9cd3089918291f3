import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Union

from . import api
from .client import ApiClient
from .errors import AuthFailure, MediaDashError, NotFoundOrForbidden
from .listing import SESSION_EXPIRED
from .models import FileRecord, InviteState, LinkState, ShareSession, ShareTab
from .session import login_redirect
from .tasks import TaskRunner
from .utils import get_logger

INVITE_FAILED = "Failed to share file. Please try again."
LINK_FAILED = "Failed to generate link."
INVITE_EMAIL_REQUIRED = "Please enter an email address."
SHARED_DENIED = "Invalid link or you do not have permission to view this file."


@dataclass
class InviteAttempt:
    email: str
    sent_at: datetime
    state: InviteState = InviteState.SENDING


class ShareWorkflow:
    def __init__(
        self,
        client: ApiClient,
        file_id: str,
        file_name: str = "",
        copied_reset: float = 2.0,
        runner: Optional[TaskRunner] = None,
    ) -> None:
        self.client = client
        self.file_id = file_id
        self.file_name = file_name
        self.copied_reset = copied_reset
        self.state = ShareSession()
        self.error: Optional[str] = None
        self.success: Optional[str] = None
        self.copied = False
        self.attempts: List[InviteAttempt] = []
        self.link_requests = 0
        self.logger = get_logger("mediadash.share")
        self._runner = runner or TaskRunner("mediadash.share")
        self._link_task: Optional[asyncio.Task] = None
        self._copied_handle: Optional[asyncio.TimerHandle] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def activate_tab(self, tab: Union[ShareTab, str]) -> Optional[asyncio.Task]:
        self.state.active_tab = ShareTab(tab)
        self.error = None
        self.success = None
        if self.state.active_tab is ShareTab.LINK and self.state.link_state is LinkState.NOT_REQUESTED:
            return self._start_link()
        return None

    def retry_link(self) -> Optional[asyncio.Task]:
        if self.state.link_state is not LinkState.FAILED:
            return None
        self.error = None
        return self._start_link()

    def _start_link(self) -> Optional[asyncio.Task]:
        if self._closed:
            return None
        self.state.link_state = LinkState.GENERATING
        self.link_requests += 1
        self._link_task = self._runner.run(self._generate_link())
        return self._link_task

    async def _generate_link(self) -> None:
        try:
            url = await api.generate_share_link(self.client, self.file_id)
        except MediaDashError as exc:
            if self._closed:
                return
            self.logger.warning("Share link for %s failed: %s", self.file_id, exc.message)
            self.state.link_state = LinkState.FAILED
            if self.state.active_tab is ShareTab.LINK:
                self.error = SESSION_EXPIRED if isinstance(exc, AuthFailure) else LINK_FAILED
            return
        if self._closed:
            return
        self.state.link_url = url
        self.state.link_state = LinkState.READY

    async def send_invite(self, email: str) -> bool:
        email = (email or "").strip()
        if self._closed:
            return False
        if not email:
            self.error = INVITE_EMAIL_REQUIRED
            self.success = None
            return False
        attempt = InviteAttempt(email=email, sent_at=datetime.now(timezone.utc))
        self.attempts.append(attempt)
        self.state.invite_state = InviteState.SENDING
        self.error = None
        self.success = None
        try:
            await api.share_by_email(self.client, self.file_id, email)
        except MediaDashError as exc:
            attempt.state = InviteState.FAILED
            self.logger.warning("Invite of %s to %s failed: %s", email, self.file_id, exc.message)
            if self._latest(attempt):
                self.state.invite_state = InviteState.FAILED
                self.error = SESSION_EXPIRED if isinstance(exc, AuthFailure) else INVITE_FAILED
            return False
        attempt.state = InviteState.SENT
        if self._latest(attempt):
            self.state.invite_state = InviteState.SENT
            self.success = f"Successfully shared with {email}"
        return True

    def _latest(self, attempt: InviteAttempt) -> bool:
        return not self._closed and self.attempts[-1] is attempt

    def copy_link(self, clipboard: Callable[[str], None]) -> bool:
        if self.state.link_state is not LinkState.READY or self._closed:
            return False
        clipboard(self.state.link_url)
        self.copied = True
        if self._copied_handle is not None:
            self._copied_handle.cancel()
        loop = asyncio.get_running_loop()
        self._copied_handle = loop.call_later(self.copied_reset, self._reset_copied)
        return True

    def _reset_copied(self) -> None:
        self._copied_handle = None
        self.copied = False

    def close(self) -> None:
        self._closed = True
        if self._copied_handle is not None:
            self._copied_handle.cancel()
            self._copied_handle = None
        self.copied = False


@dataclass
class SharedFileResult:
    record: Optional[FileRecord] = None
    redirect_to: Optional[str] = None
    error: Optional[str] = None


async def open_shared_file(client: ApiClient, share_token: str) -> SharedFileResult:
    logger = get_logger("mediadash.share")
    try:
        record = await api.fetch_shared_file(client, share_token)
    except AuthFailure:
        return SharedFileResult(redirect_to=login_redirect(f"/shared/{share_token}"))
    except NotFoundOrForbidden:
        return SharedFileResult(error=SHARED_DENIED)
    except MediaDashError as exc:
        logger.warning("Shared file %s unavailable: %s", share_token, exc.message)
        return SharedFileResult(error=SHARED_DENIED)
    return SharedFileResult(record=record)
